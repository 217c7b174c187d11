#!/usr/bin/env python3
"""
Rescore finalized matches and recompute pick sheet totals.

Use after changing scoring rules by hand or repairing match results.
Streaks are not touched.

    python scripts/recalculate_scores.py --round-id 12 --actor admin-1
    python scripts/recalculate_scores.py --tournament-id 3 --actor admin-1
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from time import perf_counter

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pickem.config import settings
from pickem.db.session import get_session
from pickem.errors import PickemError
from pickem.services.admin import rescore_round_scores
from pickem.services.rounds import get_tournament

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Recalculate pick scores.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--round-id", type=int, help="Rescore a single round")
    target.add_argument("--tournament-id", type=int, help="Rescore every round of a tournament")
    parser.add_argument("--actor", required=True, help="Admin user id")
    args = parser.parse_args()

    started = perf_counter()
    try:
        with get_session() as session:
            if args.round_id is not None:
                round_ids = [args.round_id]
            else:
                round_ids = [r.id for r in get_tournament(session, args.tournament_id).rounds]

            total = 0
            for round_id in round_ids:
                rescored = rescore_round_scores(session, round_id, actor_id=args.actor)
                logger.info("Round %d: %d matches rescored", round_id, rescored)
                total += rescored
    except PickemError as e:
        logger.error("Recalculation failed: %s", e)
        return 1

    print(f"Rescored {total} matches in {len(round_ids)} rounds ({perf_counter() - started:.2f}s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
