#!/usr/bin/env python3
"""
Insert or refresh the achievement catalog.

Safe to re-run: definitions are upserted by code, so changed thresholds
(e.g. STREAK_THRESHOLDS) update names and descriptions in place.

    python scripts/seed_achievements.py
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pickem.config import settings
from pickem.db.session import get_session
from pickem.scoring.achievements import get_achievement_catalog, seed_achievement_definitions

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Seed achievement definitions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--list", action="store_true", help="Print the catalog without writing")
    args = parser.parse_args()

    catalog = get_achievement_catalog()
    if args.list:
        for entry in catalog:
            print(f"{entry.code:<20} {entry.category:<10} {entry.name}")
        return 0

    with get_session() as session:
        count = seed_achievement_definitions(session)
    logger.info("Seeded %d achievement definitions", count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
