#!/usr/bin/env python3
"""
Commit a parsed draw (JSON) as a tournament.

The JSON holds the draw parser's output:

    {
      "tournamentName": "Australian Open",
      "rounds": [
        {"roundNumber": 1, "name": "Round of 128", "matches": [
          {"matchNumber": 1, "player1Name": "Sinner", "player1Seed": 1,
           "player2Name": "Bye"},
          ...
        ]},
        ...
      ]
    }

Usage:
    python scripts/commit_draw.py draw.json --year 2025 --format bo5 --actor admin-1
    python scripts/commit_draw.py draw.json --year 2025 --actor admin-1 --overwrite
    python scripts/commit_draw.py draw.json --year 2025 --actor admin-1 --check
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pickem.config import settings
from pickem.db.session import get_session
from pickem.errors import PickemError
from pickem.parsed_draw import ParsedDraw, validate_parsed_draw
from pickem.services.draw_ingestion import commit_draw

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Commit a parsed draw as a tournament.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("draw_file", type=Path, help="Path to the parsed draw JSON")
    parser.add_argument("--year", type=int, required=True, help="Tournament year")
    parser.add_argument(
        "--format",
        default="best-of-3",
        help="Tournament format: best-of-3 / best-of-5 (bo3 / bo5 accepted)",
    )
    parser.add_argument("--actor", required=True, help="Admin user id performing the upload")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing tournament that already has user picks",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the draw structure only; do not write anything",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()

    try:
        payload = json.loads(args.draw_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: cannot read {args.draw_file}: {e}", file=sys.stderr)
        return 1

    draw = ParsedDraw.from_dict(payload)
    if args.check:
        problems = validate_parsed_draw(draw)
        for problem in problems:
            print(f"  - {problem}")
        print(f"{len(problems)} problems found in {draw.tournament_name!r}")
        return 1 if problems else 0

    try:
        with get_session() as session:
            result = commit_draw(
                session,
                draw,
                year=args.year,
                tournament_format=args.format,
                overwrite_existing=args.overwrite,
                actor_id=args.actor,
            )
            print(f"Tournament ready: id={result.tournament.id}, slug={result.tournament.slug}")
            print(result.stats.summary())
    except PickemError as e:
        logger.error("Draw commit failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
