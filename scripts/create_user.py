#!/usr/bin/env python3
"""Create or update a Pickem user (pass --admin for an admin account)."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pickem.db.session import get_session
from pickem.services.auth import create_or_update_user


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or update a user")
    parser.add_argument("--user-id", required=True, help="External identity id")
    parser.add_argument("--display-name", required=True, help="Name shown on leaderboards")
    parser.add_argument("--email", default=None, help="Contact email")
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the admin role",
    )
    args = parser.parse_args()

    try:
        with get_session() as session:
            user = create_or_update_user(
                db=session,
                user_id=args.user_id,
                display_name=args.display_name,
                email=args.email,
                role="admin" if args.admin else "user",
            )
            print(f"User ready: id={user.id}, name={user.display_name}, role={user.role}")
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
