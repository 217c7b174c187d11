"""
Correct-pick streaks.

A streak counts consecutive correct winner picks for a user across all
tournaments. Two matches finalizing at the same time can touch the same
user's streak, so rows are locked (SELECT ... FOR UPDATE) for the
read-modify-write. Missing rows are created with INSERT ... ON CONFLICT DO
NOTHING first, so two first results for a new user cannot collide.

Streaks are not rolled back when a match is unfinalized.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from pickem.db.models import UserStreak
from pickem.db.upsert import insert_ignore

logger = logging.getLogger(__name__)


def apply_streak_result(streak: UserStreak, is_correct: bool) -> None:
    """Advance or reset a streak with one result."""
    if is_correct:
        streak.current_streak += 1
        streak.longest_streak = max(streak.longest_streak, streak.current_streak)
    else:
        streak.current_streak = 0


def update_streaks_for_match(
    session: Session,
    match_id: int,
    results_by_user: dict[str, bool],
) -> dict[str, UserStreak]:
    """
    Apply one match's results to each user's streak.

    Args:
        session: Database session
        match_id: The scored match (recorded as the last contributing match)
        results_by_user: user_id -> whether their winner pick was correct

    Returns:
        Updated streak rows keyed by user_id
    """
    if not results_by_user:
        return {}

    user_ids = sorted(results_by_user)
    created = insert_ignore(
        session,
        UserStreak,
        [{"user_id": uid, "current_streak": 0, "longest_streak": 0} for uid in user_ids],
        index_elements=["user_id"],
    )

    # Lock in a stable order so concurrent scorers cannot deadlock
    streaks = (
        session.query(UserStreak)
        .filter(UserStreak.user_id.in_(user_ids))
        .order_by(UserStreak.user_id)
        .with_for_update()
        .populate_existing()
        .all()
    )

    now = datetime.utcnow()
    by_user: dict[str, UserStreak] = {}
    for streak in streaks:
        apply_streak_result(streak, results_by_user[streak.user_id])
        streak.last_match_id = match_id
        streak.last_updated_at = now
        by_user[streak.user_id] = streak
    session.flush()

    logger.debug(
        "Updated %d streaks for match %d (%d new)", len(by_user), match_id, created
    )
    return by_user


def get_user_streak(session: Session, user_id: str) -> Optional[UserStreak]:
    return session.query(UserStreak).filter(UserStreak.user_id == user_id).first()
