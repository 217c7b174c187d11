"""
Leaderboard queries.

Read-only projections over the cached pick sheet totals. Only final
(non-draft) sheets count. Ranks are positions 1..n in leaderboard order:

- Tournament: points desc, then earliest submission asc
- All-time: points desc, then account creation asc, then earliest submission asc
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from pickem.db.models import Round, Tournament, User, UserRoundPick


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    display_name: str
    total_points: int
    correct_winners: int
    exact_scores: int
    rounds_played: int
    earliest_submission: Optional[datetime]
    tournaments_played: Optional[int] = None
    member_since: Optional[datetime] = None


def _totals_columns():
    return (
        func.coalesce(func.sum(UserRoundPick.total_points), 0).label("total_points"),
        func.coalesce(func.sum(UserRoundPick.correct_winners), 0).label("correct_winners"),
        func.coalesce(func.sum(UserRoundPick.exact_scores), 0).label("exact_scores"),
        func.count(distinct(UserRoundPick.round_id)).label("rounds_played"),
        func.min(UserRoundPick.submitted_at).label("earliest_submission"),
    )


def get_tournament_leaderboard(session: Session, tournament_id: int) -> list[LeaderboardEntry]:
    """Per-user totals for one tournament, ranked."""
    cols = _totals_columns()
    total_points, _, _, _, earliest = cols
    rows = (
        session.query(UserRoundPick.user_id, User.display_name, *cols)
        .join(User, User.id == UserRoundPick.user_id)
        .join(Round, Round.id == UserRoundPick.round_id)
        .filter(
            Round.tournament_id == tournament_id,
            UserRoundPick.is_draft.is_(False),
        )
        .group_by(UserRoundPick.user_id, User.display_name)
        .order_by(total_points.desc(), earliest.asc(), UserRoundPick.user_id)
        .all()
    )
    return [
        LeaderboardEntry(
            rank=i,
            user_id=row.user_id,
            display_name=row.display_name,
            total_points=int(row.total_points),
            correct_winners=int(row.correct_winners),
            exact_scores=int(row.exact_scores),
            rounds_played=int(row.rounds_played),
            earliest_submission=row.earliest_submission,
        )
        for i, row in enumerate(rows, start=1)
    ]


def get_all_time_leaderboard(session: Session, limit: Optional[int] = None) -> list[LeaderboardEntry]:
    """Per-user totals across every non-deleted tournament, ranked."""
    cols = _totals_columns()
    total_points, _, _, _, earliest = cols
    query = (
        session.query(
            UserRoundPick.user_id,
            User.display_name,
            User.created_at,
            *cols,
            func.count(distinct(Round.tournament_id)).label("tournaments_played"),
        )
        .join(User, User.id == UserRoundPick.user_id)
        .join(Round, Round.id == UserRoundPick.round_id)
        .join(Tournament, Tournament.id == Round.tournament_id)
        .filter(
            Tournament.deleted_at.is_(None),
            UserRoundPick.is_draft.is_(False),
        )
        .group_by(UserRoundPick.user_id, User.display_name, User.created_at)
        .order_by(total_points.desc(), User.created_at.asc(), earliest.asc(), UserRoundPick.user_id)
    )
    if limit is not None:
        query = query.limit(limit)
    return [
        LeaderboardEntry(
            rank=i,
            user_id=row.user_id,
            display_name=row.display_name,
            total_points=int(row.total_points),
            correct_winners=int(row.correct_winners),
            exact_scores=int(row.exact_scores),
            rounds_played=int(row.rounds_played),
            earliest_submission=row.earliest_submission,
            tournaments_played=int(row.tournaments_played),
            member_since=row.created_at,
        )
        for i, row in enumerate(query.all(), start=1)
    ]


def get_user_tournament_stats(
    session: Session,
    tournament_id: int,
    user_id: str,
) -> Optional[LeaderboardEntry]:
    """The user's leaderboard entry (with rank) for a tournament, if they played."""
    for entry in get_tournament_leaderboard(session, tournament_id):
        if entry.user_id == user_id:
            return entry
    return None
