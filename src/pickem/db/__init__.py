"""
Database module for Pickem.

Provides SQLAlchemy ORM models and session management.

Usage:
    from pickem.db import get_session, Tournament, Match

    with get_session() as session:
        tournaments = session.query(Tournament).all()
"""

from pickem.db.models import (
    Base,
    User,
    Tournament,
    Round,
    ScoringRule,
    Match,
    UserRoundPick,
    MatchPick,
    UserStreak,
    AchievementDefinition,
    UserAchievement,
)
from pickem.db.session import get_session, get_engine, SessionLocal

__all__ = [
    # Base
    "Base",
    # Models
    "User",
    "Tournament",
    "Round",
    "ScoringRule",
    "Match",
    "UserRoundPick",
    "MatchPick",
    "UserStreak",
    "AchievementDefinition",
    "UserAchievement",
    # Session
    "get_session",
    "get_engine",
    "SessionLocal",
]
