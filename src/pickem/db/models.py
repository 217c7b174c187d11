"""
SQLAlchemy ORM models for Pickem.

This module defines all database tables and their relationships.
The schema is designed around a tournament draw that users predict
round by round.

Key design decisions:
- A tournament owns its rounds; a round owns its matches, scoring rule and picks
- Matches are addressed by (round_number, match_number); bracket math in
  draw.py maps a match to its slot in the next round
- Propagated player slots remember the match they came from, so unfinalizing
  that match can retract them
- Scoring fields on picks are written only by the scoring engine
- At most one active round per tournament is enforced by a partial unique index
- Tournaments and matches are soft-deleted (deleted_at) so a draw can be
  re-uploaded without losing history

Tables:
- users: Contest participants and admins (identity lives elsewhere)
- tournaments: One uploaded draw
- rounds: Rounds of a tournament draw
- scoring_rules: Points per correct winner / exact score, one per round
- matches: Bracket matches
- user_round_picks: A user's pick sheet for one round, with cached totals
- match_picks: One prediction per match on a pick sheet
- user_streaks: Current and longest correct-pick streak per user
- achievement_definitions: Achievement catalog
- user_achievements: Unlocked achievements
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pickem.match_statuses import (
    DEFAULT_TOURNAMENT_FORMAT,
    MATCH_STATUS_PENDING,
    TBD_PLAYER,
    TOURNAMENT_STATUS_DRAFT,
)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

USER_ROLES: tuple[str, ...] = ("user", "admin")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# =============================================================================
# User Models
# =============================================================================

class User(Base):
    """
    A contest participant.

    The id is the external identity provider's user id. Authentication is
    handled outside this package; the row carries display data, the role
    checked by admin operations, and the join date used to break all-time
    leaderboard ties.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user", server_default="user"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    round_picks: Mapped[list["UserRoundPick"]] = relationship(back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', name='{self.display_name}', role={self.role})>"


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    One uploaded tournament draw.

    The slug is derived from name and year and is unique among tournaments
    that have not been soft-deleted, so re-uploading with overwrite can
    reuse it.
    """

    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # 'best-of-3' or 'best-of-5'
    format: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_TOURNAMENT_FORMAT
    )
    # 'draft', 'active', 'archived'
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TOURNAMENT_STATUS_DRAFT
    )
    current_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    uploaded_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    rounds: Mapped[list["Round"]] = relationship(
        back_populates="tournament",
        order_by="Round.round_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_tournaments_slug_live",
            "slug",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_tournaments_year", "year"),
    )

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def __repr__(self) -> str:
        return f"<Tournament(slug='{self.slug}', status={self.status})>"


class Round(Base):
    """
    A round of a tournament draw.

    Round numbers start at 1 for the first round played and increase with
    elimination depth, so the final has the highest number.

    Lifecycle:
        not yet active -> active -> submissions closed -> finalized
    """

    __tablename__ = "rounds"

    id: Mapped[int] = mapped_column(primary_key=True)
    tournament_id: Mapped[int] = mapped_column(
        ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    is_finalized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    opens_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    submissions_closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    submissions_closed_by: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    tournament: Mapped["Tournament"] = relationship(back_populates="rounds")
    matches: Mapped[list["Match"]] = relationship(
        back_populates="round",
        order_by="Match.match_number",
        cascade="all, delete-orphan",
    )
    scoring_rule: Mapped[Optional["ScoringRule"]] = relationship(
        back_populates="round",
        uselist=False,
        cascade="all, delete-orphan",
    )
    user_picks: Mapped[list["UserRoundPick"]] = relationship(back_populates="round")

    __table_args__ = (
        UniqueConstraint("tournament_id", "round_number", name="uq_round_tournament_number"),
        # At most one active round per tournament
        Index(
            "uq_rounds_one_active",
            "tournament_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    @property
    def submissions_closed(self) -> bool:
        return self.submissions_closed_at is not None

    def __repr__(self) -> str:
        return f"<Round(tournament={self.tournament_id}, number={self.round_number}, name='{self.name}')>"


class ScoringRule(Base):
    """Points awarded in one round for a correct winner and an exact set score."""

    __tablename__ = "scoring_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    points_per_winner: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    points_exact_score: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    round: Mapped["Round"] = relationship(back_populates="scoring_rule")

    def __repr__(self) -> str:
        return f"<ScoringRule(round={self.round_id}, {self.points_per_winner}/{self.points_exact_score})>"


class Match(Base):
    """
    A bracket match.

    match_number is the 1-based position within the round. The winner of
    match M in round R plays in match ceil(M/2) of round R+1, in the player1
    slot when M is odd and the player2 slot when M is even.

    Invariants for a finalized non-bye match:
    - winner_name is player1_name or player2_name
    - sets_won > sets_lost (from the winner's perspective)

    player1_source_match_id / player2_source_match_id record which match
    pushed its winner into each slot.
    """

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False
    )
    match_number: Mapped[int] = mapped_column(Integer, nullable=False)

    player1_name: Mapped[str] = mapped_column(String(200), nullable=False, default=TBD_PLAYER)
    player2_name: Mapped[str] = mapped_column(String(200), nullable=False, default=TBD_PLAYER)
    player1_seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    player2_seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # 'pending' or 'finalized'
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MATCH_STATUS_PENDING
    )
    winner_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    final_score: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sets_won: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sets_lost: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_bye: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    is_retirement: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finalized_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    player1_source_match_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("matches.id", ondelete="SET NULL"), nullable=True
    )
    player2_source_match_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("matches.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    round: Mapped["Round"] = relationship(back_populates="matches")
    picks: Mapped[list["MatchPick"]] = relationship(back_populates="match")

    __table_args__ = (
        UniqueConstraint("round_id", "match_number", name="uq_match_round_number"),
        Index("idx_matches_status", "status"),
        Index("idx_matches_player1_source", "player1_source_match_id"),
        Index("idx_matches_player2_source", "player2_source_match_id"),
    )

    @property
    def is_finalized(self) -> bool:
        return self.status == "finalized"

    @property
    def winner_seed(self) -> Optional[int]:
        """Seed of the winner, None when unseeded or undecided."""
        if self.winner_name is None:
            return None
        if self.winner_name == self.player1_name:
            return self.player1_seed
        if self.winner_name == self.player2_name:
            return self.player2_seed
        return None

    @property
    def loser_seed(self) -> Optional[int]:
        if self.winner_name is None:
            return None
        if self.winner_name == self.player1_name:
            return self.player2_seed
        if self.winner_name == self.player2_name:
            return self.player1_seed
        return None

    def __repr__(self) -> str:
        return (
            f"<Match(round={self.round_id}, #{self.match_number}, "
            f"{self.player1_name} vs {self.player2_name}, status={self.status})>"
        )


# =============================================================================
# Pick Models
# =============================================================================

class UserRoundPick(Base):
    """
    A user's pick sheet for one round.

    Drafts can be replaced by the user. A final submission (is_draft=False)
    is immutable to the user. The totals are caches recomputed by the
    scoring engine from the sheet's match picks.
    """

    __tablename__ = "user_round_picks"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False
    )

    is_draft: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exact_scores: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scored_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped["User"] = relationship(back_populates="round_picks")
    round: Mapped["Round"] = relationship(back_populates="user_picks")
    match_picks: Mapped[list["MatchPick"]] = relationship(
        back_populates="user_round_pick",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "round_id", name="uq_user_round_pick"),
        Index("idx_user_round_picks_round", "round_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserRoundPick(user='{self.user_id}', round={self.round_id}, "
            f"draft={self.is_draft}, points={self.total_points})>"
        )


class MatchPick(Base):
    """
    A single match prediction.

    is_winner_correct / is_exact_score are None until the match is scored
    (and stay None for retirements, which are not scored).
    """

    __tablename__ = "match_picks"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_round_pick_id: Mapped[int] = mapped_column(
        ForeignKey("user_round_picks.id", ondelete="CASCADE"), nullable=False
    )
    match_id: Mapped[int] = mapped_column(
        ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )

    predicted_winner: Mapped[str] = mapped_column(String(200), nullable=False)
    predicted_sets_won: Mapped[int] = mapped_column(Integer, nullable=False)
    predicted_sets_lost: Mapped[int] = mapped_column(Integer, nullable=False)

    is_winner_correct: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_exact_score: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user_round_pick: Mapped["UserRoundPick"] = relationship(back_populates="match_picks")
    match: Mapped["Match"] = relationship(back_populates="picks")

    __table_args__ = (
        UniqueConstraint("user_round_pick_id", "match_id", name="uq_match_pick"),
        Index("idx_match_picks_match", "match_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<MatchPick(match={self.match_id}, winner='{self.predicted_winner}', "
            f"{self.predicted_sets_won}-{self.predicted_sets_lost}, points={self.points_earned})>"
        )


# =============================================================================
# Streak & Achievement Models
# =============================================================================

class UserStreak(Base):
    """Consecutive correct winner picks for one user, across all tournaments."""

    __tablename__ = "user_streaks"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_match_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("matches.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<UserStreak(user='{self.user_id}', current={self.current_streak}, "
            f"longest={self.longest_streak})>"
        )


class AchievementDefinition(Base):
    """Achievement catalog entry, seeded from scoring/achievements.py."""

    __tablename__ = "achievement_definitions"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # 'round', 'streak', 'milestone', 'special'
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    badge_color: Mapped[str] = mapped_column(String(20), nullable=False, default="gold")
    threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<AchievementDefinition(code='{self.code}', category={self.category})>"


class UserAchievement(Base):
    """An unlocked achievement. Each (user, achievement) pair is awarded once."""

    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    achievement_id: Mapped[int] = mapped_column(
        ForeignKey("achievement_definitions.id", ondelete="CASCADE"), nullable=False
    )
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    tournament_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tournaments.id", ondelete="SET NULL"), nullable=True
    )
    round_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("rounds.id", ondelete="SET NULL"), nullable=True
    )
    context: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    achievement: Mapped["AchievementDefinition"] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
        Index("idx_user_achievements_tournament", "tournament_id"),
    )

    def __repr__(self) -> str:
        return f"<UserAchievement(user='{self.user_id}', achievement={self.achievement_id})>"
