"""Initial Pickem schema

Creates users, tournaments, rounds, scoring rules, matches, pick sheets,
match picks, streaks and the achievement tables, plus the two partial
unique indexes: one live tournament per slug and one active round per
tournament.

Revision ID: 4f1a2b3c5d6e
Revises:
Create Date: 2026-10-18 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision: str = "4f1a2b3c5d6e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tournaments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=220), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("format", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("current_round", sa.Integer(), nullable=False),
        sa.Column("uploaded_by", sa.String(length=64), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("closed_by", sa.String(length=64), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["closed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tournaments_year", "tournaments", ["year"], unique=False)
    op.create_index(
        "uq_tournaments_slug_live",
        "tournaments",
        ["slug"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "rounds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_finalized", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("opens_at", sa.DateTime(), nullable=True),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("submissions_closed_at", sa.DateTime(), nullable=True),
        sa.Column("submissions_closed_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["submissions_closed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tournament_id", "round_number", name="uq_round_tournament_number"),
    )
    op.create_index(
        "uq_rounds_one_active",
        "rounds",
        ["tournament_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "scoring_rules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("points_per_winner", sa.Integer(), nullable=False),
        sa.Column("points_exact_score", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["round_id"], ["rounds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("round_id"),
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("match_number", sa.Integer(), nullable=False),
        sa.Column("player1_name", sa.String(length=200), nullable=False),
        sa.Column("player2_name", sa.String(length=200), nullable=False),
        sa.Column("player1_seed", sa.Integer(), nullable=True),
        sa.Column("player2_seed", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("winner_name", sa.String(length=200), nullable=True),
        sa.Column("final_score", sa.String(length=100), nullable=True),
        sa.Column("sets_won", sa.Integer(), nullable=True),
        sa.Column("sets_lost", sa.Integer(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_retirement", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("finalized_at", sa.DateTime(), nullable=True),
        sa.Column("finalized_by", sa.String(length=64), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("player1_source_match_id", sa.Integer(), nullable=True),
        sa.Column("player2_source_match_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["round_id"], ["rounds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["player1_source_match_id"], ["matches.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["player2_source_match_id"], ["matches.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("round_id", "match_number", name="uq_match_round_number"),
    )
    op.create_index("idx_matches_status", "matches", ["status"], unique=False)
    op.create_index("idx_matches_player1_source", "matches", ["player1_source_match_id"], unique=False)
    op.create_index("idx_matches_player2_source", "matches", ["player2_source_match_id"], unique=False)

    op.create_table(
        "user_round_picks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("total_points", sa.Integer(), nullable=False),
        sa.Column("correct_winners", sa.Integer(), nullable=False),
        sa.Column("exact_scores", sa.Integer(), nullable=False),
        sa.Column("scored_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["round_id"], ["rounds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "round_id", name="uq_user_round_pick"),
    )
    op.create_index("idx_user_round_picks_round", "user_round_picks", ["round_id"], unique=False)

    op.create_table(
        "match_picks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_round_pick_id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("predicted_winner", sa.String(length=200), nullable=False),
        sa.Column("predicted_sets_won", sa.Integer(), nullable=False),
        sa.Column("predicted_sets_lost", sa.Integer(), nullable=False),
        sa.Column("is_winner_correct", sa.Boolean(), nullable=True),
        sa.Column("is_exact_score", sa.Boolean(), nullable=True),
        sa.Column("points_earned", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_round_pick_id"], ["user_round_picks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["match_id"], ["matches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_round_pick_id", "match_id", name="uq_match_pick"),
    )
    op.create_index("idx_match_picks_match", "match_picks", ["match_id"], unique=False)

    op.create_table(
        "user_streaks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("longest_streak", sa.Integer(), nullable=False),
        sa.Column("last_updated_at", sa.DateTime(), nullable=True),
        sa.Column("last_match_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["last_match_id"], ["matches.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "achievement_definitions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("badge_color", sa.String(length=20), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("achievement_id", sa.Integer(), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(), nullable=True),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("round_id", sa.Integer(), nullable=True),
        sa.Column("context", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["achievement_id"], ["achievement_definitions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournaments.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["round_id"], ["rounds.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index(
        "idx_user_achievements_tournament", "user_achievements", ["tournament_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("idx_user_achievements_tournament", table_name="user_achievements")
    op.drop_table("user_achievements")
    op.drop_table("achievement_definitions")
    op.drop_table("user_streaks")
    op.drop_index("idx_match_picks_match", table_name="match_picks")
    op.drop_table("match_picks")
    op.drop_index("idx_user_round_picks_round", table_name="user_round_picks")
    op.drop_table("user_round_picks")
    op.drop_index("idx_matches_player2_source", table_name="matches")
    op.drop_index("idx_matches_player1_source", table_name="matches")
    op.drop_index("idx_matches_status", table_name="matches")
    op.drop_table("matches")
    op.drop_table("scoring_rules")
    op.drop_index("uq_rounds_one_active", table_name="rounds")
    op.drop_table("rounds")
    op.drop_index("uq_tournaments_slug_live", table_name="tournaments")
    op.drop_index("idx_tournaments_year", table_name="tournaments")
    op.drop_table("tournaments")
    op.drop_table("users")
