"""
Achievement catalog and award checks.

Achievements are awarded at most once per (user, achievement). Awards go
through INSERT ... ON CONFLICT DO NOTHING on the (user_id, achievement_id)
unique constraint, so re-triggering a met condition is a silent no-op and
two concurrent scorers cannot award the same achievement twice.

Catalog:
- PERFECT_ROUND     (round)      every scorable match in a round picked correctly
- EXACT_MASTER      (round)      exact set score on N matches in one round
- STREAK_<n>        (streak)     n consecutive correct picks
- FIRST_100_POINTS  (milestone)  total points across all rounds reach the milestone
- FIRST_RANK_1      (milestone)  finish a closed tournament ranked first
- UPSET_CALLER      (special)    correctly pick a top seed to lose
- EARLY_BIRD        (special)    submit final picks soon after a round opens

Usage:
    from pickem.scoring.achievements import seed_achievement_definitions

    with get_session() as session:
        seed_achievement_definitions(session)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pickem.config import settings
from pickem.db.models import (
    AchievementDefinition,
    Match,
    MatchPick,
    Round,
    Tournament,
    UserAchievement,
    UserRoundPick,
)
from pickem.db.upsert import dialect_insert, insert_ignore
from pickem.match_statuses import MATCH_STATUS_FINALIZED

logger = logging.getLogger(__name__)

PERFECT_ROUND = "PERFECT_ROUND"
EXACT_MASTER = "EXACT_MASTER"
FIRST_100_POINTS = "FIRST_100_POINTS"
FIRST_RANK_1 = "FIRST_RANK_1"
UPSET_CALLER = "UPSET_CALLER"
EARLY_BIRD = "EARLY_BIRD"


def streak_code(threshold: int) -> str:
    return f"STREAK_{threshold}"


@dataclass(frozen=True)
class CatalogEntry:
    code: str
    name: str
    description: str
    category: str
    badge_color: str
    threshold: Optional[int] = None


def get_achievement_catalog() -> list[CatalogEntry]:
    """Catalog entries, with thresholds taken from settings."""
    catalog = [
        CatalogEntry(
            PERFECT_ROUND,
            "Perfect Round",
            "Picked every match in a round correctly",
            "round",
            "gold",
        ),
        CatalogEntry(
            EXACT_MASTER,
            "Exact Master",
            f"Predicted the exact set score on {settings.exact_master_threshold} matches in one round",
            "round",
            "purple",
            settings.exact_master_threshold,
        ),
    ]
    for threshold in settings.streak_thresholds:
        catalog.append(
            CatalogEntry(
                streak_code(threshold),
                f"On Fire ({threshold})",
                f"Picked {threshold} winners in a row",
                "streak",
                "orange",
                threshold,
            )
        )
    catalog.extend([
        CatalogEntry(
            FIRST_100_POINTS,
            "Century",
            f"Earned {settings.century_points} points in total",
            "milestone",
            "blue",
            settings.century_points,
        ),
        CatalogEntry(
            FIRST_RANK_1,
            "Champion",
            "Finished a tournament ranked first",
            "milestone",
            "gold",
            1,
        ),
        CatalogEntry(
            UPSET_CALLER,
            "Upset Caller",
            f"Correctly picked a top-{settings.upset_seed_cutoff} seed to lose",
            "special",
            "red",
            settings.upset_seed_cutoff,
        ),
        CatalogEntry(
            EARLY_BIRD,
            "Early Bird",
            f"Submitted picks within {settings.early_bird_window_minutes} minutes of a round opening",
            "special",
            "green",
            settings.early_bird_window_minutes,
        ),
    ])
    return catalog


def seed_achievement_definitions(session: Session) -> int:
    """
    Insert or refresh every catalog entry. Safe to run repeatedly.

    Returns:
        Number of catalog entries written
    """
    rows = [
        {
            "code": entry.code,
            "name": entry.name,
            "description": entry.description,
            "category": entry.category,
            "badge_color": entry.badge_color,
            "threshold": entry.threshold,
            "created_at": datetime.utcnow(),
        }
        for entry in get_achievement_catalog()
    ]
    stmt = dialect_insert(session, AchievementDefinition).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["code"],
        set_={
            "name": stmt.excluded.name,
            "description": stmt.excluded.description,
            "category": stmt.excluded.category,
            "badge_color": stmt.excluded.badge_color,
            "threshold": stmt.excluded.threshold,
        },
    )
    session.execute(stmt)
    logger.info("Seeded %d achievement definitions", len(rows))
    return len(rows)


def _get_definition(session: Session, code: str) -> AchievementDefinition:
    definition = (
        session.query(AchievementDefinition)
        .filter(AchievementDefinition.code == code)
        .first()
    )
    if definition is None:
        # Catalog not seeded yet in this database
        seed_achievement_definitions(session)
        definition = (
            session.query(AchievementDefinition)
            .filter(AchievementDefinition.code == code)
            .one()
        )
    return definition


def award_achievement(
    session: Session,
    user_id: str,
    code: str,
    tournament_id: Optional[int] = None,
    round_id: Optional[int] = None,
    context: Optional[dict] = None,
) -> bool:
    """
    Award an achievement unless the user already holds it.

    Returns:
        True if this call unlocked it
    """
    definition = _get_definition(session, code)
    inserted = insert_ignore(
        session,
        UserAchievement,
        [{
            "user_id": user_id,
            "achievement_id": definition.id,
            "unlocked_at": datetime.utcnow(),
            "tournament_id": tournament_id,
            "round_id": round_id,
            "context": context,
        }],
        index_elements=["user_id", "achievement_id"],
    )
    if inserted:
        logger.info("Achievement %s unlocked for user %s", code, user_id)
    return bool(inserted)


def get_user_achievement_codes(session: Session, user_id: str) -> set[str]:
    rows = (
        session.query(AchievementDefinition.code)
        .join(UserAchievement, UserAchievement.achievement_id == AchievementDefinition.id)
        .filter(UserAchievement.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


# =============================================================================
# Checks
# =============================================================================

def check_streak_achievements(
    session: Session,
    user_id: str,
    current_streak: int,
    match: Match,
) -> list[str]:
    """Award every streak threshold the current streak has reached."""
    awarded = []
    for threshold in settings.streak_thresholds:
        if current_streak < threshold:
            break
        code = streak_code(threshold)
        if award_achievement(
            session,
            user_id,
            code,
            round_id=match.round_id,
            context={"match_id": match.id, "value": current_streak},
        ):
            awarded.append(code)
    return awarded


def check_round_achievements(session: Session, user_round_pick: UserRoundPick) -> list[str]:
    """Exact Master and Perfect Round for one pick sheet."""
    awarded = []
    round_ = user_round_pick.round
    tournament_id = round_.tournament_id

    if user_round_pick.exact_scores >= settings.exact_master_threshold:
        if award_achievement(
            session,
            user_round_pick.user_id,
            EXACT_MASTER,
            tournament_id=tournament_id,
            round_id=round_.id,
            context={"value": user_round_pick.exact_scores},
        ):
            awarded.append(EXACT_MASTER)

    if is_perfect_round(session, user_round_pick):
        if award_achievement(
            session,
            user_round_pick.user_id,
            PERFECT_ROUND,
            tournament_id=tournament_id,
            round_id=round_.id,
            context={"value": user_round_pick.correct_winners},
        ):
            awarded.append(PERFECT_ROUND)
    return awarded


def is_perfect_round(session: Session, user_round_pick: UserRoundPick) -> bool:
    """
    True when every scorable match of the round is finalized and the user
    picked each winner correctly. Byes and retirements are not scorable.
    """
    scorable = (
        session.query(Match.id, Match.status)
        .filter(
            Match.round_id == user_round_pick.round_id,
            Match.deleted_at.is_(None),
            Match.is_bye.is_(False),
            Match.is_retirement.is_(False),
        )
        .all()
    )
    if not scorable:
        return False
    if any(status != MATCH_STATUS_FINALIZED for _, status in scorable):
        return False

    scorable_ids = {match_id for match_id, _ in scorable}
    correct_ids = {
        match_id
        for (match_id,) in session.query(MatchPick.match_id)
        .filter(
            MatchPick.user_round_pick_id == user_round_pick.id,
            MatchPick.match_id.in_(scorable_ids),
            MatchPick.is_winner_correct.is_(True),
        )
        .all()
    }
    return correct_ids == scorable_ids


def is_upset(match: Match) -> bool:
    """
    A seed at or above the cutoff lost to a lower-seeded or unseeded player.

    >>> m = Match(player1_name="A", player2_name="B", player1_seed=3, player2_seed=None, winner_name="B")
    >>> is_upset(m)
    True
    """
    loser_seed = match.loser_seed
    if loser_seed is None or loser_seed > settings.upset_seed_cutoff:
        return False
    winner_seed = match.winner_seed
    return winner_seed is None or winner_seed > loser_seed


def check_upset_caller(session: Session, match: Match, correct_user_ids: Iterable[str]) -> list[str]:
    """Award Upset Caller to users who picked the winner of an upset."""
    if not is_upset(match):
        return []
    round_ = match.round
    awarded = []
    for user_id in sorted(correct_user_ids):
        if award_achievement(
            session,
            user_id,
            UPSET_CALLER,
            tournament_id=round_.tournament_id,
            round_id=round_.id,
            context={
                "match_id": match.id,
                "winner": match.winner_name,
                "loser_seed": match.loser_seed,
            },
        ):
            awarded.append(user_id)
    return awarded


def get_user_total_points(session: Session, user_id: str) -> int:
    """Points across every round of every non-deleted tournament."""
    total = (
        session.query(func.coalesce(func.sum(UserRoundPick.total_points), 0))
        .join(Round, Round.id == UserRoundPick.round_id)
        .join(Tournament, Tournament.id == Round.tournament_id)
        .filter(
            UserRoundPick.user_id == user_id,
            Tournament.deleted_at.is_(None),
        )
        .scalar()
    )
    return int(total or 0)


def check_points_milestone(session: Session, user_id: str) -> bool:
    total = get_user_total_points(session, user_id)
    if total < settings.century_points:
        return False
    return award_achievement(
        session, user_id, FIRST_100_POINTS, context={"value": total}
    )


def check_early_bird(session: Session, user_round_pick: UserRoundPick) -> bool:
    """Award Early Bird when a final submission lands inside the opening window."""
    round_ = user_round_pick.round
    submitted_at = user_round_pick.submitted_at
    if round_.opens_at is None or submitted_at is None or user_round_pick.is_draft:
        return False
    elapsed = submitted_at - round_.opens_at
    if elapsed < timedelta(0) or elapsed > timedelta(minutes=settings.early_bird_window_minutes):
        return False
    return award_achievement(
        session,
        user_round_pick.user_id,
        EARLY_BIRD,
        tournament_id=round_.tournament_id,
        round_id=round_.id,
        context={"minutes_after_open": int(elapsed.total_seconds() // 60)},
    )


def award_champions(session: Session, tournament_id: int, user_ids: Iterable[str]) -> list[str]:
    """Award FIRST_RANK_1 to the tournament winners given."""
    return [
        user_id
        for user_id in user_ids
        if award_achievement(
            session,
            user_id,
            FIRST_RANK_1,
            tournament_id=tournament_id,
            context={"rank": 1},
        )
    ]


def evaluate_achievements_after_scoring(
    session: Session,
    match: Match,
    results_by_user: dict[str, Optional[bool]],
    streaks_by_user: dict[str, int],
    user_round_picks: Iterable[UserRoundPick],
) -> dict[str, list[str]]:
    """
    Run every post-scoring check for the users with a pick on ``match``.

    Args:
        results_by_user: user_id -> winner correctness (None for retirements)
        streaks_by_user: user_id -> current streak after this match (empty
            for retirements, which do not touch streaks)
        user_round_picks: the pick sheets touched by scoring

    Returns:
        Newly unlocked achievement codes per user
    """
    unlocked: dict[str, list[str]] = {}

    for user_id, current in streaks_by_user.items():
        codes = check_streak_achievements(session, user_id, current, match)
        if codes:
            unlocked.setdefault(user_id, []).extend(codes)

    # A finalized retirement can complete a round for sheets with no pick on
    # it, so round checks cover every sheet in the round
    round_sheets = (
        session.query(UserRoundPick)
        .filter(UserRoundPick.round_id == match.round_id)
        .order_by(UserRoundPick.id)
        .all()
    )
    for urp in round_sheets:
        codes = check_round_achievements(session, urp)
        if codes:
            unlocked.setdefault(urp.user_id, []).extend(codes)

    for urp in user_round_picks:
        if check_points_milestone(session, urp.user_id):
            unlocked.setdefault(urp.user_id, []).append(FIRST_100_POINTS)

    correct_users = [uid for uid, correct in results_by_user.items() if correct]
    for user_id in check_upset_caller(session, match, correct_users):
        unlocked.setdefault(user_id, []).append(UPSET_CALLER)

    return unlocked
