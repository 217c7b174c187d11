"""
Admin orchestration: the round and match state machines.

Round lifecycle:
    not yet active -> active -> submissions closed -> finalized

Match lifecycle:
    pending -> finalized (admin finalize, or automatically for byes)
    finalized -> pending (admin unfinalize; never for byes)

Every operation checks the acting user is an admin, validates its input
against the current state, and only then writes, inside one SAVEPOINT in
the caller's session. A failure after the first write rolls the whole
operation back.

Usage:
    from pickem.services.admin import finalize_match

    with get_session() as session:
        finalize_match(session, match_id, "Sinner", "6-4 6-3", 2, 0, actor_id="admin-1")
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from pickem.db.models import Match, ScoringRule, UserRoundPick
from pickem.errors import InvalidStateError, NotFoundError, PickemError, PickValidationError
from pickem.match_statuses import (
    ALL_TOURNAMENT_STATUSES,
    MATCH_STATUS_FINALIZED,
    MATCH_STATUS_PENDING,
    TBD_PLAYER,
    TOURNAMENT_STATUS_ACTIVE,
    TOURNAMENT_STATUS_ARCHIVED,
    TOURNAMENT_STATUS_DRAFT,
    normalize_format,
)
from pickem.scoring.achievements import award_champions
from pickem.scoring.engine import MatchScoringResult, rescore_round, score_match, unscore_match
from pickem.scoring.rules import validate_set_score
from pickem.services.auth import require_admin
from pickem.services.leaderboards import get_tournament_leaderboard
from pickem.services.propagation import ensure_retractable, propagate_winner, retract_propagation
from pickem.services.rounds import (
    count_round_matches,
    get_match,
    get_round,
    get_tournament,
    refresh_round_finalized,
)

logger = logging.getLogger(__name__)


def _rejected(error: PickemError) -> PickemError:
    logger.warning("Rejected admin operation: %s", error)
    return error


@dataclass
class FinalizeResult:
    match: Match
    scoring: MatchScoringResult
    propagated_to: Optional[Match]
    round_finalized: bool


@dataclass
class ReopenResult:
    round_id: int
    finalized_matches: int
    pending_matches: int


# =============================================================================
# Round transitions
# =============================================================================

def set_active_round(
    session: Session,
    tournament_id: int,
    round_number: int,
    *,
    actor_id: str,
) -> None:
    """
    Make ``round_number`` the tournament's only active round and point the
    tournament's current round at it. A draft tournament becomes active.
    """
    require_admin(session, actor_id)
    tournament = get_tournament(session, tournament_id)
    target = next((r for r in tournament.rounds if r.round_number == round_number), None)
    if target is None:
        raise _rejected(NotFoundError(f"Round {round_number} not found in this tournament"))

    with session.begin_nested():
        for round_ in tournament.rounds:
            round_.is_active = False
        # Deactivate first so the one-active-round index never sees two
        session.flush()

        target.is_active = True
        if target.opens_at is None:
            target.opens_at = datetime.utcnow()
        tournament.current_round = round_number
        if tournament.status == TOURNAMENT_STATUS_DRAFT:
            tournament.status = TOURNAMENT_STATUS_ACTIVE
        session.flush()

    logger.info("Tournament %d: round %d is now active", tournament.id, round_number)


def close_round_submissions(session: Session, round_id: int, *, actor_id: str) -> int:
    """
    Close pick submissions for an active round, turning every remaining
    draft into a final submission.

    Returns:
        Number of drafts converted
    """
    require_admin(session, actor_id)
    round_ = get_round(session, round_id)
    if not round_.is_active:
        raise _rejected(InvalidStateError(f"Round {round_.round_number} is not active"))
    if round_.submissions_closed:
        raise _rejected(
            InvalidStateError(f"Submissions for round {round_.round_number} are already closed")
        )

    now = datetime.utcnow()
    with session.begin_nested():
        round_.submissions_closed_at = now
        round_.submissions_closed_by = actor_id
        drafts = (
            session.query(UserRoundPick)
            .filter(UserRoundPick.round_id == round_.id, UserRoundPick.is_draft.is_(True))
            .all()
        )
        for sheet in drafts:
            sheet.is_draft = False
            sheet.submitted_at = now
        session.flush()

    logger.info(
        "Round %d submissions closed by %s; %d drafts finalized",
        round_.id, actor_id, len(drafts),
    )
    return len(drafts)


def reopen_round_submissions(session: Session, round_id: int, *, actor_id: str) -> ReopenResult:
    """Reopen a closed round's submissions. Converted drafts stay final."""
    require_admin(session, actor_id)
    round_ = get_round(session, round_id)
    if not round_.submissions_closed:
        raise _rejected(
            InvalidStateError(f"Submissions for round {round_.round_number} are not closed")
        )

    with session.begin_nested():
        round_.submissions_closed_at = None
        round_.submissions_closed_by = None
        session.flush()

    finalized, pending = count_round_matches(session, round_.id)
    logger.info("Round %d submissions reopened by %s", round_.id, actor_id)
    return ReopenResult(round_id=round_.id, finalized_matches=finalized, pending_matches=pending)


# =============================================================================
# Match transitions
# =============================================================================

def finalize_match(
    session: Session,
    match_id: int,
    winner_name: str,
    final_score: str,
    sets_won: int,
    sets_lost: int,
    is_retirement: bool = False,
    *,
    actor_id: str,
) -> FinalizeResult:
    """
    Record a match result, score its picks, push the winner into the next
    round and finalize the round once all its matches are decided.

    Raises:
        InvalidStateError: bye match, or already finalized
        PickValidationError: winner not a player, or set counts invalid
            for the tournament format
    """
    require_admin(session, actor_id)
    match = get_match(session, match_id)
    round_ = match.round

    if match.is_bye:
        raise _rejected(InvalidStateError("Bye matches are finalized at draw upload"))
    if match.status == MATCH_STATUS_FINALIZED:
        raise _rejected(
            InvalidStateError(f"Match {match.match_number} is already finalized; unfinalize it first")
        )
    if winner_name == TBD_PLAYER or winner_name not in (match.player1_name, match.player2_name):
        raise _rejected(PickValidationError("Winner must be one of the match players"))
    validate_set_score(round_.tournament.format, sets_won, sets_lost, is_retirement)

    with session.begin_nested():
        match.status = MATCH_STATUS_FINALIZED
        match.winner_name = winner_name
        match.final_score = final_score
        match.sets_won = sets_won
        match.sets_lost = sets_lost
        match.is_retirement = is_retirement
        match.finalized_at = datetime.utcnow()
        match.finalized_by = actor_id
        session.flush()

        scoring = score_match(session, match.id)
        target = propagate_winner(session, match)
        round_finalized = refresh_round_finalized(session, round_)
        session.flush()

    logger.info(
        "Match %d finalized by %s: %s %d-%d%s",
        match.id, actor_id, winner_name, sets_won, sets_lost,
        " (ret.)" if is_retirement else "",
    )
    return FinalizeResult(
        match=match,
        scoring=scoring,
        propagated_to=target,
        round_finalized=round_finalized,
    )


def unfinalize_match(session: Session, match_id: int, *, actor_id: str) -> int:
    """
    Return a finalized match to pending: clear its result, unscore its picks
    and take its winner back out of the next round. Streaks are not reversed.

    Returns:
        Number of picks unscored

    Raises:
        InvalidStateError: bye match, not finalized, or the next-round match
            holding its winner is already finalized
    """
    require_admin(session, actor_id)
    match = get_match(session, match_id)
    if match.is_bye:
        raise _rejected(InvalidStateError("Bye matches cannot be unfinalized"))
    if match.status != MATCH_STATUS_FINALIZED:
        raise _rejected(InvalidStateError(f"Match {match.match_number} is not finalized"))
    try:
        ensure_retractable(session, match)
    except InvalidStateError as e:
        raise _rejected(e)

    with session.begin_nested():
        retract_propagation(session, match)
        match.status = MATCH_STATUS_PENDING
        match.winner_name = None
        match.final_score = None
        match.sets_won = None
        match.sets_lost = None
        match.is_retirement = False
        match.finalized_at = None
        match.finalized_by = None
        session.flush()

        unscored = unscore_match(session, match.id)
        refresh_round_finalized(session, match.round)
        session.flush()

    logger.info("Match %d unfinalized by %s", match.id, actor_id)
    return unscored


# =============================================================================
# Tournament and scoring administration
# =============================================================================

def close_tournament(session: Session, tournament_id: int, *, actor_id: str) -> Optional[str]:
    """
    Close and archive a tournament, deactivate its rounds and award the
    leaderboard leader.

    Returns:
        user_id of the champion, or None when nobody played
    """
    require_admin(session, actor_id)
    tournament = get_tournament(session, tournament_id)
    if tournament.is_closed:
        raise _rejected(InvalidStateError(f"Tournament {tournament.slug} is already closed"))

    champion = None
    with session.begin_nested():
        tournament.closed_at = datetime.utcnow()
        tournament.closed_by = actor_id
        tournament.status = TOURNAMENT_STATUS_ARCHIVED
        for round_ in tournament.rounds:
            round_.is_active = False
        session.flush()

        leaderboard = get_tournament_leaderboard(session, tournament.id)
        if leaderboard:
            champion = leaderboard[0].user_id
            award_champions(session, tournament.id, [champion])

    logger.info("Tournament %s closed by %s; champion=%s", tournament.slug, actor_id, champion)
    return champion


def update_tournament(
    session: Session,
    tournament_id: int,
    *,
    actor_id: str,
    tournament_format: Optional[str] = None,
    status: Optional[str] = None,
) -> None:
    """Change a tournament's format and/or status."""
    require_admin(session, actor_id)
    tournament = get_tournament(session, tournament_id)

    fmt = None
    if tournament_format is not None:
        try:
            fmt = normalize_format(tournament_format)
        except ValueError as e:
            raise _rejected(PickValidationError(str(e)))
    if status is not None and status not in ALL_TOURNAMENT_STATUSES:
        raise _rejected(PickValidationError(f"status must be one of {ALL_TOURNAMENT_STATUSES}"))

    with session.begin_nested():
        if fmt is not None:
            tournament.format = fmt
        if status is not None:
            tournament.status = status
        session.flush()
    logger.info("Tournament %d updated by %s (format=%s, status=%s)", tournament.id, actor_id, fmt, status)


def update_scoring_rule(
    session: Session,
    round_id: int,
    points_per_winner: int,
    points_exact_score: int,
    *,
    actor_id: str,
) -> int:
    """
    Set a round's points and rescore its finalized matches.

    Returns:
        Number of matches rescored
    """
    require_admin(session, actor_id)
    round_ = get_round(session, round_id)
    if points_per_winner < 0 or points_exact_score < 0:
        raise _rejected(PickValidationError("Points cannot be negative"))

    with session.begin_nested():
        if round_.scoring_rule is None:
            round_.scoring_rule = ScoringRule(
                points_per_winner=points_per_winner,
                points_exact_score=points_exact_score,
            )
        else:
            round_.scoring_rule.points_per_winner = points_per_winner
            round_.scoring_rule.points_exact_score = points_exact_score
        session.flush()
        rescored = rescore_round(session, round_.id)

    logger.info(
        "Round %d scoring set to %d/%d by %s; %d matches rescored",
        round_.id, points_per_winner, points_exact_score, actor_id, rescored,
    )
    return rescored


def rescore_round_scores(session: Session, round_id: int, *, actor_id: str) -> int:
    """Admin entry point for rescoring a round's finalized matches."""
    require_admin(session, actor_id)
    round_ = get_round(session, round_id)
    with session.begin_nested():
        return rescore_round(session, round_.id)
