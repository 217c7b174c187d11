"""
Pick submission: drafts and final submissions of a user's round picks.

A user has at most one pick sheet (UserRoundPick) per round, enforced by a
unique (user_id, round_id) constraint. While the round is active and open
the sheet can be saved as a draft any number of times. A final submission
is made once; afterwards the user can no longer change the sheet. Closing
submissions (services/admin.py) turns leftover drafts into final sheets.

Picks are validated against the round before anything is written:
- each match belongs to the round, is not a bye and is not finalized
- the predicted winner is one of the two players
- the predicted set score is a valid win under the tournament format
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pickem.db.models import MatchPick, Round, UserRoundPick
from pickem.errors import InvalidStateError, PickValidationError
from pickem.match_statuses import MATCH_STATUS_FINALIZED, TBD_PLAYER
from pickem.scoring.achievements import check_early_bird
from pickem.scoring.rules import validate_set_score
from pickem.services.auth import get_user
from pickem.services.rounds import get_round

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PickInput:
    """One prediction as submitted by a user (winner-perspective sets)."""
    match_id: int
    winner_name: str
    sets_won: int
    sets_lost: int


def _ensure_open(round_: Round, now: datetime) -> None:
    if not round_.is_active:
        raise InvalidStateError(f"Round {round_.round_number} is not active")
    if round_.submissions_closed:
        raise InvalidStateError(f"Submissions for round {round_.round_number} are closed")
    if round_.deadline is not None and now > round_.deadline:
        raise InvalidStateError(f"The deadline for round {round_.round_number} has passed")


def validate_picks(round_: Round, picks: Sequence[PickInput]) -> None:
    """
    Check every pick against the round's matches.

    Raises:
        PickValidationError: on the first invalid pick
    """
    matches = {m.id: m for m in round_.matches if m.deleted_at is None}
    tournament_format = round_.tournament.format
    seen: set[int] = set()

    for pick in picks:
        if pick.match_id in seen:
            raise PickValidationError(f"Match {pick.match_id} is picked more than once")
        seen.add(pick.match_id)

        match = matches.get(pick.match_id)
        if match is None:
            raise PickValidationError(f"Match {pick.match_id} is not in this round")
        if match.is_bye:
            raise PickValidationError(f"Match {match.match_number} is a bye")
        if match.status == MATCH_STATUS_FINALIZED:
            raise PickValidationError(
                f"Match {match.match_number} ({match.player1_name} vs {match.player2_name}) "
                "is already finalized"
            )
        if pick.winner_name == TBD_PLAYER or pick.winner_name not in (
            match.player1_name,
            match.player2_name,
        ):
            raise PickValidationError(
                f"Winner for match {match.match_number} must be "
                f"{match.player1_name} or {match.player2_name}"
            )
        try:
            validate_set_score(tournament_format, pick.sets_won, pick.sets_lost)
        except PickValidationError as e:
            raise PickValidationError(f"Match {match.match_number}: {e}") from e


def get_user_round_picks(session: Session, user_id: str, round_id: int) -> Optional[UserRoundPick]:
    return (
        session.query(UserRoundPick)
        .filter(UserRoundPick.user_id == user_id, UserRoundPick.round_id == round_id)
        .first()
    )


def _replace_match_picks(session: Session, sheet: UserRoundPick, picks: Sequence[PickInput]) -> None:
    sheet.match_picks.clear()
    # Old rows must be gone before new rows hit the (sheet, match) constraint
    session.flush()
    for pick in picks:
        sheet.match_picks.append(
            MatchPick(
                match_id=pick.match_id,
                predicted_winner=pick.winner_name,
                predicted_sets_won=pick.sets_won,
                predicted_sets_lost=pick.sets_lost,
            )
        )


def save_round_picks_draft(
    session: Session,
    user_id: str,
    round_id: int,
    picks: Sequence[PickInput],
) -> UserRoundPick:
    """
    Save (or replace) the user's draft for a round. Partial pick sets are
    allowed.

    Raises:
        InvalidStateError: round not open, or final picks already submitted
        PickValidationError: invalid pick
    """
    get_user(session, user_id)
    round_ = get_round(session, round_id)
    _ensure_open(round_, datetime.utcnow())

    sheet = get_user_round_picks(session, user_id, round_.id)
    if sheet is not None and not sheet.is_draft:
        raise InvalidStateError("Final picks already submitted for this round")
    validate_picks(round_, picks)

    with session.begin_nested():
        if sheet is None:
            sheet = UserRoundPick(user_id=user_id, round_id=round_.id, is_draft=True)
            session.add(sheet)
            session.flush()
        _replace_match_picks(session, sheet, picks)
        session.flush()

    logger.debug("Saved draft for user %s round %d (%d picks)", user_id, round_.id, len(picks))
    return sheet


def submit_round_picks(
    session: Session,
    user_id: str,
    round_id: int,
    picks: Sequence[PickInput],
) -> UserRoundPick:
    """
    Make the user's final submission for a round, replacing any draft.

    Raises:
        InvalidStateError: round not open, or picks already submitted
        PickValidationError: no picks, or an invalid pick
    """
    get_user(session, user_id)
    round_ = get_round(session, round_id)
    now = datetime.utcnow()
    _ensure_open(round_, now)

    sheet = get_user_round_picks(session, user_id, round_.id)
    if sheet is not None and not sheet.is_draft:
        raise InvalidStateError("Picks already submitted for this round")
    if not picks:
        raise PickValidationError("At least one pick is required")
    validate_picks(round_, picks)

    try:
        with session.begin_nested():
            if sheet is None:
                sheet = UserRoundPick(user_id=user_id, round_id=round_.id)
                session.add(sheet)
                session.flush()
            _replace_match_picks(session, sheet, picks)
            sheet.is_draft = False
            sheet.submitted_at = now
            session.flush()
    except IntegrityError as e:
        # A concurrent submission created the sheet first
        raise InvalidStateError("Picks already submitted for this round") from e

    check_early_bird(session, sheet)
    logger.info("User %s submitted %d picks for round %d", user_id, len(picks), round_.id)
    return sheet
