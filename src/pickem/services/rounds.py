"""Lookups and round-state helpers shared by the admin and ingestion services."""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from pickem.db.models import Match, Round, Tournament
from pickem.errors import NotFoundError
from pickem.match_statuses import MATCH_STATUS_FINALIZED


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    """Non-deleted tournament by id."""
    tournament = session.get(Tournament, tournament_id)
    if tournament is None or tournament.deleted_at is not None:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


def get_round(session: Session, round_id: int) -> Round:
    """Round by id; rounds of deleted tournaments count as missing."""
    round_ = session.get(Round, round_id)
    if round_ is None or round_.tournament.deleted_at is not None:
        raise NotFoundError(f"Round {round_id} not found")
    return round_


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if match is None or match.deleted_at is not None:
        raise NotFoundError(f"Match {match_id} not found")
    return match


def count_round_matches(session: Session, round_id: int) -> tuple[int, int]:
    """(finalized, pending) counts over the round's non-deleted matches."""
    rows = (
        session.query(Match.status, func.count(Match.id))
        .filter(Match.round_id == round_id, Match.deleted_at.is_(None))
        .group_by(Match.status)
        .all()
    )
    by_status = dict(rows)
    finalized = by_status.pop(MATCH_STATUS_FINALIZED, 0)
    return finalized, sum(by_status.values())


def refresh_round_finalized(session: Session, round_: Round) -> bool:
    """
    Set is_finalized from the round's matches: True exactly when it has
    matches and every non-deleted one is finalized.

    Returns:
        The new is_finalized value
    """
    session.flush()
    finalized, pending = count_round_matches(session, round_.id)
    round_.is_finalized = finalized > 0 and pending == 0
    return round_.is_finalized
