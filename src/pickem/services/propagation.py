"""
Winner propagation: pushes a finalized match's winner into its slot in
the next round, and takes it back out when the match is unfinalized.

Bracket math lives in draw.py: the winner of match M in round R lands in
match ceil(M/2) of round R+1, player1 slot for odd M, player2 for even M.
The winner's seed is only written when known, so an unseeded winner never
clears a seed already in the slot.

Each propagated slot records its source match
(player1_source_match_id / player2_source_match_id). Retraction resets
exactly the slots whose source is the unfinalized match.

Usage:
    from pickem.services.propagation import propagate_winner, propagate_bracket

    # One match (admin finalize)
    propagate_winner(session, match)

    # A whole uploaded bracket, one batched update per round
    propagate_bracket(session, tournament.rounds)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from pickem.db.models import Match, Round
from pickem.draw import PLAYER1_SLOT, PLAYER2_SLOT, get_next_match_number, get_target_slot
from pickem.errors import InvalidStateError
from pickem.match_statuses import MATCH_STATUS_FINALIZED, TBD_PLAYER

logger = logging.getLogger(__name__)


@dataclass
class PropagationStats:
    """Counts from a batch propagation run."""
    slots_written: int = 0
    matches_updated: int = 0
    rounds_updated: int = 0
    missing_targets: list[str] = field(default_factory=list)

    def summary(self) -> str:
        line = (
            f"Propagation: {self.slots_written} slots into {self.matches_updated} "
            f"matches across {self.rounds_updated} rounds"
        )
        if self.missing_targets:
            line += f" ({len(self.missing_targets)} targets missing)"
        return line


def slot_values(
    slot: str,
    winner_name: str,
    winner_seed: Optional[int],
    source_match_id: Optional[int],
) -> dict[str, object]:
    """
    Column values for writing a winner into a slot.

    >>> slot_values("player2", "Sinner", None, 7)
    {'player2_name': 'Sinner', 'player2_source_match_id': 7}
    """
    values: dict[str, object] = {f"{slot}_name": winner_name}
    if winner_seed is not None:
        values[f"{slot}_seed"] = winner_seed
    values[f"{slot}_source_match_id"] = source_match_id
    return values


def find_next_round(session: Session, round_: Round) -> Optional[Round]:
    return (
        session.query(Round)
        .filter(
            Round.tournament_id == round_.tournament_id,
            Round.round_number == round_.round_number + 1,
        )
        .first()
    )


def find_target_match(session: Session, match: Match) -> Optional[tuple[Match, str]]:
    """
    The next-round match and slot that ``match``'s winner feeds, or None
    when ``match`` is in the final round.
    """
    next_round = find_next_round(session, match.round)
    if next_round is None:
        return None
    target_number = get_next_match_number(match.match_number)
    target = (
        session.query(Match)
        .filter(
            Match.round_id == next_round.id,
            Match.match_number == target_number,
            Match.deleted_at.is_(None),
        )
        .first()
    )
    if target is None:
        logger.warning(
            "No match #%d in round %d to receive the winner of match %d",
            target_number, next_round.round_number, match.id,
        )
        return None
    return target, get_target_slot(match.match_number)


def propagate_winner(session: Session, match: Match) -> Optional[Match]:
    """
    Write a finalized match's winner into its next-round slot.

    Idempotent: replaying it for the same result leaves the target unchanged.

    Returns:
        The updated target match, or None if there is no next round
    """
    if match.winner_name is None:
        raise InvalidStateError(f"Match {match.id} has no winner to propagate")

    found = find_target_match(session, match)
    if found is None:
        return None
    target, slot = found
    for column, value in slot_values(slot, match.winner_name, match.winner_seed, match.id).items():
        setattr(target, column, value)
    session.flush()

    logger.info(
        "Propagated %s from match %d into match %d (%s)",
        match.winner_name, match.id, target.id, slot,
    )
    return target


def propagate_bracket(session: Session, rounds: Sequence[Round]) -> PropagationStats:
    """
    Propagate every decided match of a bracket.

    Rounds are processed in order. Writes into a round are grouped per
    target match (so the odd and even feeders of one target become a single
    row update) and applied as one bulk UPDATE per round before the next
    round is read. The outcome equals propagating each match one by one.
    """
    stats = PropagationStats()
    ordered = sorted(rounds, key=lambda r: r.round_number)
    rounds_by_number = {r.round_number: r for r in ordered}

    # Bulk updates bypass the unit of work
    session.flush()

    for round_ in ordered:
        next_round = rounds_by_number.get(round_.round_number + 1)
        if next_round is None:
            continue
        targets_by_number = {
            m.match_number: m for m in next_round.matches if m.deleted_at is None
        }

        rows: dict[int, dict[str, object]] = {}
        for match in round_.matches:
            if (
                match.deleted_at is not None
                or match.status != MATCH_STATUS_FINALIZED
                or not match.winner_name
            ):
                continue
            target_number = get_next_match_number(match.match_number)
            target = targets_by_number.get(target_number)
            if target is None:
                stats.missing_targets.append(
                    f"round {next_round.round_number} match {target_number}"
                )
                continue
            row = rows.setdefault(target.id, {"id": target.id})
            row.update(
                slot_values(
                    get_target_slot(match.match_number),
                    match.winner_name,
                    match.winner_seed,
                    match.id,
                )
            )
            stats.slots_written += 1

        if not rows:
            continue

        session.execute(update(Match), list(rows.values()))
        # Reload the updated rows before their own winners are propagated
        for target_id in rows:
            session.expire(session.get(Match, target_id))
        stats.matches_updated += len(rows)
        stats.rounds_updated += 1

    for missing in stats.missing_targets:
        logger.warning("Propagation target missing: %s", missing)
    logger.info(stats.summary())
    return stats


def find_propagated_slots(session: Session, match: Match) -> list[tuple[Match, str]]:
    """Next-round slots whose player came from ``match``."""
    targets = (
        session.query(Match)
        .filter(
            or_(
                Match.player1_source_match_id == match.id,
                Match.player2_source_match_id == match.id,
            ),
            Match.deleted_at.is_(None),
        )
        .all()
    )
    slots = []
    for target in targets:
        if target.player1_source_match_id == match.id:
            slots.append((target, PLAYER1_SLOT))
        if target.player2_source_match_id == match.id:
            slots.append((target, PLAYER2_SLOT))
    return slots


def ensure_retractable(session: Session, match: Match) -> list[tuple[Match, str]]:
    """
    Check that the winner of ``match`` can be taken back out of the next round.

    Raises:
        InvalidStateError: if a receiving match has already been finalized
    """
    slots = find_propagated_slots(session, match)
    for target, _ in slots:
        if target.status == MATCH_STATUS_FINALIZED:
            raise InvalidStateError(
                f"Match {target.match_number} of the next round is already finalized; "
                f"unfinalize it before unfinalizing match {match.match_number}"
            )
    return slots


def retract_propagation(session: Session, match: Match) -> int:
    """
    Reset every slot filled by ``match``'s winner to TBD with no seed.

    Returns:
        Number of slots reset
    """
    slots = ensure_retractable(session, match)
    for target, slot in slots:
        setattr(target, f"{slot}_name", TBD_PLAYER)
        setattr(target, f"{slot}_seed", None)
        setattr(target, f"{slot}_source_match_id", None)
    session.flush()
    if slots:
        logger.info("Retracted %d propagated slots from match %d", len(slots), match.id)
    return len(slots)
