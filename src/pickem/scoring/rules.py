"""
Scoring tiers and set-score validation.

A round's tier is decided by its distance from the final rather than by
its display name: the last round is the final, the one before it the
semi finals, and every earlier round shares the default tier. Names are
only consulted when a round's position in the bracket is unknown.

Points per tier come from settings:

    Tier       Winner  Exact
    default      10      5
    semi final   12      6
    final        15      8
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pickem.config import settings
from pickem.draw import rounds_from_final
from pickem.errors import PickValidationError
from pickem.match_statuses import get_sets_to_win


class RoundTier(str, Enum):
    DEFAULT = "default"
    SEMI_FINAL = "semi_final"
    FINAL = "final"


@dataclass(frozen=True)
class RulePoints:
    points_per_winner: int
    points_exact_score: int


# Tier by distance from the final; anything further out is DEFAULT
_TIER_BY_DISTANCE: dict[int, RoundTier] = {
    0: RoundTier.FINAL,
    1: RoundTier.SEMI_FINAL,
}

_TIER_BY_NAME: dict[str, RoundTier] = {
    "final": RoundTier.FINAL,
    "finals": RoundTier.FINAL,
    "f": RoundTier.FINAL,
    "semi finals": RoundTier.SEMI_FINAL,
    "semi-finals": RoundTier.SEMI_FINAL,
    "semifinals": RoundTier.SEMI_FINAL,
    "semi final": RoundTier.SEMI_FINAL,
    "sf": RoundTier.SEMI_FINAL,
}


def get_round_tier(round_number: int, total_rounds: int) -> RoundTier:
    """
    Tier of a round given its number and the number of rounds in the draw.

    Examples:
        >>> get_round_tier(7, 7)
        <RoundTier.FINAL: 'final'>
        >>> get_round_tier(1, 2)
        <RoundTier.SEMI_FINAL: 'semi_final'>
        >>> get_round_tier(3, 7)
        <RoundTier.DEFAULT: 'default'>
    """
    distance = rounds_from_final(round_number, total_rounds)
    return _TIER_BY_DISTANCE.get(distance, RoundTier.DEFAULT)


def get_round_tier_by_name(round_name: Optional[str]) -> RoundTier:
    """Tier for a round whose bracket position is unknown (e.g. ad-hoc rounds)."""
    if not round_name:
        return RoundTier.DEFAULT
    return _TIER_BY_NAME.get(round_name.strip().lower(), RoundTier.DEFAULT)


def get_tier_points(tier: RoundTier) -> RulePoints:
    """Configured points for a tier."""
    if tier is RoundTier.FINAL:
        return RulePoints(settings.final_points_per_winner, settings.final_points_exact_score)
    if tier is RoundTier.SEMI_FINAL:
        return RulePoints(settings.semi_final_points_per_winner, settings.semi_final_points_exact_score)
    return default_rule_points()


def default_rule_points() -> RulePoints:
    """Points used when a round has no scoring rule row."""
    return RulePoints(settings.default_points_per_winner, settings.default_points_exact_score)


def validate_set_score(
    tournament_format: str,
    sets_won: int,
    sets_lost: int,
    is_retirement: bool = False,
) -> None:
    """
    Validate a winner-perspective set score against the tournament format.

    The winner must lead on sets and, unless the match ended in a
    retirement, must have exactly the sets needed to win. A retirement
    relaxes the exact count but never lets either side exceed it.

    Raises:
        PickValidationError: when the score is impossible for the format

    Examples:
        >>> validate_set_score("best-of-3", 2, 1)
        >>> validate_set_score("best-of-5", 2, 0)
        Traceback (most recent call last):
        ...
        pickem.errors.PickValidationError: Winner must win exactly 3 sets in a best-of-5 match (got 2-0)
    """
    try:
        sets_to_win = get_sets_to_win(tournament_format)
    except ValueError as e:
        raise PickValidationError(str(e)) from e

    if sets_won is None or sets_lost is None:
        raise PickValidationError("Set counts are required")
    if sets_won < 0 or sets_lost < 0:
        raise PickValidationError(f"Set counts cannot be negative (got {sets_won}-{sets_lost})")
    if sets_won <= sets_lost:
        raise PickValidationError(
            f"Winner must win more sets than the loser (got {sets_won}-{sets_lost})"
        )
    if is_retirement:
        if sets_won > sets_to_win:
            raise PickValidationError(
                f"Winner cannot win more than {sets_to_win} sets in a "
                f"{tournament_format} match (got {sets_won}-{sets_lost})"
            )
        return
    if sets_won != sets_to_win:
        raise PickValidationError(
            f"Winner must win exactly {sets_to_win} sets in a "
            f"{tournament_format} match (got {sets_won}-{sets_lost})"
        )
