"""
Draw bracket utility functions.

Provides positional math for tournament brackets. Match numbers are
1-indexed within each round and follow standard single-elimination
bracket progression:

    Round R, match M  ->  Round R+1, match ceil(M/2)

So matches 1 and 2 of the first round feed match 1 of the second round,
matches 3 and 4 feed match 2, etc. The odd feeder fills the player1 slot,
the even feeder fills the player2 slot.

These functions are used by:
- Draw ingestion (validating and propagating an uploaded bracket)
- Winner propagation and retraction (finalize / unfinalize)
- Scoring tiers (which round is the final, the semi finals, ...)
"""

import math
from typing import Optional


PLAYER1_SLOT = "player1"
PLAYER2_SLOT = "player2"

# Ordered round progression for standard single-elimination draws,
# from the largest first round to the final
ROUND_PROGRESSION = ["R128", "R64", "R32", "R16", "QF", "SF", "F"]

# Display names keyed by round code
ROUND_NAMES = {
    "R128": "Round of 128",
    "R64": "Round of 64",
    "R32": "Round of 32",
    "R16": "Round of 16",
    "QF": "Quarter Finals",
    "SF": "Semi Finals",
    "F": "Final",
}


def get_next_match_number(match_number: int) -> int:
    """
    Compute the match number in the next round.

    Winner of match M feeds into match ceil(M/2) in the next round.

    Examples:
        >>> get_next_match_number(1)
        1
        >>> get_next_match_number(2)
        1
        >>> get_next_match_number(3)
        2
    """
    if match_number < 1:
        raise ValueError(f"match_number must be >= 1, got {match_number}")
    return math.ceil(match_number / 2)


def get_target_slot(match_number: int) -> str:
    """
    Slot in the next-round match that the winner of ``match_number`` fills.

    Examples:
        >>> get_target_slot(3)
        'player1'
        >>> get_target_slot(4)
        'player2'
    """
    if match_number < 1:
        raise ValueError(f"match_number must be >= 1, got {match_number}")
    return PLAYER1_SLOT if match_number % 2 == 1 else PLAYER2_SLOT


def get_feeder_match_numbers(match_number: int) -> tuple[int, int]:
    """
    Get the two previous-round match numbers that feed this match.

    Match p in round R+1 is fed by matches 2p-1 (player1) and 2p (player2).

    Examples:
        >>> get_feeder_match_numbers(1)
        (1, 2)
        >>> get_feeder_match_numbers(3)
        (5, 6)
    """
    return (2 * match_number - 1, 2 * match_number)


def rounds_from_final(round_number: int, total_rounds: int) -> int:
    """
    Distance of a round from the final: 0 for the final, 1 for the semi
    finals, 2 for the quarter finals, and so on.

    Examples:
        >>> rounds_from_final(7, 7)
        0
        >>> rounds_from_final(5, 7)
        2
    """
    if round_number < 1 or round_number > total_rounds:
        raise ValueError(
            f"round_number {round_number} outside 1..{total_rounds}"
        )
    return total_rounds - round_number


def get_round_code(round_number: int, total_rounds: int) -> Optional[str]:
    """
    Round code (e.g. 'QF') for a round, or None for draws larger than 128.

    Examples:
        >>> get_round_code(1, 2)
        'SF'
        >>> get_round_code(1, 7)
        'R128'
    """
    distance = rounds_from_final(round_number, total_rounds)
    idx = len(ROUND_PROGRESSION) - 1 - distance
    if idx < 0:
        return None
    return ROUND_PROGRESSION[idx]


def get_round_name(round_number: int, total_rounds: int) -> str:
    """Display name for a round, falling back to 'Round N'."""
    code = get_round_code(round_number, total_rounds)
    if code is None:
        return f"Round {round_number}"
    return ROUND_NAMES[code]


def validate_bracket_shape(match_counts: dict[int, int]) -> list[str]:
    """
    Check that each round has at most half the matches of the round before.

    Args:
        match_counts: round_number -> number of matches in that round

    Returns:
        List of warning messages (empty if the shape is consistent)
    """
    warnings = []
    ordered = sorted(match_counts)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur != prev + 1:
            warnings.append(f"Round numbers skip from {prev} to {cur}")
            continue
        expected = math.ceil(match_counts[prev] / 2)
        if match_counts[cur] > expected:
            warnings.append(
                f"Round {cur} has {match_counts[cur]} matches, "
                f"expected at most {expected}"
            )
    return warnings
