"""
Pure pick scoring.

No database access here: given a match result, a prediction and the
round's points, compute correctness and points. The scoring engine
applies these results to MatchPick rows.
"""

from dataclasses import dataclass
from typing import Optional

from pickem.scoring.rules import RulePoints


@dataclass(frozen=True)
class MatchResult:
    """Winner-perspective result of a finalized match."""
    winner_name: str
    sets_won: int
    sets_lost: int


@dataclass(frozen=True)
class PickScore:
    """
    Outcome of scoring one pick.

    The flags are None for picks that are not predictively scored
    (retirements); points_earned is then 0.
    """
    is_winner_correct: Optional[bool]
    is_exact_score: Optional[bool]
    points_earned: int


UNSCORED = PickScore(is_winner_correct=None, is_exact_score=None, points_earned=0)


def score_pick(
    result: MatchResult,
    predicted_winner: str,
    predicted_sets_won: int,
    predicted_sets_lost: int,
    points: RulePoints,
) -> PickScore:
    """
    Score one prediction against a match result.

    The exact-score bonus requires the correct winner as well as the
    exact winner-perspective set counts.

    Examples:
        >>> r = MatchResult("Sinner", 2, 1)
        >>> score_pick(r, "Sinner", 2, 1, RulePoints(10, 5)).points_earned
        15
        >>> score_pick(r, "Sinner", 2, 0, RulePoints(10, 5)).points_earned
        10
        >>> score_pick(r, "Alcaraz", 2, 1, RulePoints(10, 5)).points_earned
        0
    """
    winner_correct = predicted_winner == result.winner_name
    exact = (
        winner_correct
        and predicted_sets_won == result.sets_won
        and predicted_sets_lost == result.sets_lost
    )
    earned = 0
    if winner_correct:
        earned += points.points_per_winner
    if exact:
        earned += points.points_exact_score
    return PickScore(
        is_winner_correct=winner_correct,
        is_exact_score=exact,
        points_earned=earned,
    )
