"""
Pick scoring module.

Implements the contest scoring rules:
- Round scoring tiers keyed by distance from the final
- Points for a correct winner plus a bonus for the exact set score
- Pick sheet totals recomputed from their match picks
- Global correct-pick streaks under row locking
- Achievements awarded once per user
"""

from pickem.scoring.calculator import MatchResult, PickScore, score_pick
from pickem.scoring.engine import (
    MatchScoringResult,
    recalculate_user_round_pick_totals,
    rescore_round,
    score_match,
    unscore_match,
)
from pickem.scoring.rules import (
    RoundTier,
    RulePoints,
    get_round_tier,
    get_tier_points,
    validate_set_score,
)

__all__ = [
    "MatchResult",
    "PickScore",
    "score_pick",
    "MatchScoringResult",
    "recalculate_user_round_pick_totals",
    "rescore_round",
    "score_match",
    "unscore_match",
    "RoundTier",
    "RulePoints",
    "get_round_tier",
    "get_tier_points",
    "validate_set_score",
]
