"""
Pickem services: business logic on top of the database models.

Admin flows:
1. Draw commit: creates or re-uploads a tournament bracket from a parsed draw
2. Round and match state machine: active round, submissions, finalization
3. Tournament close: archive and champion award

User flows:
- Draft and final pick submission

Read-only projections:
- Tournament and all-time leaderboards
- Post-tournament summary

Usage:
    from pickem.services import (
        commit_draw,
        finalize_match,
        submit_round_picks,
    )
"""

from pickem.services.admin import (
    FinalizeResult,
    ReopenResult,
    close_round_submissions,
    close_tournament,
    finalize_match,
    reopen_round_submissions,
    rescore_round_scores,
    set_active_round,
    unfinalize_match,
    update_scoring_rule,
    update_tournament,
)
from pickem.services.draw_ingestion import (
    DrawCommitResult,
    DrawCommitStats,
    commit_draw,
)
from pickem.services.leaderboards import (
    LeaderboardEntry,
    get_all_time_leaderboard,
    get_tournament_leaderboard,
    get_user_tournament_stats,
)
from pickem.services.picks import (
    PickInput,
    save_round_picks_draft,
    submit_round_picks,
)
from pickem.services.propagation import (
    PropagationStats,
    propagate_bracket,
    propagate_winner,
)
from pickem.services.summary import TournamentSummary, get_tournament_summary

__all__ = [
    # Draw commit
    "commit_draw",
    "DrawCommitResult",
    "DrawCommitStats",
    # Propagation
    "propagate_bracket",
    "propagate_winner",
    "PropagationStats",
    # Admin
    "set_active_round",
    "close_round_submissions",
    "reopen_round_submissions",
    "finalize_match",
    "unfinalize_match",
    "close_tournament",
    "update_tournament",
    "update_scoring_rule",
    "rescore_round_scores",
    "FinalizeResult",
    "ReopenResult",
    # Picks
    "PickInput",
    "save_round_picks_draft",
    "submit_round_picks",
    # Leaderboards and summary
    "LeaderboardEntry",
    "get_tournament_leaderboard",
    "get_all_time_leaderboard",
    "get_user_tournament_stats",
    "TournamentSummary",
    "get_tournament_summary",
]
