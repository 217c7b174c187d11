"""
Scoring engine: applies pick scores for finalized matches and keeps the
per-round pick sheet totals in step.

Operations:
- score_match: score every pick on a finalized match, recompute the touched
  sheets' totals, advance streaks and evaluate achievements
- unscore_match: clear every pick on a match and recompute totals
- rescore_round: score every finalized match of a round again (after a
  scoring rule change)

Totals on UserRoundPick are always recomputed from the sheet's MatchPick
rows, never incremented, so they equal the sum of points_earned after any
operation completes.

Usage:
    from pickem.scoring.engine import score_match

    with get_session() as session:
        result = score_match(session, match_id)
        print(result.summary())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from pickem.db.models import Match, MatchPick, Round, UserRoundPick
from pickem.errors import IncompleteDataError, InvalidStateError, NotFoundError
from pickem.match_statuses import MATCH_STATUS_FINALIZED
from pickem.scoring.achievements import evaluate_achievements_after_scoring
from pickem.scoring.calculator import UNSCORED, MatchResult, PickScore, score_pick
from pickem.scoring.rules import RulePoints, default_rule_points
from pickem.scoring.streaks import update_streaks_for_match

logger = logging.getLogger(__name__)


@dataclass
class MatchScoringResult:
    """What one score_match call changed."""
    match_id: int
    picks_scored: int = 0
    sheets_updated: int = 0
    streaks_updated: int = 0
    is_retirement: bool = False
    achievements: dict[str, list[str]] = field(default_factory=dict)

    def summary(self) -> str:
        unlocked = sum(len(codes) for codes in self.achievements.values())
        return (
            f"Match {self.match_id} scored: picks={self.picks_scored}, "
            f"sheets={self.sheets_updated}, streaks={self.streaks_updated}, "
            f"achievements={unlocked}"
            + (" (retirement, not scored)" if self.is_retirement else "")
        )


def get_round_rule_points(round_: Round) -> RulePoints:
    """The round's scoring rule, or the default 10/5 when it has none."""
    rule = round_.scoring_rule
    if rule is None:
        return default_rule_points()
    return RulePoints(rule.points_per_winner, rule.points_exact_score)


def _load_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if match is None or match.deleted_at is not None:
        raise NotFoundError(f"Match {match_id} not found")
    return match


def _apply(pick: MatchPick, score: PickScore) -> None:
    pick.is_winner_correct = score.is_winner_correct
    pick.is_exact_score = score.is_exact_score
    pick.points_earned = score.points_earned


def recalculate_user_round_pick_totals(
    session: Session,
    user_round_pick_ids: Iterable[int],
) -> list[UserRoundPick]:
    """
    Recompute cached totals for the given pick sheets from their match picks
    and stamp scored_at.

    Returns:
        The updated sheets
    """
    ids = sorted(set(user_round_pick_ids))
    if not ids:
        return []

    session.flush()
    aggregates = {
        row.user_round_pick_id: row
        for row in session.query(
            MatchPick.user_round_pick_id,
            func.coalesce(func.sum(MatchPick.points_earned), 0).label("points"),
            func.sum(case((MatchPick.is_winner_correct.is_(True), 1), else_=0)).label("correct"),
            func.sum(case((MatchPick.is_exact_score.is_(True), 1), else_=0)).label("exact"),
        )
        .filter(MatchPick.user_round_pick_id.in_(ids))
        .group_by(MatchPick.user_round_pick_id)
        .all()
    }

    now = datetime.utcnow()
    sheets = session.query(UserRoundPick).filter(UserRoundPick.id.in_(ids)).all()
    for sheet in sheets:
        agg = aggregates.get(sheet.id)
        sheet.total_points = int(agg.points) if agg else 0
        sheet.correct_winners = int(agg.correct or 0) if agg else 0
        sheet.exact_scores = int(agg.exact or 0) if agg else 0
        sheet.scored_at = now
    session.flush()
    return sheets


def score_match(
    session: Session,
    match_id: int,
    update_streaks: bool = True,
    evaluate_achievements: bool = True,
) -> MatchScoringResult:
    """
    Score every pick on a finalized match.

    Retirements are not predictively scored: each pick is reset to
    unscored (None/None/0), totals are still recomputed, and streaks are
    left alone.

    Args:
        session: Database session
        match_id: Match to score
        update_streaks: Apply this match to users' streaks
        evaluate_achievements: Run achievement checks for affected users

    Raises:
        NotFoundError: match missing or deleted
        InvalidStateError: match is not finalized
        IncompleteDataError: winner or set counts missing
    """
    match = _load_match(session, match_id)
    if match.status != MATCH_STATUS_FINALIZED:
        raise InvalidStateError(f"Match {match_id} is not finalized")
    if match.winner_name is None or match.sets_won is None or match.sets_lost is None:
        raise IncompleteDataError(f"Match {match_id} does not have complete result data")

    picks = (
        session.query(MatchPick)
        .filter(MatchPick.match_id == match.id)
        .order_by(MatchPick.id)
        .all()
    )
    result = MatchScoringResult(match_id=match.id, is_retirement=match.is_retirement)

    if match.is_retirement:
        for pick in picks:
            _apply(pick, UNSCORED)
    else:
        points = get_round_rule_points(match.round)
        match_result = MatchResult(match.winner_name, match.sets_won, match.sets_lost)
        for pick in picks:
            _apply(
                pick,
                score_pick(
                    match_result,
                    pick.predicted_winner,
                    pick.predicted_sets_won,
                    pick.predicted_sets_lost,
                    points,
                ),
            )
    result.picks_scored = len(picks)

    sheets = recalculate_user_round_pick_totals(
        session, (pick.user_round_pick_id for pick in picks)
    )
    result.sheets_updated = len(sheets)

    results_by_user: dict[str, Optional[bool]] = {
        pick.user_round_pick.user_id: pick.is_winner_correct for pick in picks
    }

    streaks_by_user: dict[str, int] = {}
    if update_streaks and not match.is_retirement:
        streaks = update_streaks_for_match(
            session,
            match.id,
            {uid: bool(correct) for uid, correct in results_by_user.items()},
        )
        streaks_by_user = {uid: s.current_streak for uid, s in streaks.items()}
        result.streaks_updated = len(streaks)

    if evaluate_achievements:
        result.achievements = evaluate_achievements_after_scoring(
            session,
            match,
            results_by_user if not match.is_retirement else {},
            streaks_by_user,
            sheets,
        )

    logger.info(result.summary())
    return result


def unscore_match(session: Session, match_id: int) -> int:
    """
    Clear every pick on a match and recompute the touched sheets' totals.

    Streaks are not reversed.

    Returns:
        Number of picks cleared
    """
    match = _load_match(session, match_id)
    picks = session.query(MatchPick).filter(MatchPick.match_id == match.id).all()
    for pick in picks:
        _apply(pick, UNSCORED)
    recalculate_user_round_pick_totals(
        session, (pick.user_round_pick_id for pick in picks)
    )
    logger.info("Match %d unscored: picks=%d", match.id, len(picks))
    return len(picks)


def rescore_round(session: Session, round_id: int) -> int:
    """
    Score every finalized match in a round again, e.g. after its scoring
    rule changed. Streaks were already applied when each match was first
    scored, so they are not touched here.

    Returns:
        Number of matches rescored
    """
    round_ = session.get(Round, round_id)
    if round_ is None:
        raise NotFoundError(f"Round {round_id} not found")

    match_ids = [
        match_id
        for (match_id,) in session.query(Match.id)
        .filter(
            Match.round_id == round_id,
            Match.deleted_at.is_(None),
            Match.status == MATCH_STATUS_FINALIZED,
            Match.is_bye.is_(False),
        )
        .order_by(Match.match_number)
        .all()
    ]
    for match_id in match_ids:
        score_match(session, match_id, update_streaks=False)

    # Sheets whose picks are all on pending matches still get fresh totals
    sheet_ids = [
        sheet_id
        for (sheet_id,) in session.query(UserRoundPick.id)
        .filter(UserRoundPick.round_id == round_id)
        .all()
    ]
    recalculate_user_round_pick_totals(session, sheet_ids)

    logger.info("Round %d rescored: %d matches", round_id, len(match_ids))
    return len(match_ids)
