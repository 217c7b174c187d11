"""
Post-tournament summary.

Built once a tournament is closed, from final (non-draft) pick sheets only:

    podium              top 3 with the point gap to the place above
    top performers      most exact scores, best single-round accuracy,
                        most consistent (lowest points variance over 2+
                        rounds), longest streak
    creative stats      upset callers, consensus favourites, contrarian
                        winners, closest competition, total upsets
    round winners       best sheet per round
    overview            participation and accuracy figures

For the summary an upset is a finalized match where both players were
seeded and the higher seed number won.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from pickem.db.models import Match, MatchPick, Round, UserAchievement, UserRoundPick, UserStreak
from pickem.errors import InvalidStateError
from pickem.match_statuses import MATCH_STATUS_FINALIZED
from pickem.services.leaderboards import LeaderboardEntry, get_tournament_leaderboard
from pickem.services.rounds import get_tournament

logger = logging.getLogger(__name__)

PODIUM_SIZE = 3
TOP_UPSET_CALLERS = 3
TOP_CONTRARIANS = 3
TOP_FAVORITES = 5
# Share of a match's picks below which a correct pick counts as contrarian
CONTRARIAN_PICK_SHARE = 0.30


@dataclass
class PodiumEntry:
    rank: int
    user_id: str
    display_name: str
    total_points: int
    correct_winners: int
    exact_scores: int
    rounds_played: int
    margin_from_previous: int


@dataclass
class UserCount:
    user_id: str
    display_name: str
    count: int


@dataclass
class RoundAccuracy:
    user_id: str
    display_name: str
    round_name: str
    accuracy: float
    correct_winners: int
    total_matches: int


@dataclass
class Consistency:
    user_id: str
    display_name: str
    variance: float
    rounds_played: int
    average_points: float


@dataclass
class TopPerformers:
    most_exact_scores: Optional[UserCount] = None
    best_round_accuracy: Optional[RoundAccuracy] = None
    most_consistent: Optional[Consistency] = None
    longest_streak: Optional[UserCount] = None


@dataclass
class ClosestCompetition:
    leader: LeaderboardEntry
    chaser: LeaderboardEntry
    point_gap: int


@dataclass
class CreativeStats:
    upset_callers: list[UserCount] = field(default_factory=list)
    consensus_favorites: list[tuple[str, int]] = field(default_factory=list)
    contrarian_winners: list[UserCount] = field(default_factory=list)
    closest_competition: Optional[ClosestCompetition] = None
    total_upsets: int = 0


@dataclass
class RoundWinner:
    round_id: int
    round_number: int
    round_name: str
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    total_points: Optional[int] = None


@dataclass
class Overview:
    total_participants: int = 0
    total_predictions: int = 0
    total_matches: int = 0
    finalized_matches: int = 0
    average_accuracy: float = 0.0
    upset_rate: float = 0.0


@dataclass
class TournamentSummary:
    tournament_id: int
    name: str
    year: int
    closed_at: datetime
    podium: list[PodiumEntry] = field(default_factory=list)
    top_performers: Optional[TopPerformers] = None
    creative_stats: Optional[CreativeStats] = None
    round_winners: list[RoundWinner] = field(default_factory=list)
    overview: Overview = field(default_factory=Overview)
    achievements: list[UserAchievement] = field(default_factory=list)


def is_seeded_upset(match: Match) -> bool:
    """Both players seeded and the higher seed number won."""
    if not match.winner_name or match.player1_seed is None or match.player2_seed is None:
        return False
    if match.winner_name == match.player1_name:
        return match.player1_seed > match.player2_seed
    return match.player2_seed > match.player1_seed


def build_podium(leaderboard: list[LeaderboardEntry]) -> list[PodiumEntry]:
    podium = []
    for i, entry in enumerate(leaderboard[:PODIUM_SIZE]):
        margin = leaderboard[i - 1].total_points - entry.total_points if i > 0 else 0
        podium.append(
            PodiumEntry(
                rank=entry.rank,
                user_id=entry.user_id,
                display_name=entry.display_name,
                total_points=entry.total_points,
                correct_winners=entry.correct_winners,
                exact_scores=entry.exact_scores,
                rounds_played=entry.rounds_played,
                margin_from_previous=margin,
            )
        )
    return podium


def find_most_consistent(points_by_user: dict[str, list[int]], names: dict[str, str]) -> Optional[Consistency]:
    """
    Lowest population variance of per-round points among users with at
    least two rounds. Ties go to the user with more rounds.
    """
    best = None
    for user_id, points in points_by_user.items():
        if len(points) < 2:
            continue
        mean = sum(points) / len(points)
        variance = sum((p - mean) ** 2 for p in points) / len(points)
        if (
            best is None
            or variance < best.variance
            or (variance == best.variance and len(points) > best.rounds_played)
        ):
            best = Consistency(
                user_id=user_id,
                display_name=names[user_id],
                variance=variance,
                rounds_played=len(points),
                average_points=mean,
            )
    return best


def find_closest_competition(leaderboard: list[LeaderboardEntry]) -> Optional[ClosestCompetition]:
    """Adjacent leaderboard pair with the smallest point gap (first wins ties)."""
    closest = None
    for above, below in zip(leaderboard, leaderboard[1:]):
        gap = above.total_points - below.total_points
        if closest is None or gap < closest.point_gap:
            closest = ClosestCompetition(leader=above, chaser=below, point_gap=gap)
    return closest


def _top_counts(counts: Counter, names: dict[str, str], limit: int) -> list[UserCount]:
    # Counter.most_common keeps insertion order for equal counts
    return [
        UserCount(user_id=user_id, display_name=names[user_id], count=count)
        for user_id, count in counts.most_common(limit)
    ]


def get_tournament_summary(session: Session, tournament_id: int) -> TournamentSummary:
    """
    Summary of a closed tournament.

    Raises:
        NotFoundError: tournament missing or deleted
        InvalidStateError: tournament not closed yet
    """
    tournament = get_tournament(session, tournament_id)
    if not tournament.is_closed:
        raise InvalidStateError(
            "Tournament summary is only available after the tournament is closed"
        )

    summary = TournamentSummary(
        tournament_id=tournament.id,
        name=tournament.name,
        year=tournament.year,
        closed_at=tournament.closed_at,
    )

    rounds = (
        session.query(Round)
        .options(selectinload(Round.matches))
        .filter(Round.tournament_id == tournament.id)
        .order_by(Round.round_number)
        .all()
    )
    matches_by_round = {
        r.id: [m for m in r.matches if m.deleted_at is None] for r in rounds
    }
    finalized = [
        m for r in rounds for m in matches_by_round[r.id] if m.status == MATCH_STATUS_FINALIZED
    ]
    # Byes are finalized at upload and never predicted
    decided = [m for m in finalized if not m.is_bye]
    summary.overview.total_matches = sum(len(ms) for ms in matches_by_round.values())
    summary.overview.finalized_matches = len(finalized)

    leaderboard = get_tournament_leaderboard(session, tournament.id)
    if not leaderboard:
        return summary

    names = {entry.user_id: entry.display_name for entry in leaderboard}
    summary.podium = build_podium(leaderboard)

    sheets = (
        session.query(UserRoundPick)
        .join(Round, Round.id == UserRoundPick.round_id)
        .filter(Round.tournament_id == tournament.id, UserRoundPick.is_draft.is_(False))
        .order_by(UserRoundPick.id)
        .all()
    )

    finalized_ids = [m.id for m in decided]
    picks = []
    if finalized_ids:
        picks = (
            session.query(
                UserRoundPick.user_id,
                MatchPick.match_id,
                MatchPick.predicted_winner,
                MatchPick.is_winner_correct,
            )
            .join(UserRoundPick, UserRoundPick.id == MatchPick.user_round_pick_id)
            .filter(MatchPick.match_id.in_(finalized_ids), UserRoundPick.is_draft.is_(False))
            .order_by(MatchPick.id)
            .all()
        )

    # ---- top performers ----
    performers = TopPerformers()
    top_exact = max(leaderboard, key=lambda e: e.exact_scores)
    performers.most_exact_scores = UserCount(
        user_id=top_exact.user_id,
        display_name=top_exact.display_name,
        count=top_exact.exact_scores,
    )

    finalized_per_round = {
        round_id: sum(1 for m in ms if m.status == MATCH_STATUS_FINALIZED and not m.is_bye)
        for round_id, ms in matches_by_round.items()
    }
    round_names = {r.id: r.name for r in rounds}
    for sheet in sheets:
        total = finalized_per_round.get(sheet.round_id, 0)
        if total == 0:
            continue
        accuracy = sheet.correct_winners / total * 100
        best = performers.best_round_accuracy
        if (
            best is None
            or accuracy > best.accuracy
            or (accuracy == best.accuracy and sheet.correct_winners > best.correct_winners)
        ):
            performers.best_round_accuracy = RoundAccuracy(
                user_id=sheet.user_id,
                display_name=names[sheet.user_id],
                round_name=round_names[sheet.round_id],
                accuracy=accuracy,
                correct_winners=sheet.correct_winners,
                total_matches=total,
            )

    points_by_user: dict[str, list[int]] = defaultdict(list)
    for sheet in sheets:
        points_by_user[sheet.user_id].append(sheet.total_points)
    performers.most_consistent = find_most_consistent(points_by_user, names)

    streak = (
        session.query(UserStreak)
        .filter(UserStreak.user_id.in_(list(names)))
        .order_by(UserStreak.longest_streak.desc(), UserStreak.user_id)
        .first()
    )
    if streak is not None:
        performers.longest_streak = UserCount(
            user_id=streak.user_id,
            display_name=names[streak.user_id],
            count=streak.longest_streak,
        )
    summary.top_performers = performers

    # ---- creative stats ----
    upset_ids = {m.id for m in decided if is_seeded_upset(m)}
    upset_calls: Counter = Counter()
    player_picks: Counter = Counter()
    picks_per_match: Counter = Counter()
    player_picks_per_match: Counter = Counter()
    for pick in picks:
        player_picks[pick.predicted_winner] += 1
        picks_per_match[pick.match_id] += 1
        player_picks_per_match[(pick.match_id, pick.predicted_winner)] += 1
        if pick.is_winner_correct and pick.match_id in upset_ids:
            upset_calls[pick.user_id] += 1

    contrarian: Counter = Counter()
    for pick in picks:
        if not pick.is_winner_correct:
            continue
        share = player_picks_per_match[(pick.match_id, pick.predicted_winner)] / picks_per_match[pick.match_id]
        if share < CONTRARIAN_PICK_SHARE:
            contrarian[pick.user_id] += 1

    summary.creative_stats = CreativeStats(
        upset_callers=_top_counts(upset_calls, names, TOP_UPSET_CALLERS),
        consensus_favorites=player_picks.most_common(TOP_FAVORITES),
        contrarian_winners=_top_counts(contrarian, names, TOP_CONTRARIANS),
        closest_competition=find_closest_competition(leaderboard),
        total_upsets=len(upset_ids),
    )

    # ---- round winners ----
    for round_ in rounds:
        winner = RoundWinner(
            round_id=round_.id,
            round_number=round_.round_number,
            round_name=round_.name,
        )
        round_sheets = [s for s in sheets if s.round_id == round_.id]
        if round_sheets:
            top = max(round_sheets, key=lambda s: s.total_points)
            winner.user_id = top.user_id
            winner.display_name = names[top.user_id]
            winner.total_points = top.total_points
        summary.round_winners.append(winner)

    # ---- overview ----
    overview = summary.overview
    overview.total_participants = len(leaderboard)
    overview.total_predictions = len(picks)
    if picks:
        correct = sum(1 for p in picks if p.is_winner_correct)
        overview.average_accuracy = correct / len(picks) * 100
    if decided:
        overview.upset_rate = len(upset_ids) / len(decided) * 100

    summary.achievements = (
        session.query(UserAchievement)
        .options(selectinload(UserAchievement.achievement))
        .filter(UserAchievement.tournament_id == tournament.id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
        .all()
    )

    logger.debug(
        "Summary for tournament %d: %d participants, %d predictions",
        tournament.id, overview.total_participants, overview.total_predictions,
    )
    return summary
