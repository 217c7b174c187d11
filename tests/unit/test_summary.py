"""
Unit tests for the post-tournament summary.

The played fixture runs two rounds of the test draw:

    R1  alice  Fritz 2-0 / Paul 2-0 / Alcaraz 2-1   -> 35 pts
        bob    Fritz 2-1 / Draper 2-0 / Alcaraz 2-0 -> 25 pts
        carol  Ruud 2-0 / Draper 2-1 / Rune 2-0     -> 0 pts
        results: Fritz 2-0, Paul 2-1, Alcaraz 2-0
    R2  alice Sinner 2-0, bob Fritz 2-1; Fritz (8) beats Sinner (1) 2-1
"""

import pytest

from pickem.db.models import Match
from pickem.errors import InvalidStateError
from pickem.scoring.achievements import FIRST_RANK_1
from pickem.services.admin import close_tournament, set_active_round
from pickem.services.leaderboards import LeaderboardEntry
from pickem.services.summary import (
    find_closest_competition,
    find_most_consistent,
    get_tournament_summary,
    is_seeded_upset,
)


@pytest.fixture
def played(db_session, admin, users, round1, submit, finalize):
    tournament = round1.tournament
    submit("alice", round1, {2: ("Fritz", 2, 0), 3: ("Paul", 2, 0), 4: ("Alcaraz", 2, 1)})
    submit("bob", round1, {2: ("Fritz", 2, 1), 3: ("Draper", 2, 0), 4: ("Alcaraz", 2, 0)})
    submit("carol", round1, {2: ("Ruud", 2, 0), 3: ("Draper", 2, 1), 4: ("Rune", 2, 0)})
    finalize(round1, 2, "Fritz", 2, 0)
    finalize(round1, 3, "Paul", 2, 1)
    finalize(round1, 4, "Alcaraz", 2, 0)

    set_active_round(db_session, tournament.id, 2, actor_id=admin.id)
    round2 = tournament.rounds[1]
    submit("alice", round2, {1: ("Sinner", 2, 0)})
    submit("bob", round2, {1: ("Fritz", 2, 1)})
    finalize(round2, 1, "Fritz", 2, 1)

    close_tournament(db_session, tournament.id, actor_id=admin.id)
    return tournament


def _entry(rank, user_id, points):
    return LeaderboardEntry(
        rank=rank,
        user_id=user_id,
        display_name=user_id.title(),
        total_points=points,
        correct_winners=0,
        exact_scores=0,
        rounds_played=1,
        earliest_submission=None,
    )


class TestHelpers:

    @pytest.mark.parametrize(
        "seed1, seed2, winner, expected",
        [
            (1, 8, "B", True),
            (8, 1, "A", True),
            (1, 8, "A", False),
            (None, 8, "A", False),
            (3, None, "B", False),
        ],
    )
    def test_is_seeded_upset(self, seed1, seed2, winner, expected):
        match = Match(
            player1_name="A", player1_seed=seed1,
            player2_name="B", player2_seed=seed2,
            winner_name=winner,
        )
        assert is_seeded_upset(match) is expected

    def test_most_consistent_needs_two_rounds(self):
        names = {"a": "A", "b": "B"}
        assert find_most_consistent({"a": [10], "b": [5]}, names) is None

    def test_most_consistent_prefers_more_rounds_on_tie(self):
        names = {"a": "A", "b": "B", "c": "C"}
        best = find_most_consistent({"a": [10, 10], "b": [4, 4, 4], "c": [0, 30]}, names)

        assert best.user_id == "b"
        assert best.variance == 0
        assert best.rounds_played == 3
        assert best.average_points == 4

    def test_closest_competition(self):
        board = [_entry(1, "a", 50), _entry(2, "b", 40), _entry(3, "c", 30), _entry(4, "d", 5)]

        closest = find_closest_competition(board)

        assert (closest.leader.user_id, closest.chaser.user_id, closest.point_gap) == ("a", "b", 10)
        assert find_closest_competition(board[:1]) is None


class TestTournamentSummary:

    def test_requires_closed_tournament(self, db_session, tournament):
        with pytest.raises(InvalidStateError, match="after the tournament is closed"):
            get_tournament_summary(db_session, tournament.id)

    def test_no_participants(self, db_session, admin, tournament):
        close_tournament(db_session, tournament.id, actor_id=admin.id)

        summary = get_tournament_summary(db_session, tournament.id)

        assert summary.podium == []
        assert summary.top_performers is None
        assert summary.creative_stats is None
        assert summary.overview.total_matches == 7
        # Only the bye
        assert summary.overview.finalized_matches == 1
        assert summary.closed_at is not None

    def test_podium(self, db_session, played):
        summary = get_tournament_summary(db_session, played.id)

        assert [(p.rank, p.user_id, p.total_points) for p in summary.podium] == [
            (1, "bob", 43),
            (2, "alice", 35),
            (3, "carol", 0),
        ]
        assert [p.margin_from_previous for p in summary.podium] == [0, 8, 35]
        assert (summary.name, summary.year) == ("Test Open", 2025)

    def test_top_performers(self, db_session, played):
        performers = get_tournament_summary(db_session, played.id).top_performers

        assert (performers.most_exact_scores.user_id, performers.most_exact_scores.count) == ("bob", 2)

        accuracy = performers.best_round_accuracy
        assert (accuracy.user_id, accuracy.round_name) == ("alice", "Quarter Finals")
        assert accuracy.accuracy == 100
        assert (accuracy.correct_winners, accuracy.total_matches) == (3, 3)

        consistent = performers.most_consistent
        assert consistent.user_id == "bob"
        assert consistent.variance == pytest.approx(12.25)
        assert consistent.average_points == pytest.approx(21.5)

        assert (performers.longest_streak.user_id, performers.longest_streak.count) == ("alice", 3)

    def test_creative_stats(self, db_session, played):
        stats = get_tournament_summary(db_session, played.id).creative_stats

        assert stats.total_upsets == 1
        assert [(c.user_id, c.count) for c in stats.upset_callers] == [("bob", 1)]
        assert stats.consensus_favorites[0] == ("Fritz", 3)
        assert len(stats.consensus_favorites) == 5
        assert stats.contrarian_winners == []
        closest = stats.closest_competition
        assert (closest.leader.user_id, closest.chaser.user_id, closest.point_gap) == ("bob", "alice", 8)

    def test_round_winners(self, db_session, played):
        winners = get_tournament_summary(db_session, played.id).round_winners

        assert [(w.round_number, w.user_id, w.total_points) for w in winners] == [
            (1, "alice", 35),
            (2, "bob", 18),
            (3, None, None),
        ]
        assert winners[2].round_name == "Final"

    def test_overview(self, db_session, played):
        overview = get_tournament_summary(db_session, played.id).overview

        assert overview.total_participants == 3
        assert overview.total_predictions == 11
        assert overview.total_matches == 7
        assert overview.finalized_matches == 5
        assert overview.average_accuracy == pytest.approx(6 / 11 * 100)
        assert overview.upset_rate == pytest.approx(25.0)

    def test_achievements(self, db_session, played):
        achievements = get_tournament_summary(db_session, played.id).achievements

        champions = [a.user_id for a in achievements if a.achievement.code == FIRST_RANK_1]
        assert champions == ["bob"]
        assert all(a.tournament_id == played.id for a in achievements)
