"""Unit tests for streak bookkeeping and achievement awards."""

from datetime import datetime, timedelta

import pytest

from pickem.db.models import AchievementDefinition, Match, UserAchievement, UserRoundPick, UserStreak
from pickem.scoring.achievements import (
    EARLY_BIRD,
    EXACT_MASTER,
    FIRST_100_POINTS,
    FIRST_RANK_1,
    PERFECT_ROUND,
    UPSET_CALLER,
    award_achievement,
    check_points_milestone,
    check_streak_achievements,
    get_achievement_catalog,
    get_user_achievement_codes,
    is_upset,
    seed_achievement_definitions,
    streak_code,
)
from pickem.scoring.streaks import apply_streak_result, update_streaks_for_match
from pickem.services.admin import close_tournament


def _match(round_, number):
    return next(m for m in round_.matches if m.match_number == number)


class TestStreaks:

    def test_apply_streak_result(self):
        streak = UserStreak(user_id="alice", current_streak=3, longest_streak=3)

        apply_streak_result(streak, True)
        assert (streak.current_streak, streak.longest_streak) == (4, 4)

        apply_streak_result(streak, False)
        assert (streak.current_streak, streak.longest_streak) == (0, 4)

    def test_first_result_creates_row(self, db_session, users, tournament):
        match = _match(tournament.rounds[0], 2)

        streaks = update_streaks_for_match(db_session, match.id, {"alice": True, "bob": False})

        assert streaks["alice"].current_streak == 1
        assert streaks["bob"].current_streak == 0
        assert db_session.query(UserStreak).count() == 2

    def test_repeat_insert_does_not_duplicate(self, db_session, users, tournament):
        match = _match(tournament.rounds[0], 2)

        update_streaks_for_match(db_session, match.id, {"alice": True})
        streaks = update_streaks_for_match(db_session, match.id, {"alice": True})

        assert streaks["alice"].current_streak == 2
        assert db_session.query(UserStreak).filter(UserStreak.user_id == "alice").count() == 1

    def test_no_results(self, db_session):
        assert update_streaks_for_match(db_session, 1, {}) == {}


class TestCatalog:

    def test_catalog_codes(self):
        codes = [entry.code for entry in get_achievement_catalog()]

        assert codes == [
            PERFECT_ROUND,
            EXACT_MASTER,
            streak_code(5),
            streak_code(10),
            FIRST_100_POINTS,
            FIRST_RANK_1,
            UPSET_CALLER,
            EARLY_BIRD,
        ]

    def test_seed_is_idempotent(self, db_session):
        seed_achievement_definitions(db_session)
        seed_achievement_definitions(db_session)

        assert db_session.query(AchievementDefinition).count() == len(get_achievement_catalog())

    def test_award_once(self, db_session, users):
        assert award_achievement(db_session, "alice", EXACT_MASTER) is True
        assert award_achievement(db_session, "alice", EXACT_MASTER) is False

        assert db_session.query(UserAchievement).count() == 1
        assert get_user_achievement_codes(db_session, "alice") == {EXACT_MASTER}


class TestChecks:

    def test_streak_thresholds(self, db_session, users, tournament):
        match = _match(tournament.rounds[0], 2)

        assert check_streak_achievements(db_session, "alice", 4, match) == []
        assert check_streak_achievements(db_session, "alice", 5, match) == ["STREAK_5"]
        assert check_streak_achievements(db_session, "alice", 10, match) == ["STREAK_10"]
        assert check_streak_achievements(db_session, "alice", 12, match) == []

    @pytest.mark.parametrize(
        "p1_seed, p2_seed, winner, expected",
        [
            (None, 8, "A", True),      # top-8 seed lost to unseeded
            (12, 3, "A", True),        # top seed lost to a lower seed
            (None, 9, "A", False),     # loser outside the cutoff
            (2, 5, "A", False),        # favourite won
            (5, 2, "B", False),        # favourite won from player2
            (None, None, "A", False),  # nobody seeded
        ],
    )
    def test_is_upset(self, p1_seed, p2_seed, winner, expected):
        match = Match(
            player1_name="A",
            player2_name="B",
            player1_seed=p1_seed,
            player2_seed=p2_seed,
            winner_name=winner,
        )
        assert is_upset(match) is expected

    def test_points_milestone(self, db_session, users, tournament):
        sheet = UserRoundPick(
            user_id="alice", round_id=tournament.rounds[0].id, is_draft=False, total_points=99
        )
        db_session.add(sheet)
        db_session.flush()
        assert check_points_milestone(db_session, "alice") is False

        sheet.total_points = 100
        db_session.flush()
        assert check_points_milestone(db_session, "alice") is True


class TestAwardsFromScoring:

    def test_upset_caller(self, db_session, users, round1, submit, finalize):
        submit("alice", round1, {2: ("Ruud", 2, 0)})
        submit("bob", round1, {2: ("Fritz", 2, 0)})

        result = finalize(round1, 2, "Ruud", 2, 1)

        assert result.scoring.achievements.get("alice") == [UPSET_CALLER]
        assert UPSET_CALLER not in get_user_achievement_codes(db_session, "bob")

    def test_perfect_round_and_exact_master(self, db_session, users, round1, submit, finalize):
        submit("alice", round1, {2: ("Ruud", 2, 1), 3: ("Paul", 2, 0), 4: ("Alcaraz", 2, 1)})
        submit("bob", round1, {2: ("Ruud", 2, 1), 3: ("Draper", 2, 0), 4: ("Alcaraz", 2, 1)})

        finalize(round1, 2, "Ruud", 2, 1)
        finalize(round1, 3, "Paul", 2, 0)
        assert PERFECT_ROUND not in get_user_achievement_codes(db_session, "alice")

        result = finalize(round1, 4, "Alcaraz", 2, 1)

        assert set(result.scoring.achievements["alice"]) >= {PERFECT_ROUND, EXACT_MASTER}
        assert PERFECT_ROUND not in get_user_achievement_codes(db_session, "bob")
        award = (
            db_session.query(UserAchievement)
            .join(AchievementDefinition)
            .filter(UserAchievement.user_id == "alice", AchievementDefinition.code == PERFECT_ROUND)
            .one()
        )
        assert award.round_id == round1.id
        assert award.tournament_id == round1.tournament_id

    def test_retirement_excluded_from_perfect_round(self, db_session, users, round1, submit, finalize):
        submit("alice", round1, {2: ("Ruud", 2, 0), 4: ("Alcaraz", 2, 0)})

        finalize(round1, 2, "Ruud", 2, 0)
        finalize(round1, 4, "Alcaraz", 2, 0)
        finalize(round1, 3, "Paul", 1, 0, is_retirement=True)

        assert PERFECT_ROUND in get_user_achievement_codes(db_session, "alice")

    def test_early_bird_within_window(self, db_session, users, round1, submit):
        submit("alice", round1, {2: ("Ruud", 2, 0)})

        assert EARLY_BIRD in get_user_achievement_codes(db_session, "alice")

    def test_no_early_bird_after_window(self, db_session, users, round1, submit):
        round1.opens_at = datetime.utcnow() - timedelta(hours=2)
        db_session.flush()

        submit("alice", round1, {2: ("Ruud", 2, 0)})

        assert EARLY_BIRD not in get_user_achievement_codes(db_session, "alice")

    def test_champion_on_close(self, db_session, admin, users, round1, submit, finalize):
        submit("alice", round1, {2: ("Fritz", 2, 0)})
        submit("bob", round1, {2: ("Ruud", 2, 0)})
        finalize(round1, 2, "Ruud", 2, 0)

        champion = close_tournament(db_session, round1.tournament_id, actor_id=admin.id)

        assert champion == "bob"
        assert FIRST_RANK_1 in get_user_achievement_codes(db_session, "bob")
        assert FIRST_RANK_1 not in get_user_achievement_codes(db_session, "alice")
