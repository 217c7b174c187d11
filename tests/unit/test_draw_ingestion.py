"""
Unit tests for committing parsed draws.

Covers bracket creation, bye handling, scoring rules per round, results
reported by the parser, and the re-upload guards.
"""

import copy

import pytest

from pickem.db.models import Match, Tournament, UserRoundPick
from pickem.errors import (
    IntegrityConflictError,
    InvalidStateError,
    PermissionDeniedError,
    PickValidationError,
)
from pickem.match_statuses import MATCH_STATUS_FINALIZED, MATCH_STATUS_PENDING, TBD_PLAYER
from pickem.parsed_draw import ParsedDraw, validate_parsed_draw
from pickem.services.draw_ingestion import _score_existing_picks, commit_draw, generate_slug


def _commit(session, payload, actor_id, **kwargs):
    kwargs.setdefault("year", 2025)
    return commit_draw(session, ParsedDraw.from_dict(payload), actor_id=actor_id, **kwargs)


def _match(round_, number):
    return next(m for m in round_.matches if m.match_number == number)


class TestCommitDraw:

    def test_creates_bracket(self, db_session, admin, draw_payload):
        result = _commit(db_session, draw_payload, admin.id)
        tournament = result.tournament

        assert tournament.slug == "test-open-2025"
        assert tournament.status == "draft"
        assert tournament.format == "best-of-3"
        assert tournament.current_round == 1
        assert tournament.uploaded_by == admin.id
        assert [r.round_number for r in tournament.rounds] == [1, 2, 3]
        assert [len(r.matches) for r in tournament.rounds] == [4, 2, 1]
        assert all(not r.is_active for r in tournament.rounds)

        assert result.stats.rounds_created == 3
        assert result.stats.matches_created == 7
        assert result.stats.byes_finalized == 1
        assert result.stats.results_finalized == 0
        assert result.stats.matches_scored == 0

    def test_scoring_rules_follow_distance_from_final(self, db_session, admin, draw_payload):
        tournament = _commit(db_session, draw_payload, admin.id).tournament

        rules = [
            (r.scoring_rule.points_per_winner, r.scoring_rule.points_exact_score)
            for r in tournament.rounds
        ]
        assert rules == [(10, 5), (12, 6), (15, 8)]

    def test_bye_finalized_and_propagated(self, db_session, admin, draw_payload):
        tournament = _commit(db_session, draw_payload, admin.id).tournament
        r1, r2, _ = tournament.rounds

        bye = _match(r1, 1)
        assert bye.is_bye
        assert bye.status == MATCH_STATUS_FINALIZED
        assert bye.winner_name == "Sinner"
        assert bye.sets_won is None

        semi = _match(r2, 1)
        assert semi.player1_name == "Sinner"
        assert semi.player1_seed == 1
        assert semi.player1_source_match_id == bye.id
        assert semi.player2_name == TBD_PLAYER
        assert semi.status == MATCH_STATUS_PENDING

    def test_empty_names_become_tbd(self, db_session, admin, draw_payload):
        tournament = _commit(db_session, draw_payload, admin.id).tournament
        final = tournament.rounds[2].matches[0]

        assert final.player1_name == TBD_PLAYER
        assert final.player2_name == TBD_PLAYER

    def test_round_with_only_byes_is_finalized(self, db_session, admin):
        payload = {
            "tournamentName": "Bye Cup",
            "rounds": [
                {"roundNumber": 1, "name": "Semi Finals", "matches": [
                    {"matchNumber": 1, "player1Name": "Sinner", "player2Name": "BYE"},
                    {"matchNumber": 2, "player1Name": "bye", "player2Name": "Alcaraz"},
                ]},
                {"roundNumber": 2, "name": "Final", "matches": [{"matchNumber": 1}]},
            ],
        }
        result = _commit(db_session, payload, admin.id)
        r1, r2 = result.tournament.rounds

        assert r1.is_finalized
        assert not r2.is_finalized
        assert result.stats.rounds_finalized == 1
        final = r2.matches[0]
        assert (final.player1_name, final.player2_name) == ("Sinner", "Alcaraz")

    def test_reported_result_is_finalized_and_propagated(self, db_session, admin, draw_payload):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][1].update(
            {"winnerName": "Fritz", "finalScore": "4-6 6-3 2-6"}
        )
        result = _commit(db_session, payload, admin.id)
        r1, r2, _ = result.tournament.rounds

        played = _match(r1, 2)
        assert played.status == MATCH_STATUS_FINALIZED
        assert played.winner_name == "Fritz"
        assert (played.sets_won, played.sets_lost) == (2, 1)
        assert not played.is_bye
        assert result.stats.results_finalized == 1

        semi = _match(r2, 1)
        assert (semi.player1_name, semi.player2_name) == ("Sinner", "Fritz")
        assert semi.player2_seed == 8

    def test_best_of_five_alias(self, db_session, admin, draw_payload):
        tournament = _commit(db_session, draw_payload, admin.id, tournament_format="bo5").tournament

        assert tournament.format == "best-of-5"

    def test_unknown_format_rejected(self, db_session, admin, draw_payload):
        with pytest.raises(PickValidationError):
            _commit(db_session, draw_payload, admin.id, tournament_format="best-of-7")

    def test_non_admin_rejected(self, db_session, admin, users, draw_payload):
        with pytest.raises(PermissionDeniedError):
            _commit(db_session, draw_payload, "alice")

    def test_double_bye_rejected(self, db_session, admin, draw_payload):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][2].update({"player1Name": "Bye", "player2Name": "bye"})

        with pytest.raises(PickValidationError, match="both players are byes"):
            _commit(db_session, payload, admin.id)
        assert db_session.query(Tournament).count() == 0

    def test_impossible_result_rejected(self, db_session, admin, draw_payload):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][1].update({"winnerName": "Fritz", "setsWon": 3, "setsLost": 0})

        with pytest.raises(PickValidationError):
            _commit(db_session, payload, admin.id)

    def test_winner_not_in_match_rejected(self, db_session, admin, draw_payload):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][1].update({"winnerName": "Nadal", "setsWon": 2, "setsLost": 0})

        with pytest.raises(PickValidationError, match="not one of the players"):
            _commit(db_session, payload, admin.id)


class TestReportedScores:

    def _commit_result(self, db_session, admin, draw_payload, winner, final_score):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][1].update({"winnerName": winner, "finalScore": final_score})
        tournament = _commit(db_session, payload, admin.id).tournament
        return tournament, _match(tournament.rounds[0], 2)

    def test_walkover_finalized_without_sets(self, db_session, admin, draw_payload):
        tournament, match = self._commit_result(db_session, admin, draw_payload, "Ruud", "W/O")

        assert match.status == MATCH_STATUS_FINALIZED
        assert match.winner_name == "Ruud"
        assert (match.sets_won, match.sets_lost) == (0, 0)
        assert match.is_retirement
        assert match.final_score == "W/O"
        assert _match(tournament.rounds[1], 1).player2_name == "Ruud"

    def test_default_keeps_winner_seed(self, db_session, admin, draw_payload):
        tournament, match = self._commit_result(db_session, admin, draw_payload, "Fritz", "DEF")

        assert match.winner_name == "Fritz"
        assert match.is_retirement
        semi = _match(tournament.rounds[1], 1)
        assert (semi.player2_name, semi.player2_seed) == ("Fritz", 8)

    def test_score_won_by_other_player_rejected(self, db_session, admin, draw_payload):
        with pytest.raises(PickValidationError, match="was won by Ruud, not Fritz"):
            self._commit_result(db_session, admin, draw_payload, "Fritz", "6-4 6-3")
        assert db_session.query(Tournament).count() == 0

    def test_player2_win_counts_player2_sets(self, db_session, admin, draw_payload):
        _, match = self._commit_result(db_session, admin, draw_payload, "Fritz", "3-6 2-6")

        assert (match.sets_won, match.sets_lost) == (2, 0)

    def test_retirement_sets_counted_for_named_winner(self, db_session, admin, draw_payload):
        _, match = self._commit_result(db_session, admin, draw_payload, "Fritz", "4-6 1-2 RET")

        assert match.is_retirement
        assert (match.sets_won, match.sets_lost) == (1, 0)

    def test_retirement_winner_behind_on_sets_rejected(self, db_session, admin, draw_payload):
        with pytest.raises(PickValidationError, match="more sets"):
            self._commit_result(db_session, admin, draw_payload, "Fritz", "6-4 1-2 RET")


class TestScoreExistingPicks:

    def test_fresh_upload_scores_nothing(self, db_session, admin, draw_payload):
        payload = copy.deepcopy(draw_payload)
        payload["rounds"][0]["matches"][1].update({"winnerName": "Fritz", "setsWon": 2, "setsLost": 0})

        result = _commit(db_session, payload, admin.id)

        assert result.stats.results_finalized == 1
        assert result.stats.matches_scored == 0

    def test_scores_matches_with_picks(self, db_session, users, round1, submit):
        sheet = submit("alice", round1, {2: ("Ruud", 2, 0)})
        match = _match(round1, 2)
        match.status = MATCH_STATUS_FINALIZED
        match.winner_name = "Ruud"
        match.sets_won, match.sets_lost = 2, 0
        db_session.flush()

        assert _score_existing_picks(db_session, round1.tournament) == 1
        assert sheet.total_points == 15
        assert sheet.match_picks[0].is_exact_score


class TestReupload:

    def test_reupload_without_picks_replaces(self, db_session, admin, draw_payload):
        first = _commit(db_session, draw_payload, admin.id).tournament
        second = _commit(db_session, draw_payload, admin.id)

        assert second.stats.replaced_tournament_id == first.id
        assert second.tournament.id != first.id
        assert second.tournament.slug == first.slug
        assert first.deleted_at is not None
        old_matches = db_session.query(Match).filter(
            Match.round_id.in_([r.id for r in first.rounds])
        ).all()
        assert old_matches
        assert all(m.deleted_at is not None for m in old_matches)
        assert all(not r.is_active for r in first.rounds)

    def test_reupload_with_picks_needs_overwrite(self, db_session, admin, users, draw_payload):
        first = _commit(db_session, draw_payload, admin.id).tournament
        db_session.add(UserRoundPick(user_id="alice", round_id=first.rounds[0].id))
        db_session.flush()

        with pytest.raises(IntegrityConflictError, match="1 user picks"):
            _commit(db_session, draw_payload, admin.id)
        assert first.deleted_at is None

        result = _commit(db_session, draw_payload, admin.id, overwrite_existing=True)
        assert first.deleted_at is not None
        assert result.tournament.id != first.id

    def test_reupload_blocked_by_finalized_match(self, db_session, admin, draw_payload, finalize):
        first = _commit(db_session, draw_payload, admin.id).tournament
        finalize(first.rounds[0], 2, "Fritz", 2, 0)

        with pytest.raises(InvalidStateError, match="finalized matches"):
            _commit(db_session, draw_payload, admin.id, overwrite_existing=True)
        assert first.deleted_at is None

    def test_byes_do_not_block_reupload(self, db_session, admin, draw_payload):
        # The first draw's only finalized match is a bye
        _commit(db_session, draw_payload, admin.id)
        result = _commit(db_session, draw_payload, admin.id)

        assert result.stats.replaced_tournament_id is not None


class TestParsedDraw:

    def test_generate_slug(self):
        assert generate_slug("Roland Garros!", 2025) == "roland-garros-2025"
        assert generate_slug("  Indian Wells Masters ", 2024) == "indian-wells-masters-2024"

    def test_from_dict_accepts_snake_case(self):
        draw = ParsedDraw.from_dict({
            "tournament_name": "Snake Open",
            "rounds": [{"round_number": 1, "name": "Final", "matches": [
                {"match_number": 1, "player1_name": "A", "player2_name": "B", "player1_seed": 3},
            ]}],
        })

        match = draw.rounds[0].matches[0]
        assert draw.tournament_name == "Snake Open"
        assert match.player1_seed == 3
        assert not match.is_bye

    def test_validate_reports_structural_problems(self):
        draw = ParsedDraw.from_dict({
            "tournamentName": "Broken",
            "rounds": [
                {"roundNumber": 1, "matches": [
                    {"matchNumber": 1, "player1Name": "A", "player2Name": "B"},
                    {"matchNumber": 1, "player1Name": "C", "player2Name": "D"},
                    {"matchNumber": 2, "player1Name": "Bye", "player2Name": ""},
                ]},
                {"roundNumber": 1, "matches": []},
            ],
        })

        errors = validate_parsed_draw(draw)
        assert any("duplicate match number" in e for e in errors)
        assert any("bye against an empty slot" in e for e in errors)
        assert any("Duplicate round number 1" in e for e in errors)

    def test_validate_empty_draw(self):
        assert validate_parsed_draw(ParsedDraw(tournament_name="")) == [
            "Tournament name is required",
            "Draw has no rounds",
        ]
