"""Unit tests for bracket math in pickem.draw."""

import pytest

from pickem.draw import (
    PLAYER1_SLOT,
    PLAYER2_SLOT,
    get_feeder_match_numbers,
    get_next_match_number,
    get_round_code,
    get_round_name,
    get_target_slot,
    rounds_from_final,
    validate_bracket_shape,
)


class TestNextMatch:

    @pytest.mark.parametrize(
        "match_number, expected",
        [(1, 1), (2, 1), (3, 2), (4, 2), (63, 32), (64, 32)],
    )
    def test_next_match_number(self, match_number, expected):
        assert get_next_match_number(match_number) == expected

    def test_odd_feeds_player1_even_feeds_player2(self):
        assert get_target_slot(1) == PLAYER1_SLOT
        assert get_target_slot(2) == PLAYER2_SLOT
        assert get_target_slot(7) == PLAYER1_SLOT
        assert get_target_slot(8) == PLAYER2_SLOT

    def test_feeders_round_trip(self):
        for target in range(1, 17):
            odd, even = get_feeder_match_numbers(target)
            assert get_next_match_number(odd) == target
            assert get_next_match_number(even) == target
            assert get_target_slot(odd) == PLAYER1_SLOT
            assert get_target_slot(even) == PLAYER2_SLOT

    def test_invalid_match_number(self):
        with pytest.raises(ValueError):
            get_next_match_number(0)
        with pytest.raises(ValueError):
            get_target_slot(-1)


class TestRoundNames:

    def test_rounds_from_final(self):
        assert rounds_from_final(3, 3) == 0
        assert rounds_from_final(1, 3) == 2

    def test_rounds_from_final_out_of_range(self):
        with pytest.raises(ValueError):
            rounds_from_final(4, 3)

    def test_round_codes_for_grand_slam(self):
        codes = [get_round_code(r, 7) for r in range(1, 8)]
        assert codes == ["R128", "R64", "R32", "R16", "QF", "SF", "F"]

    def test_small_draw_names(self):
        assert get_round_name(1, 3) == "Quarter Finals"
        assert get_round_name(3, 3) == "Final"

    def test_oversized_draw_falls_back(self):
        assert get_round_code(1, 8) is None
        assert get_round_name(1, 8) == "Round 1"


class TestBracketShape:

    def test_consistent_shape(self):
        assert validate_bracket_shape({1: 4, 2: 2, 3: 1}) == []

    def test_partial_draw_is_allowed(self):
        # An uploaded draw may list fewer matches than the bracket allows
        assert validate_bracket_shape({1: 3, 2: 1}) == []

    def test_too_many_matches(self):
        warnings = validate_bracket_shape({1: 4, 2: 3})
        assert len(warnings) == 1
        assert "expected at most 2" in warnings[0]

    def test_skipped_round(self):
        warnings = validate_bracket_shape({1: 4, 3: 1})
        assert warnings == ["Round numbers skip from 1 to 3"]
