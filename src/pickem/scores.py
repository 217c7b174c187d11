"""
Tennis score string parsing.

Admins and draw uploads report final scores as text:
- Simple: "6-4 6-3"
- Tiebreak: "7-6(5) 6-4" or "7-6(7-5) 6-4"
- Match tiebreak: "6-4 4-6 [10-8]"
- Retirement: "6-4 2-1 RET"
- Walkover: "W/O"
- Default: "DEF"

Scores are written from player1's side as listed in the draw. The parser
turns them into per-set games plus set totals, which draw ingestion uses
to fill sets_won / sets_lost when an upload only carries the score text.
"""

import re
from dataclasses import dataclass, field
from typing import Optional


class ScoreParseError(ValueError):
    """Raised when a score cannot be parsed."""
    pass


SCORE_STATUSES = ("completed", "retired", "walkover", "default")

_SET_PATTERN = re.compile(r"^\d+-\d+(\(\d+(-\d+)?\))?$")
_TIEBREAK_SET = re.compile(r"^(\d+)-(\d+)\((\d+)(?:-(\d+))?\)$")
_PLAIN_SET = re.compile(r"^(\d+)-(\d+)$")
_RETIREMENT_PATTERNS = (
    r"\s*\(ret\)\.?\s*$",
    r"\s*retired\.?\s*$",
    r"\s*ret\.?\s*$",
)


@dataclass
class SetScore:
    """Games in one set, player1 first."""
    games_1: int
    games_2: int
    tiebreak_loser: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        """A set ends at 6+ games with a two-game lead, or 7-6 via tiebreak."""
        if self.tiebreak_loser is not None:
            return True
        high, low = max(self.games_1, self.games_2), min(self.games_1, self.games_2)
        return (high >= 6 and high - low >= 2) or (high == 7 and low == 6)

    @property
    def leader(self) -> Optional[int]:
        """Player slot ahead on games, None when level."""
        if self.games_1 > self.games_2:
            return 1
        if self.games_2 > self.games_1:
            return 2
        return None

    @property
    def winner(self) -> Optional[int]:
        """Player slot that won the set, None while it is unfinished."""
        return self.leader if self.is_complete else None

    def __str__(self) -> str:
        if self.tiebreak_loser is not None:
            return f"{self.games_1}-{self.games_2}({self.tiebreak_loser})"
        return f"{self.games_1}-{self.games_2}"


@dataclass
class ParsedScore:
    """
    A parsed final score.

    Attributes:
        sets: Set scores in order played
        winner: 1 or 2 (player slot), None if the score is undecided
        status: 'completed', 'retired', 'walkover' or 'default'
        raw_score: Original score string
    """
    sets: list[SetScore] = field(default_factory=list)
    winner: Optional[int] = None
    status: str = "completed"
    raw_score: str = ""

    @property
    def is_retirement(self) -> bool:
        return self.status == "retired"

    @property
    def is_walkover(self) -> bool:
        """Walkover or default: decided without a played score."""
        return self.status in ("walkover", "default")

    def sets_for_player(self, slot: int) -> tuple[int, int]:
        """
        (sets_won, sets_lost) from player ``slot``'s point of view (1 or 2).

        >>> parse_score("4-6 1-2 RET").sets_for_player(2)
        (1, 0)
        """
        won_1 = sum(1 for s in self.sets if s.winner == 1)
        won_2 = sum(1 for s in self.sets if s.winner == 2)
        if slot == 1:
            return won_1, won_2
        return won_2, won_1

    def sets_for_winner(self) -> tuple[int, int]:
        """
        (sets_won, sets_lost) from the winner's point of view.

        Raises:
            ScoreParseError: if the score has no winner
        """
        if self.winner is None:
            raise ScoreParseError(f"No winner in score: {self.raw_score!r}")
        return self.sets_for_player(self.winner)

    def to_display_string(self) -> str:
        """Convert back to display format like '6-4 7-6(5)'."""
        if self.status == "walkover":
            return "W/O"
        parts = [str(s) for s in self.sets]
        if self.status == "retired":
            parts.append("RET")
        elif self.status == "default":
            parts.append("DEF")
        return " ".join(parts)


def parse_score(score_str: str, sets_to_win: int = 2) -> ParsedScore:
    """
    Parse a tennis score string.

    Args:
        score_str: Score as written in the draw, player1's games first
        sets_to_win: 2 for best-of-3, 3 for best-of-5

    Raises:
        ScoreParseError: If score cannot be parsed

    Examples:
        >>> parse_score("6-4 3-6 7-6(5)").sets_for_winner()
        (2, 1)
        >>> parse_score("4-6 2-1 RET").winner
        2
    """
    if not score_str or not score_str.strip():
        raise ScoreParseError("Empty score string")

    original = score_str.strip()
    lowered = original.lower()

    if lowered in ("w/o", "wo", "walkover", "w.o.", "w.o"):
        return ParsedScore(winner=1, status="walkover", raw_score=original)
    if lowered in ("def", "default", "def."):
        return ParsedScore(winner=1, status="default", raw_score=original)

    is_retired, remainder = _extract_retirement(original)
    set_strings = _split_sets(remainder)
    if not set_strings:
        raise ScoreParseError(f"Could not parse score: {original}")

    sets = [_parse_set(s, original) for s in set_strings]
    return ParsedScore(
        sets=sets,
        winner=_determine_winner(sets, is_retired, sets_to_win),
        status="retired" if is_retired else "completed",
        raw_score=original,
    )


def _extract_retirement(score: str) -> tuple[bool, str]:
    """Strip a trailing retirement marker, returning (is_retired, rest)."""
    for pattern in _RETIREMENT_PATTERNS:
        if re.search(pattern, score, re.IGNORECASE):
            return True, re.sub(pattern, "", score, flags=re.IGNORECASE).strip()
    return False, score


def _split_sets(score: str) -> list[str]:
    # Unwrap match tiebreaks written as [10-8]
    score = re.sub(r"\[(\d+-\d+)\]", r"\1", score)
    return [part for part in score.split() if _SET_PATTERN.match(part)]


def _parse_set(set_str: str, original: str) -> SetScore:
    tb = _TIEBREAK_SET.match(set_str)
    if tb:
        games_1, games_2 = int(tb.group(1)), int(tb.group(2))
        # "7-6(7-5)" carries both points; the loser's is the smaller one
        if tb.group(4) is not None:
            loser_points = min(int(tb.group(3)), int(tb.group(4)))
        else:
            loser_points = int(tb.group(3))
        return SetScore(games_1, games_2, tiebreak_loser=loser_points)

    plain = _PLAIN_SET.match(set_str)
    if plain:
        return SetScore(int(plain.group(1)), int(plain.group(2)))

    raise ScoreParseError(f"Could not parse set '{set_str}' in '{original}'")


def _determine_winner(
    sets: list[SetScore],
    is_retired: bool,
    sets_to_win: int,
) -> Optional[int]:
    """
    Winner by completed sets. A completed match needs ``sets_to_win`` sets;
    after a retirement the player ahead (on sets, then on games in the last
    set) is the winner.
    """
    won_1 = sum(1 for s in sets if s.winner == 1)
    won_2 = sum(1 for s in sets if s.winner == 2)

    if won_1 >= sets_to_win and won_1 > won_2:
        return 1
    if won_2 >= sets_to_win and won_2 > won_1:
        return 2

    if not is_retired:
        return None

    if won_1 != won_2:
        return 1 if won_1 > won_2 else 2
    # Level on sets and games: the listed player is taken as the winner
    return sets[-1].leader or 1
