"""
Parsed draw data structures.

A ParsedDraw is what the draw parser hands to draw ingestion: rounds in
bracket order, each with its matches. Names are kept exactly as parsed;
empty names become "TBD" and "Bye" slots are recognised when the draw is
committed, not here.

Draws arrive as JSON from the upload tooling, in camelCase
(``tournamentName``, ``player1Seed``) or snake_case; ``from_dict`` accepts
either.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pickem.draw import validate_bracket_shape
from pickem.match_statuses import TBD_PLAYER, is_bye_name, normalize_player_name


def _pick(data: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass
class ParsedMatch:
    """
    A single match slot in the parsed draw.

    Match numbers are 1-indexed within the round. The winner of match M
    plays match ceil(M/2) of the next round.

    When the parser already knows the result, ``winner_name`` is set along
    with either winner-perspective set counts or a ``final_score`` string
    they can be derived from.
    """

    match_number: int
    player1_name: Optional[str] = None
    player2_name: Optional[str] = None
    player1_seed: Optional[int] = None
    player2_seed: Optional[int] = None
    winner_name: Optional[str] = None
    sets_won: Optional[int] = None
    sets_lost: Optional[int] = None
    final_score: Optional[str] = None

    @property
    def is_bye(self) -> bool:
        return is_bye_name(self.player1_name) or is_bye_name(self.player2_name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedMatch":
        return cls(
            match_number=int(_pick(data, "match_number", "matchNumber")),
            player1_name=_pick(data, "player1_name", "player1Name"),
            player2_name=_pick(data, "player2_name", "player2Name"),
            player1_seed=_pick(data, "player1_seed", "player1Seed"),
            player2_seed=_pick(data, "player2_seed", "player2Seed"),
            winner_name=_pick(data, "winner_name", "winnerName"),
            sets_won=_pick(data, "sets_won", "setsWon"),
            sets_lost=_pick(data, "sets_lost", "setsLost"),
            final_score=_pick(data, "final_score", "finalScore"),
        )


@dataclass
class ParsedRound:
    round_number: int
    name: str
    matches: list[ParsedMatch] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedRound":
        return cls(
            round_number=int(_pick(data, "round_number", "roundNumber")),
            name=data.get("name") or "",
            matches=[ParsedMatch.from_dict(m) for m in data.get("matches", [])],
        )


@dataclass
class ParsedDraw:
    tournament_name: str
    rounds: list[ParsedRound] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedDraw":
        return cls(
            tournament_name=_pick(data, "tournament_name", "tournamentName", ""),
            rounds=[ParsedRound.from_dict(r) for r in data.get("rounds", [])],
        )

    def ordered_rounds(self) -> list[ParsedRound]:
        return sorted(self.rounds, key=lambda r: r.round_number)


def validate_parsed_draw(draw: ParsedDraw) -> list[str]:
    """
    Structural checks on a parsed draw.

    Checks:
    - Tournament name present, at least one round
    - Round and match numbers positive and unique
    - No match with a bye on both sides, or a bye against an empty slot
    - A reported winner is one of the two players
    - Each round has at most half the matches of the round before

    Returns:
        List of error messages (empty if the draw can be committed)
    """
    errors = []
    if not draw.tournament_name or not draw.tournament_name.strip():
        errors.append("Tournament name is required")
    if not draw.rounds:
        errors.append("Draw has no rounds")
        return errors

    seen_rounds: set[int] = set()
    for round_ in draw.ordered_rounds():
        if round_.round_number < 1:
            errors.append(f"Round number must be positive (got {round_.round_number})")
        if round_.round_number in seen_rounds:
            errors.append(f"Duplicate round number {round_.round_number}")
        seen_rounds.add(round_.round_number)

        seen_matches: set[int] = set()
        for match in round_.matches:
            where = f"Round {round_.round_number} match {match.match_number}"
            if match.match_number < 1:
                errors.append(f"{where}: match number must be positive")
            if match.match_number in seen_matches:
                errors.append(f"{where}: duplicate match number")
            seen_matches.add(match.match_number)

            bye1 = is_bye_name(match.player1_name)
            bye2 = is_bye_name(match.player2_name)
            if bye1 and bye2:
                errors.append(f"{where}: both players are byes")
                continue
            if bye1 or bye2:
                other = match.player2_name if bye1 else match.player1_name
                if normalize_player_name(other) == TBD_PLAYER:
                    errors.append(f"{where}: bye against an empty slot")
                continue

            if match.winner_name is not None:
                players = {
                    normalize_player_name(match.player1_name),
                    normalize_player_name(match.player2_name),
                }
                if match.winner_name.strip() not in players:
                    errors.append(
                        f"{where}: winner {match.winner_name!r} is not one of the players"
                    )

    counts = {r.round_number: len(r.matches) for r in draw.rounds}
    errors.extend(validate_bracket_shape(counts))
    return errors
