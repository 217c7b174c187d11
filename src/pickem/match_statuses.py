"""Shared status, format and placeholder definitions.

This module is the single source of truth for the status values and
tournament formats reused across models, scoring and admin services.
"""

from __future__ import annotations

MATCH_STATUS_PENDING = "pending"
MATCH_STATUS_FINALIZED = "finalized"

ALL_MATCH_STATUSES: tuple[str, ...] = (
    MATCH_STATUS_PENDING,
    MATCH_STATUS_FINALIZED,
)

TOURNAMENT_STATUS_DRAFT = "draft"
TOURNAMENT_STATUS_ACTIVE = "active"
TOURNAMENT_STATUS_ARCHIVED = "archived"

ALL_TOURNAMENT_STATUSES: tuple[str, ...] = (
    TOURNAMENT_STATUS_DRAFT,
    TOURNAMENT_STATUS_ACTIVE,
    TOURNAMENT_STATUS_ARCHIVED,
)

# Placeholder for a slot whose player is not known yet.
TBD_PLAYER = "TBD"

# Draw marker for a walk-through slot, compared case-insensitively.
BYE_MARKER = "bye"

DEFAULT_TOURNAMENT_FORMAT = "best-of-3"

# Sets needed to win a match, keyed by canonical format name.
SETS_TO_WIN: dict[str, int] = {
    "best-of-3": 2,
    "best-of-5": 3,
}

# Short spellings accepted from uploads.
FORMAT_ALIASES: dict[str, str] = {
    "bo3": "best-of-3",
    "bo5": "best-of-5",
}


def normalize_format(raw_format: str) -> str:
    """Return the canonical format name, raising ValueError for unknown formats.

    >>> normalize_format("BO5")
    'best-of-5'
    """
    fmt = raw_format.strip().lower()
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in SETS_TO_WIN:
        raise ValueError(f"Unknown tournament format: {raw_format!r}")
    return fmt


def get_sets_to_win(tournament_format: str) -> int:
    """Sets the winner needs under ``tournament_format``."""
    return SETS_TO_WIN[normalize_format(tournament_format)]


def is_bye_name(name: str | None) -> bool:
    """True when a draw slot holds the bye marker."""
    return bool(name) and name.strip().lower() == BYE_MARKER


def normalize_player_name(name: str | None) -> str:
    """Strip whitespace; empty or missing names become the TBD placeholder."""
    if name is None:
        return TBD_PLAYER
    cleaned = name.strip()
    return cleaned or TBD_PLAYER
