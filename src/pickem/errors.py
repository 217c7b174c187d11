"""
Exceptions raised by Pickem services.

Every failure is deterministic (bad input or an illegal state), so none of
these are retried. Callers catch PickemError to map failures to responses.
"""


class PickemError(Exception):
    """Base class for all service errors."""
    pass


class NotFoundError(PickemError):
    """A tournament, round, match, pick or user does not exist (or is deleted)."""
    pass


class InvalidStateError(PickemError):
    """The requested transition is not allowed from the current state."""
    pass


class PickValidationError(PickemError):
    """Input rejected before any write: bad winner, bad set counts, bad draw."""
    pass


class IntegrityConflictError(PickemError):
    """Re-uploading a draw would overwrite user picks without consent."""
    pass


class IncompleteDataError(PickemError):
    """A finalized match is missing the result data needed to score it."""
    pass


class PermissionDeniedError(PickemError):
    """The acting user is not allowed to run an admin operation."""
    pass
