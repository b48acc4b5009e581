"""
Exceptions raised by the scheduling core.

Persistence errors (SQLAlchemy, driver errors) are never wrapped; they
propagate to the caller unchanged.
"""

from __future__ import annotations


class SrsError(Exception):
    """Base class for all scheduling-core errors."""


class ValidationError(SrsError, ValueError):
    """Malformed rating, unknown card, or out-of-range parameters.

    Raised before any state is mutated.
    """


class LearnerMismatchError(ValidationError):
    """The caller's learner id does not own the requested record."""


class SessionStateError(ValidationError):
    """Operation not allowed in the study session's current status."""


class DataIntegrityError(SrsError):
    """Stored card state failed its invariants or could not be parsed."""


class ConcurrencyConflict(SrsError):
    """The card changed in the store since it was read."""

    def __init__(self, card_id: str, expected_version: int, actual_version: int | None = None):
        self.card_id = card_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Card {card_id} changed since read "
            f"(expected version {expected_version}, found {actual_version})"
        )


class NothingToUndoError(SrsError):
    """No review log entry is eligible for undo."""
