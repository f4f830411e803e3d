"""Domain error taxonomy shared by the ledger, streak and bounty services.

Every error carries an HTTP status and a stable machine-readable ``code``;
the global error handler renders them as ``{"detail": ..., "code": ...}``.
"""

from __future__ import annotations


class XPError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "xp_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# --- Validation ---


class ValidationError(XPError):
    status_code = 400
    code = "validation_error"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


# --- Conflicts ---


class ConflictError(XPError):
    """Idempotency key reused with a different payload."""

    status_code = 409
    code = "idempotency_conflict"


class NotFoundError(XPError):
    status_code = 404
    code = "not_found"


# --- State machine ---


class StateError(XPError):
    status_code = 409
    code = "invalid_state"


class AlreadyClaimedToday(StateError):
    code = "already_claimed_today"


class ModerateNonSubmittedSubmission(StateError):
    code = "moderate_non_submitted"


class AssignPlacementTwice(StateError):
    code = "placement_already_assigned"


class AssignPlacementToUnapproved(StateError):
    code = "placement_requires_approval"


class PlacementTaken(StateError):
    code = "placement_taken"


class SubmissionLimitReached(StateError):
    code = "submission_limit_reached"


# --- Store ---


class TransientStoreError(XPError):
    """Retryable persistence failure (lock contention, dropped connection, lost race)."""

    status_code = 503
    code = "store_transient"


class StoreUnavailable(TransientStoreError):
    """Raised once the bounded retries for a transient failure are exhausted."""

    code = "store_unavailable"
