"""Exception hierarchy for the payout engine."""

from __future__ import annotations

from uuid import UUID


class PayoutEngineError(Exception):
    """Base class for payout engine errors."""


class LedgerError(PayoutEngineError):
    """Raised when a ledger operation is invalid."""


class DuplicateEarningError(LedgerError):
    """Raised when an assignment already has an active ledger entry."""

    def __init__(self, job_assignment_id: UUID, existing_payout_id: UUID | None = None):
        self.job_assignment_id = job_assignment_id
        self.existing_payout_id = existing_payout_id
        msg = f"Job assignment {job_assignment_id} already has an active pending payout"
        if existing_payout_id:
            msg += f" ({existing_payout_id})"
        super().__init__(msg)


class InvalidTransitionError(PayoutEngineError):
    """Raised when an invalid completion state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class NotFoundError(PayoutEngineError):
    """Raised when a referenced record does not exist."""


class PermissionDeniedError(PayoutEngineError):
    """Raised when the acting user may not perform an operation."""


class CompletionNotFoundError(NotFoundError):
    """Raised when an appointment has no matching completion record."""
