"""Completion confirmation state machine with transition validation."""

from __future__ import annotations

from payout_engine.errors import InvalidTransitionError
from payout_engine.models import CompletionStatus


class CompletionStateMachine:
    """State machine for completion record status transitions.

    Allowed transitions:
    - not_submitted → submitted
    - submitted → approved (homeowner)
    - submitted → auto_approved (approval window expired)
    - submitted → disputed

    approved, auto_approved and disputed are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        CompletionStatus.NOT_SUBMITTED: [CompletionStatus.SUBMITTED],
        CompletionStatus.SUBMITTED: [
            CompletionStatus.APPROVED,
            CompletionStatus.AUTO_APPROVED,
            CompletionStatus.DISPUTED,
        ],
        CompletionStatus.APPROVED: [],
        CompletionStatus.AUTO_APPROVED: [],
        CompletionStatus.DISPUTED: [],
    }

    APPROVED_STATUSES = {
        CompletionStatus.APPROVED,
        CompletionStatus.AUTO_APPROVED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if cls.can_transition(from_status, to_status):
            return
        reason = None
        if cls.is_terminal(from_status):
            reason = f"completion is already {_value(from_status)}"
        elif from_status == CompletionStatus.NOT_SUBMITTED:
            reason = "job has not been submitted for approval"
        raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def is_approved(cls, status: str) -> bool:
        return status in cls.APPROVED_STATUSES

    @classmethod
    def can_be_approved(cls, status: str) -> bool:
        return status == CompletionStatus.SUBMITTED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        return cls.VALID_TRANSITIONS.get(current_status, [])


def _value(status: str) -> str:
    return status.value if isinstance(status, CompletionStatus) else status
