"""Domain event types for completion and settlement operations.

All events are immutable frozen dataclasses carrying explicit payloads
and traceable metadata. They drive notifications and audit logging.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    COMPLETION = "completion"
    LEDGER = "ledger"
    SETTLEMENT = "settlement"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links related events
    actor_id: UUID | None  # User who triggered, None for the system
    actor_type: str  # 'user', 'system', 'scheduler'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "payout_engine",
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Completion Events
# =============================================================================


@dataclass(frozen=True)
class CompletionSubmitted(DomainEvent):
    """A cleaner submitted a job for homeowner approval."""

    completion_record_id: UUID
    appointment_id: UUID
    homeowner_id: UUID
    submitted_by_id: UUID
    auto_approval_expires_at: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMPLETION


@dataclass(frozen=True)
class CompletionApproved(DomainEvent):
    """The homeowner approved a submitted job."""

    completion_record_id: UUID
    appointment_id: UUID
    homeowner_id: UUID
    cleaner_user_id: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMPLETION


@dataclass(frozen=True)
class CompletionAutoApproved(DomainEvent):
    """The approval window expired and the system approved the job."""

    completion_record_id: UUID
    appointment_id: UUID
    homeowner_id: UUID
    cleaner_user_id: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMPLETION


@dataclass(frozen=True)
class CompletionDisputed(DomainEvent):
    """The homeowner disputed a submitted job; payment is blocked."""

    completion_record_id: UUID
    appointment_id: UUID
    homeowner_id: UUID
    cleaner_user_id: UUID | None
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMPLETION


@dataclass(frozen=True)
class EmployeeJobApproved(DomainEvent):
    """A job worked by an employee was approved (business owner notice)."""

    appointment_id: UUID
    business_owner_id: UUID
    business_employee_id: UUID
    employee_name: str
    auto_approved: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMPLETION


# =============================================================================
# Ledger Events
# =============================================================================


@dataclass(frozen=True)
class EarningRecorded(DomainEvent):
    """An employee's job pay was written to the pending payout ledger."""

    pending_payout_id: UUID
    business_employee_id: UUID
    business_owner_id: UUID
    job_assignment_id: UUID
    amount: int
    scheduled_payout_date: date

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEDGER


@dataclass(frozen=True)
class PendingPayoutCancelled(DomainEvent):
    """A pending payout was cancelled before settlement."""

    pending_payout_id: UUID
    job_assignment_id: UUID
    amount: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEDGER


# =============================================================================
# Settlement Events
# =============================================================================


@dataclass(frozen=True)
class OwnerShareTransferred(DomainEvent):
    """The payer's retained share of a job was transferred immediately."""

    appointment_id: UUID
    payer_id: UUID
    amount: int
    transfer_reference: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT


@dataclass(frozen=True)
class OwnerShareTransferFailed(DomainEvent):
    """The payer's retained share could not be transferred."""

    appointment_id: UUID
    payer_id: UUID
    amount: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT


@dataclass(frozen=True)
class PayoutBatchSettled(DomainEvent):
    """A payee's grouped pending payouts were paid in one transfer."""

    business_employee_id: UUID
    employee_user_id: UUID | None
    payout_type: str
    amount: int
    payout_count: int
    transfer_reference: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT


@dataclass(frozen=True)
class PayoutBatchFailed(DomainEvent):
    """A payee's grouped pending payouts could not be paid."""

    business_employee_id: UUID
    employee_user_id: UUID | None
    payout_type: str
    amount: int
    payout_count: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT
