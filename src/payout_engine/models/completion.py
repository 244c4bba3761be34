"""Job completion confirmation models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payout_engine.models.base import Base, UpdatedAtMixin, one_of


class CompletionStatus(str, Enum):
    """Completion confirmation status values."""

    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    DISPUTED = "disputed"


@dataclass(frozen=True)
class HomeownerApproval:
    """Completion approved by the homeowner."""

    homeowner_id: UUID

    @property
    def approver_id(self) -> UUID | None:
        return self.homeowner_id


@dataclass(frozen=True)
class SystemApproval:
    """Completion approved by the system after the approval window expired."""

    @property
    def approver_id(self) -> UUID | None:
        return None


ApprovedBy = Union[HomeownerApproval, SystemApproval]


class CompletionRecord(Base, UpdatedAtMixin):
    """Completion confirmation for one appointment, or one cleaner on a
    multi-cleaner appointment (`cleaner_id` set)."""

    __tablename__ = "completion_record"

    completion_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    appointment_id: Mapped[UUID] = mapped_column(
        ForeignKey("appointment.appointment_id", ondelete="CASCADE"),
        nullable=False,
    )
    cleaner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    completion_status: Mapped[str] = mapped_column(
        String, nullable=False, default=CompletionStatus.NOT_SUBMITTED.value
    )
    submitted_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    auto_approval_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    checklist_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("appointment_id", "cleaner_id", name="completion_record_unique"),
        one_of("completion_status", CompletionStatus, "completion_record_status_check"),
        CheckConstraint(
            "completion_status != 'approved' OR approved_by_id IS NOT NULL",
            name="completion_record_homeowner_approver_check",
        ),
        CheckConstraint(
            "completion_status != 'auto_approved' OR approved_by_id IS NULL",
            name="completion_record_system_approver_check",
        ),
        Index("completion_record_expiring", "completion_status", "auto_approval_expires_at"),
    )

    @property
    def approved_by(self) -> ApprovedBy | None:
        """Who approved this completion, or None while not approved."""
        if self.completion_status == CompletionStatus.AUTO_APPROVED:
            return SystemApproval()
        if self.completion_status == CompletionStatus.APPROVED and self.approved_by_id:
            return HomeownerApproval(self.approved_by_id)
        return None
