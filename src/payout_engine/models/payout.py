"""Pending payout ledger model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_engine.models.base import Base, UpdatedAtMixin, one_of
from payout_engine.money import format_amount

if TYPE_CHECKING:
    from payout_engine.models.appointment import JobAssignment
    from payout_engine.models.workforce import BusinessEmployee


class PayoutStatus(str, Enum):
    """Pending payout ledger row status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)

_ACTIVE_ROW_PREDICATE = text("status IN ('pending', 'processing')")


class PendingPayout(Base, UpdatedAtMixin):
    """Money earned by an employee and not yet transferred.

    One row per released job assignment. Rows are settled in bulk per
    payee by the batch settlement processor.
    """

    __tablename__ = "pending_payout"

    pending_payout_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    business_employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("business_employee.business_employee_id"),
        nullable=False,
    )
    business_owner_id: Mapped[UUID] = mapped_column(nullable=False)
    job_assignment_id: Mapped[UUID] = mapped_column(
        ForeignKey("job_assignment.job_assignment_id"),
        nullable=False,
    )
    appointment_id: Mapped[UUID] = mapped_column(
        ForeignKey("appointment.appointment_id"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    pay_type: Mapped[str] = mapped_column(String, nullable=False)
    hours_worked: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=PayoutStatus.PENDING.value
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scheduled_payout_date: Mapped[date] = mapped_column(Date, nullable=False)
    payout_type: Mapped[str | None] = mapped_column(String, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String, nullable=True)
    transfer_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("amount > 0", name="pending_payout_amount_check"),
        one_of("status", PayoutStatus, "pending_payout_status_check"),
        one_of(
            "payout_type",
            ("biweekly_batch", "early", "termination"),
            "pending_payout_type_check",
            nullable=True,
        ),
        CheckConstraint("retry_count >= 0", name="pending_payout_retry_check"),
        Index(
            "pending_payout_one_active_per_assignment",
            "job_assignment_id",
            unique=True,
            postgresql_where=_ACTIVE_ROW_PREDICATE,
            sqlite_where=_ACTIVE_ROW_PREDICATE,
        ),
        Index("pending_payout_due", "status", "scheduled_payout_date"),
        Index("pending_payout_payee_status", "business_employee_id", "status"),
        Index("pending_payout_payer_status", "business_owner_id", "status"),
    )

    assignment: Mapped[JobAssignment] = relationship()
    employee: Mapped[BusinessEmployee] = relationship()

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_PAYOUT_STATUSES

    @property
    def formatted_amount(self) -> str:
        return format_amount(self.amount)
