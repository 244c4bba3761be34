"""Appointment and job assignment models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_engine.models.base import Base, UpdatedAtMixin, one_of

if TYPE_CHECKING:
    from payout_engine.models.workforce import BusinessEmployee


class PayType(str, Enum):
    """How an assignment's pay is computed."""

    HOURLY = "hourly"
    FLAT_RATE = "flat_rate"


class AssignmentPayoutStatus(str, Enum):
    """Payout status of a job assignment."""

    UNPAID = "unpaid"
    PENDING_BATCH = "pending_batch"
    PAID = "paid"
    CANCELLED = "cancelled"


class Appointment(Base, UpdatedAtMixin):
    """A booked cleaning job.

    `business_owner_id` is set when a cleaning business fulfils the job;
    `cleaner_id` is the independent cleaner paid directly otherwise.
    """

    __tablename__ = "appointment"

    appointment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    homeowner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    business_owner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    cleaner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    is_multi_cleaner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cleaner_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("price_amount >= 0", name="appointment_price_check"),
        CheckConstraint("cleaner_count >= 1", name="appointment_cleaner_count_check"),
        CheckConstraint(
            "business_owner_id IS NOT NULL OR cleaner_id IS NOT NULL",
            name="appointment_payee_check",
        ),
    )

    assignments: Mapped[list[JobAssignment]] = relationship(back_populates="appointment")

    @property
    def payer_id(self) -> UUID:
        """User who receives the retained share of the job's net amount."""
        return self.business_owner_id or self.cleaner_id  # type: ignore[return-value]


class JobAssignment(Base, UpdatedAtMixin):
    """One worker assigned to one appointment.

    Pay fields are owned by the business. The settlement pipeline only
    touches the payout fields.
    """

    __tablename__ = "job_assignment"

    job_assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    appointment_id: Mapped[UUID] = mapped_column(
        ForeignKey("appointment.appointment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    business_owner_id: Mapped[UUID] = mapped_column(nullable=False)
    business_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("business_employee.business_employee_id"),
        nullable=True,
    )
    cleaner_user_id: Mapped[UUID] = mapped_column(nullable=False)
    is_self_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pay_type: Mapped[str] = mapped_column(
        String, nullable=False, default=PayType.FLAT_RATE.value
    )
    hours_worked: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), nullable=True)
    pay_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payout_status: Mapped[str] = mapped_column(
        String, nullable=False, default=AssignmentPayoutStatus.UNPAID.value
    )
    pending_payout_id: Mapped[UUID | None] = mapped_column(nullable=True)
    employee_paid_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    transfer_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        one_of("pay_type", PayType, "job_assignment_pay_type_check"),
        one_of("payout_status", AssignmentPayoutStatus, "job_assignment_payout_status_check"),
        CheckConstraint("pay_amount >= 0", name="job_assignment_pay_amount_check"),
    )

    appointment: Mapped[Appointment] = relationship(back_populates="assignments")
    employee: Mapped[BusinessEmployee | None] = relationship()

    @property
    def earns_batched_pay(self) -> bool:
        """True when this assignment's pay goes through the payout ledger."""
        return (
            not self.is_self_assignment
            and self.business_employee_id is not None
            and self.pay_amount > 0
        )
