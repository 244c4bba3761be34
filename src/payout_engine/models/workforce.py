"""Business employee and payout destination models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payout_engine.models.base import Base, TimestampMixin, UpdatedAtMixin, one_of


class EmployeeStatus(str, Enum):
    """Employment status of a business employee."""

    ACTIVE = "active"
    TERMINATED = "terminated"


class BusinessEmployee(Base, UpdatedAtMixin):
    """A worker employed by a cleaning business.

    Employees are the payees of the pending payout ledger; their business
    owner is the payer.
    """

    __tablename__ = "business_employee"

    business_employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    business_owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=EmployeeStatus.ACTIVE.value
    )
    default_hourly_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    terminated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("business_owner_id", "user_id", name="business_employee_owner_user_unique"),
        one_of("status", EmployeeStatus, "business_employee_status_check"),
        CheckConstraint("default_hourly_rate >= 0", name="business_employee_rate_check"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PayoutAccount(Base, TimestampMixin):
    """Transfer destination for a user (business owner, cleaner or employee).

    `payouts_enabled` is False until the user finishes onboarding with the
    transfer provider.
    """

    __tablename__ = "payout_account"

    payout_account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, unique=True)
    destination_ref: Mapped[str] = mapped_column(String, nullable=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
