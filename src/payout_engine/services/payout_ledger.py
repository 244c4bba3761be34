"""Pending payout ledger.

Employee pay for a released job is not transferred immediately. It is
written here as a pending payout row scheduled for the next settlement
Friday, and later settled in bulk per employee.

Invariants:
- At most one active (pending/processing) row per job assignment.
- An assignment's payout status agrees with its ledger row status.
- Completed rows are never cancelled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payout_engine.clock import Clock, SystemClock
from payout_engine.errors import DuplicateEarningError, LedgerError
from payout_engine.models import (
    ACTIVE_PAYOUT_STATUSES,
    Appointment,
    AssignmentPayoutStatus,
    JobAssignment,
    PayoutStatus,
    PendingPayout,
)
from payout_engine.money import format_amount
from payout_engine.services.settlement_calendar import SettlementCalendar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerItem:
    """One itemized ledger row in a summary."""

    pending_payout_id: UUID
    business_employee_id: UUID
    appointment_id: UUID
    amount: int
    status: str
    pay_type: str
    hours_worked: Decimal | None
    earned_at: datetime
    scheduled_payout_date: date
    failure_reason: str | None = None
    retry_count: int = 0

    @classmethod
    def from_row(cls, row: PendingPayout) -> LedgerItem:
        return cls(
            pending_payout_id=row.pending_payout_id,
            business_employee_id=row.business_employee_id,
            appointment_id=row.appointment_id,
            amount=row.amount,
            status=row.status,
            pay_type=row.pay_type,
            hours_worked=row.hours_worked,
            earned_at=row.earned_at,
            scheduled_payout_date=row.scheduled_payout_date,
            failure_reason=row.failure_reason,
            retry_count=row.retry_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.pending_payout_id),
            "business_employee_id": str(self.business_employee_id),
            "appointment_id": str(self.appointment_id),
            "amount": self.amount,
            "formatted_amount": format_amount(self.amount),
            "status": self.status,
            "pay_type": self.pay_type,
            "hours_worked": str(self.hours_worked) if self.hours_worked is not None else None,
            "earned_at": self.earned_at.isoformat(),
            "scheduled_payout_date": self.scheduled_payout_date.isoformat(),
            "failure_reason": self.failure_reason,
            "retry_count": self.retry_count,
        }


@dataclass(frozen=True)
class LedgerTotals:
    """Total and count over a set of ledger rows."""

    total: int = 0
    count: int = 0
    items: tuple[LedgerItem, ...] = ()

    @classmethod
    def of(cls, rows: list[PendingPayout]) -> LedgerTotals:
        items = tuple(LedgerItem.from_row(r) for r in rows)
        return cls(total=sum(i.amount for i in items), count=len(items), items=items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "formatted_total": format_amount(self.total),
            "count": self.count,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class PayeePendingSummary:
    """What one employee is owed."""

    business_employee_id: UUID
    next_settlement_date: date
    pending: LedgerTotals
    failed: LedgerTotals
    processing: LedgerTotals = field(default_factory=LedgerTotals)

    @property
    def total_pending(self) -> int:
        return self.pending.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "business_employee_id": str(self.business_employee_id),
            "total_pending": self.pending.total,
            "formatted_total": format_amount(self.pending.total),
            "next_settlement_date": self.next_settlement_date.isoformat(),
            "job_count": self.pending.count,
            "jobs": [i.to_dict() for i in self.pending.items],
            "failed": self.failed.to_dict(),
            "processing": self.processing.to_dict(),
        }


@dataclass(frozen=True)
class EmployeePendingGroup:
    """Pending rows of one employee within a business summary."""

    business_employee_id: UUID
    employee_name: str
    totals: LedgerTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.business_employee_id),
            "employee_name": self.employee_name,
            "total_pending": self.totals.total,
            "formatted_total": format_amount(self.totals.total),
            "job_count": self.totals.count,
            "jobs": [i.to_dict() for i in self.totals.items],
        }


@dataclass(frozen=True)
class PayerPendingSummary:
    """What one business owes its employees."""

    business_owner_id: UUID
    next_settlement_date: date
    pending: LedgerTotals
    failed: LedgerTotals
    by_employee: tuple[EmployeePendingGroup, ...] = field(default_factory=tuple)
    processing: LedgerTotals = field(default_factory=LedgerTotals)

    @property
    def total_pending(self) -> int:
        return self.pending.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "business_owner_id": str(self.business_owner_id),
            "total_pending": self.pending.total,
            "formatted_total": format_amount(self.pending.total),
            "next_settlement_date": self.next_settlement_date.isoformat(),
            "employee_count": len(self.by_employee),
            "job_count": self.pending.count,
            "by_employee": [g.to_dict() for g in self.by_employee],
            "failed": self.failed.to_dict(),
            "processing": self.processing.to_dict(),
        }


@dataclass(frozen=True)
class CancelResult:
    """Result of cancelling an assignment's pending payout."""

    success: bool
    job_assignment_id: UUID
    pending_payout_id: UUID | None = None
    cancelled_amount: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "job_assignment_id": str(self.job_assignment_id),
        }
        if self.success:
            data["pending_payout_id"] = str(self.pending_payout_id)
            data["cancelled_amount"] = self.cancelled_amount
            data["formatted_amount"] = format_amount(self.cancelled_amount)
        else:
            data["error"] = self.error
        return data


class PayoutLedger:
    """Pending payout ledger operations.

    Works inside the caller's session; the caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        calendar: SettlementCalendar | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self.calendar = calendar or SettlementCalendar()
        self.clock = clock or SystemClock()

    async def record_earning(
        self,
        assignment: JobAssignment,
        amount: int,
        appointment: Appointment,
    ) -> PendingPayout:
        """Create the pending payout for a released job assignment.

        Raises:
            DuplicateEarningError: If the assignment already has an active row.
            LedgerError: If the assignment has no employee or amount is not positive.
        """
        if assignment.business_employee_id is None:
            raise LedgerError(
                f"Job assignment {assignment.job_assignment_id} has no employee to pay"
            )
        if amount <= 0:
            raise LedgerError("Amount must be positive")
        if assignment.appointment_id != appointment.appointment_id:
            raise LedgerError("Assignment does not belong to appointment")

        existing = await self.find_active_for_assignment(assignment.job_assignment_id)
        if existing is not None:
            raise DuplicateEarningError(
                assignment.job_assignment_id, existing.pending_payout_id
            )

        now = self.clock.now()
        payout = PendingPayout(
            pending_payout_id=uuid4(),
            business_employee_id=assignment.business_employee_id,
            business_owner_id=assignment.business_owner_id,
            job_assignment_id=assignment.job_assignment_id,
            appointment_id=appointment.appointment_id,
            amount=amount,
            pay_type=assignment.pay_type,
            hours_worked=assignment.hours_worked,
            status=PayoutStatus.PENDING.value,
            earned_at=now,
            scheduled_payout_date=self.calendar.next_settlement_date(now),
            retry_count=0,
        )
        self.session.add(payout)

        assignment.payout_status = AssignmentPayoutStatus.PENDING_BATCH.value
        assignment.pending_payout_id = payout.pending_payout_id

        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Another writer recorded the same assignment first.
            raise DuplicateEarningError(assignment.job_assignment_id) from exc

        logger.info(
            "Recorded pending payout %s for %s, scheduled for %s",
            payout.pending_payout_id,
            format_amount(amount),
            payout.scheduled_payout_date.isoformat(),
        )
        return payout

    async def find_active_for_assignment(self, job_assignment_id: UUID) -> PendingPayout | None:
        """Return the active (pending/processing) row for an assignment, if any."""
        result = await self.session.execute(
            select(PendingPayout).where(
                PendingPayout.job_assignment_id == job_assignment_id,
                PendingPayout.status.in_(ACTIVE_PAYOUT_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def pending_for_payee(self, business_employee_id: UUID) -> PayeePendingSummary:
        """Summarize one employee's rows by status."""
        pending = await self._rows(
            PendingPayout.business_employee_id == business_employee_id,
            status=PayoutStatus.PENDING,
        )
        failed = await self._rows(
            PendingPayout.business_employee_id == business_employee_id,
            status=PayoutStatus.FAILED,
        )
        processing = await self._rows(
            PendingPayout.business_employee_id == business_employee_id,
            status=PayoutStatus.PROCESSING,
        )
        return PayeePendingSummary(
            business_employee_id=business_employee_id,
            next_settlement_date=self.calendar.next_settlement_date(self.clock.today()),
            pending=LedgerTotals.of(pending),
            failed=LedgerTotals.of(failed),
            processing=LedgerTotals.of(processing),
        )

    async def pending_for_payer(self, business_owner_id: UUID) -> PayerPendingSummary:
        """Summarize one business's rows; pending ones are grouped by employee."""
        pending = await self._rows(
            PendingPayout.business_owner_id == business_owner_id,
            status=PayoutStatus.PENDING,
            with_employee=True,
        )
        failed = await self._rows(
            PendingPayout.business_owner_id == business_owner_id,
            status=PayoutStatus.FAILED,
        )
        processing = await self._rows(
            PendingPayout.business_owner_id == business_owner_id,
            status=PayoutStatus.PROCESSING,
        )

        grouped: dict[UUID, list[PendingPayout]] = {}
        names: dict[UUID, str] = {}
        for row in pending:
            grouped.setdefault(row.business_employee_id, []).append(row)
            names[row.business_employee_id] = (
                row.employee.full_name if row.employee is not None else "Unknown"
            )

        return PayerPendingSummary(
            business_owner_id=business_owner_id,
            next_settlement_date=self.calendar.next_settlement_date(self.clock.today()),
            pending=LedgerTotals.of(pending),
            failed=LedgerTotals.of(failed),
            processing=LedgerTotals.of(processing),
            by_employee=tuple(
                EmployeePendingGroup(
                    business_employee_id=employee_id,
                    employee_name=names[employee_id],
                    totals=LedgerTotals.of(rows),
                )
                for employee_id, rows in grouped.items()
            ),
        )

    async def cancel(self, job_assignment_id: UUID, reason: str) -> CancelResult:
        """Cancel the pending row of an assignment (e.g. the job was disputed).

        Only a row still in `pending` can be cancelled. Rows in any other
        status are left alone.
        """
        result = await self.session.execute(
            update(PendingPayout)
            .where(
                PendingPayout.job_assignment_id == job_assignment_id,
                PendingPayout.status == PayoutStatus.PENDING.value,
            )
            .values(status=PayoutStatus.CANCELLED.value, failure_reason=reason)
            .returning(PendingPayout.pending_payout_id, PendingPayout.amount)
        )
        row = result.first()
        if row is None:
            return CancelResult(
                success=False,
                job_assignment_id=job_assignment_id,
                error="No pending payout found for this assignment",
            )

        await self.session.execute(
            update(JobAssignment)
            .where(JobAssignment.job_assignment_id == job_assignment_id)
            .values(
                payout_status=AssignmentPayoutStatus.CANCELLED.value,
                pending_payout_id=None,
            )
        )

        logger.info("Cancelled pending payout %s: %s", row.pending_payout_id, reason)
        return CancelResult(
            success=True,
            job_assignment_id=job_assignment_id,
            pending_payout_id=row.pending_payout_id,
            cancelled_amount=row.amount,
        )

    async def _rows(
        self,
        *criteria: Any,
        status: PayoutStatus,
        with_employee: bool = False,
    ) -> list[PendingPayout]:
        query = (
            select(PendingPayout)
            .where(*criteria, PendingPayout.status == status.value)
            .order_by(PendingPayout.business_employee_id, PendingPayout.earned_at.desc())
        )
        if with_employee:
            query = query.options(selectinload(PendingPayout.employee))
        result = await self.session.execute(query)
        return list(result.scalars().all())
