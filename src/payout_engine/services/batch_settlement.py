"""Batch settlement of pending payouts.

Every settlement Friday the processor pays all due ledger rows, one
transfer per employee for the sum of that employee's rows. The same
claim/transfer/record sequence serves early payouts (employee asks to be
paid now) and termination payouts (employee leaves the business).

Per payee:
1. Claim: `pending -> processing` conditional update, committed before
   any money moves. Rows claimed by a concurrent run are skipped.
2. Transfer: one call for the claimed total, keyed for idempotency.
3. Record: completed with the shared transfer reference, or failed with
   a reason and an incremented retry count.

Failed rows are not retried automatically. A transfer call that raises
(timeout, dropped connection) is recorded as a failure too, because its
outcome is unknown. Only a crash between claim and record leaves rows in
`processing`; ledger summaries list them so operators can reconcile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterator
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_engine.clock import Clock, SystemClock
from payout_engine.errors import NotFoundError
from payout_engine.events import (
    AsyncEventEmitter,
    EventMetadata,
    PayoutBatchFailed,
    PayoutBatchSettled,
)
from payout_engine.models import (
    AssignmentPayoutStatus,
    BusinessEmployee,
    EmployeeStatus,
    JobAssignment,
    PayoutAccount,
    PayoutStatus,
    PendingPayout,
)
from payout_engine.money import format_amount
from payout_engine.services.settlement_calendar import SettlementCalendar
from payout_engine.transfers import (
    TransferFailure,
    TransferProvider,
    TransferRequest,
    TransferResult,
)

logger = logging.getLogger(__name__)

# Provider metadata values are capped at 500 characters.
_METADATA_VALUE_LIMIT = 500


class PayoutType(str, Enum):
    """Why a group of ledger rows was settled."""

    BIWEEKLY_BATCH = "biweekly_batch"
    EARLY = "early"
    TERMINATION = "termination"


@dataclass
class PayeeGroup:
    """Due ledger rows of one payee with a running total."""

    business_employee_id: UUID
    payout_ids: list[UUID] = field(default_factory=list)
    total: int = 0

    def add(self, row: PendingPayout) -> None:
        self.payout_ids.append(row.pending_payout_id)
        self.total += row.amount


@dataclass
class SettlementBatch:
    """Ledger rows grouped by payee for one run. Not persisted."""

    groups: dict[UUID, PayeeGroup] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: list[PendingPayout]) -> SettlementBatch:
        batch = cls()
        for row in rows:
            batch.add(row)
        return batch

    def add(self, row: PendingPayout) -> None:
        group = self.groups.get(row.business_employee_id)
        if group is None:
            group = self.groups[row.business_employee_id] = PayeeGroup(row.business_employee_id)
        group.add(row)

    def __iter__(self) -> Iterator[PayeeGroup]:
        return iter(self.groups.values())

    def __len__(self) -> int:
        return len(self.groups)

    @property
    def total(self) -> int:
        return sum(g.total for g in self.groups.values())


@dataclass(frozen=True)
class PayeeSettlementResult:
    """Outcome of settling one payee's rows."""

    business_employee_id: UUID
    payout_type: PayoutType
    success: bool
    amount: int = 0
    payout_ids: tuple[UUID, ...] = ()
    transfer_reference: str | None = None
    failure: TransferFailure | None = None
    error: str | None = None
    message: str | None = None

    @property
    def payout_count(self) -> int:
        return len(self.payout_ids)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "business_employee_id": str(self.business_employee_id),
            "payout_type": self.payout_type.value,
            "amount": self.amount,
            "formatted_amount": format_amount(self.amount),
            "payout_count": self.payout_count,
        }
        if self.transfer_reference:
            data["transfer_reference"] = self.transfer_reference
        if self.error:
            data["error"] = self.error
        if self.failure:
            data["failure"] = self.failure.value
        if self.message:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class SettlementRunSummary:
    """Outcome of one batch run.

    `processed`, `succeeded` and `failed` count ledger rows. Per-payee
    outcomes are in `results`.
    """

    run_date: date
    batch_id: str | None = None
    ran: bool = True
    results: tuple[PayeeSettlementResult, ...] = ()

    @property
    def processed(self) -> int:
        return sum(r.payout_count for r in self.results)

    @property
    def succeeded(self) -> int:
        return sum(r.payout_count for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(r.payout_count for r in self.results if not r.success)

    @property
    def payees_failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_paid(self) -> int:
        return sum(r.amount for r in self.results if r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_date": self.run_date.isoformat(),
            "batch_id": self.batch_id,
            "ran": self.ran,
            "processed": self.processed,
            "success": self.succeeded,
            "failed": self.failed,
            "payees": len(self.results),
            "payees_failed": self.payees_failed,
            "total_paid": self.total_paid,
            "formatted_total_paid": format_amount(self.total_paid),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class _ClaimedRow:
    pending_payout_id: UUID
    job_assignment_id: UUID
    amount: int


class BatchSettlementProcessor:
    """Pays pending ledger rows in bulk per payee.

    Owns its transactions. Constructed with every collaborator so the
    scheduler, the HTTP layer, the CLI and tests can each supply their own.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transfer_provider: TransferProvider,
        *,
        calendar: SettlementCalendar | None = None,
        clock: Clock | None = None,
        emitter: AsyncEventEmitter | None = None,
        currency: str = "usd",
    ):
        self.session_factory = session_factory
        self.transfer_provider = transfer_provider
        self.calendar = calendar or SettlementCalendar()
        self.clock = clock or SystemClock()
        self.emitter = emitter or AsyncEventEmitter()
        self.currency = currency

    # ------------------------------------------------------------------
    # Scheduled batch
    # ------------------------------------------------------------------

    async def run_scheduled(self) -> SettlementRunSummary:
        """Run the batch only if today is a settlement Friday."""
        today = self.clock.today()
        if not self.calendar.is_settlement_date(today):
            logger.info("Not a settlement date (%s), skipping batch run", today.isoformat())
            return SettlementRunSummary(run_date=today, ran=False)
        return await self.run(today)

    async def run(self, as_of: date | None = None) -> SettlementRunSummary:
        """Settle every pending row scheduled on or before `as_of` (default today)."""
        run_date = as_of or self.clock.today()
        batch_id = f"batch_{run_date.strftime('%Y%m%d')}_{uuid4().hex[:8]}"

        async with self.session_factory() as session:
            result = await session.execute(
                select(PendingPayout)
                .where(
                    PendingPayout.status == PayoutStatus.PENDING.value,
                    PendingPayout.scheduled_payout_date <= run_date,
                )
                .order_by(PendingPayout.business_employee_id, PendingPayout.earned_at)
            )
            batch = SettlementBatch.from_rows(list(result.scalars().all()))

        if not batch:
            logger.info("No due pending payouts for %s", run_date.isoformat())
            return SettlementRunSummary(run_date=run_date, batch_id=batch_id)

        logger.info(
            "Settling %d payee(s), %s due, batch %s",
            len(batch),
            format_amount(batch.total),
            batch_id,
        )

        results: list[PayeeSettlementResult] = []
        for group in batch:
            outcome = await self._settle_isolated(
                group.business_employee_id,
                group.payout_ids,
                PayoutType.BIWEEKLY_BATCH,
                batch_id,
            )
            if outcome is not None:
                results.append(outcome)

        summary = SettlementRunSummary(
            run_date=run_date,
            batch_id=batch_id,
            results=tuple(results),
        )
        logger.info(
            "Settlement run %s complete: %d processed, %d succeeded, %d failed",
            batch_id,
            summary.processed,
            summary.succeeded,
            summary.failed,
            extra={
                "batch_id": batch_id,
                "processed": summary.processed,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "total_paid": summary.total_paid,
            },
        )
        return summary

    # ------------------------------------------------------------------
    # On-demand triggers
    # ------------------------------------------------------------------

    async def early_payout(
        self,
        business_employee_id: UUID,
        business_owner_id: UUID,
    ) -> PayeeSettlementResult:
        """Pay an employee's pending rows with this business now, ignoring the date."""
        async with self.session_factory() as session:
            payout_ids = await self._pending_ids(
                session,
                PendingPayout.business_employee_id == business_employee_id,
                PendingPayout.business_owner_id == business_owner_id,
            )

        if not payout_ids:
            return PayeeSettlementResult(
                business_employee_id=business_employee_id,
                payout_type=PayoutType.EARLY,
                success=False,
                error="No pending payouts found for this employee",
            )

        batch_id = f"early_{uuid4().hex[:12]}"
        outcome = await self._settle_isolated(
            business_employee_id, payout_ids, PayoutType.EARLY, batch_id
        )
        return outcome or _nothing_claimed(business_employee_id, PayoutType.EARLY)

    async def termination_payout(self, business_employee_id: UUID) -> PayeeSettlementResult:
        """Mark the employee terminated and pay everything still pending."""
        now = self.clock.now()
        async with self.session_factory() as session, session.begin():
            employee = await session.get(BusinessEmployee, business_employee_id)
            if employee is None:
                raise NotFoundError(f"Employee {business_employee_id} not found")
            if employee.status != EmployeeStatus.TERMINATED.value:
                employee.status = EmployeeStatus.TERMINATED.value
                employee.terminated_at = now
            payout_ids = await self._pending_ids(
                session,
                PendingPayout.business_employee_id == business_employee_id,
            )

        if not payout_ids:
            return PayeeSettlementResult(
                business_employee_id=business_employee_id,
                payout_type=PayoutType.TERMINATION,
                success=True,
                message="No pending payouts",
            )

        batch_id = f"termination_{uuid4().hex[:12]}"
        outcome = await self._settle_isolated(
            business_employee_id, payout_ids, PayoutType.TERMINATION, batch_id
        )
        return outcome or _nothing_claimed(business_employee_id, PayoutType.TERMINATION)

    # ------------------------------------------------------------------
    # Claim / transfer / record
    # ------------------------------------------------------------------

    async def _settle_isolated(
        self,
        business_employee_id: UUID,
        payout_ids: list[UUID],
        payout_type: PayoutType,
        batch_id: str,
    ) -> PayeeSettlementResult | None:
        try:
            return await self._settle(business_employee_id, payout_ids, payout_type, batch_id)
        except Exception as e:
            logger.exception(
                "Settlement failed for employee %s in %s",
                business_employee_id,
                batch_id,
            )
            return PayeeSettlementResult(
                business_employee_id=business_employee_id,
                payout_type=payout_type,
                success=False,
                failure=TransferFailure.ERROR,
                error=str(e),
            )

    async def _settle(
        self,
        business_employee_id: UUID,
        payout_ids: list[UUID],
        payout_type: PayoutType,
        batch_id: str,
    ) -> PayeeSettlementResult | None:
        async with self.session_factory() as session, session.begin():
            claimed = await self._claim(session, payout_ids, payout_type, batch_id)
            if not claimed:
                logger.info(
                    "Rows for employee %s already claimed by another run",
                    business_employee_id,
                )
                return None
            employee = await session.get(BusinessEmployee, business_employee_id)
            account = None
            if employee is not None:
                account = await session.scalar(
                    select(PayoutAccount).where(PayoutAccount.user_id == employee.user_id)
                )
            employee_user_id = employee.user_id if employee else None

        amount = sum(r.amount for r in claimed)
        claimed_ids = tuple(r.pending_payout_id for r in claimed)

        if account is None:
            transfer = TransferResult.failed(
                TransferFailure.DESTINATION_NOT_READY,
                "Employee has not set up a payout account",
            )
        elif not account.payouts_enabled:
            transfer = TransferResult.failed(
                TransferFailure.DESTINATION_NOT_READY,
                "Employee has not completed payout onboarding",
            )
        else:
            try:
                transfer = await self.transfer_provider.transfer(
                    self._transfer_request(
                        business_employee_id,
                        account.destination_ref,
                        claimed_ids,
                        amount,
                        payout_type,
                        batch_id,
                    )
                )
            except Exception as exc:
                logger.exception(
                    "Transfer outcome unknown for employee %s; %d row(s) marked failed",
                    business_employee_id,
                    len(claimed),
                )
                # Failed rows are never picked up again, so no second transfer
                # is issued; operators reconcile using the idempotency key.
                transfer = TransferResult.failed(
                    TransferFailure.ERROR, f"Transfer outcome unknown: {exc}"
                )

        if transfer.success:
            await self._record_success(claimed, transfer.reference or "")
            logger.info(
                "Paid %s to employee %s for %d job(s)",
                format_amount(amount),
                business_employee_id,
                len(claimed),
            )
            await self._publish(
                PayoutBatchSettled(
                    metadata=EventMetadata.create(actor_type="scheduler", timestamp=self.clock.now()),
                    business_employee_id=business_employee_id,
                    employee_user_id=employee_user_id,
                    payout_type=payout_type.value,
                    amount=amount,
                    payout_count=len(claimed),
                    transfer_reference=transfer.reference or "",
                )
            )
            return PayeeSettlementResult(
                business_employee_id=business_employee_id,
                payout_type=payout_type,
                success=True,
                amount=amount,
                payout_ids=claimed_ids,
                transfer_reference=transfer.reference,
            )

        await self._record_failure(claimed, transfer.message)
        logger.warning(
            "Payout of %s to employee %s failed: %s",
            format_amount(amount),
            business_employee_id,
            transfer.message,
        )
        await self._publish(
            PayoutBatchFailed(
                metadata=EventMetadata.create(actor_type="scheduler", timestamp=self.clock.now()),
                business_employee_id=business_employee_id,
                employee_user_id=employee_user_id,
                payout_type=payout_type.value,
                amount=amount,
                payout_count=len(claimed),
                reason=transfer.message,
            )
        )
        return PayeeSettlementResult(
            business_employee_id=business_employee_id,
            payout_type=payout_type,
            success=False,
            amount=amount,
            payout_ids=claimed_ids,
            failure=transfer.failure,
            error=transfer.message,
        )

    async def _claim(
        self,
        session: AsyncSession,
        payout_ids: list[UUID],
        payout_type: PayoutType,
        batch_id: str,
    ) -> list[_ClaimedRow]:
        """Flip `pending -> processing`; returns only the rows this call won."""
        result = await session.execute(
            update(PendingPayout)
            .where(
                PendingPayout.pending_payout_id.in_(payout_ids),
                PendingPayout.status == PayoutStatus.PENDING.value,
            )
            .values(
                status=PayoutStatus.PROCESSING.value,
                payout_type=payout_type.value,
                batch_id=batch_id,
            )
            .returning(
                PendingPayout.pending_payout_id,
                PendingPayout.job_assignment_id,
                PendingPayout.amount,
            )
            .execution_options(synchronize_session=False)
        )
        return [_ClaimedRow(*row) for row in result.all()]

    def _transfer_request(
        self,
        business_employee_id: UUID,
        destination_ref: str,
        payout_ids: tuple[UUID, ...],
        amount: int,
        payout_type: PayoutType,
        batch_id: str,
    ) -> TransferRequest:
        metadata = {
            "payout_type": payout_type.value,
            "business_employee_id": str(business_employee_id),
            "payout_count": str(len(payout_ids)),
            "batch_id": batch_id,
        }
        joined = ",".join(str(i) for i in payout_ids)
        if len(joined) <= _METADATA_VALUE_LIMIT:
            metadata["payout_ids"] = joined

        labels = {
            PayoutType.BIWEEKLY_BATCH: "Bi-weekly payout",
            PayoutType.EARLY: "Early payout",
            PayoutType.TERMINATION: "Final payout",
        }
        return TransferRequest(
            amount=amount,
            destination_ref=destination_ref,
            idempotency_key=f"{batch_id}-{business_employee_id}",
            currency=self.currency,
            description=f"{labels[payout_type]} ({len(payout_ids)} jobs)",
            metadata=metadata,
        )

    async def _record_success(self, claimed: list[_ClaimedRow], reference: str) -> None:
        now = self.clock.now()
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(PendingPayout)
                .where(PendingPayout.pending_payout_id.in_([r.pending_payout_id for r in claimed]))
                .values(
                    status=PayoutStatus.COMPLETED.value,
                    transfer_reference=reference,
                    paid_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            for row in claimed:
                await session.execute(
                    update(JobAssignment)
                    .where(JobAssignment.job_assignment_id == row.job_assignment_id)
                    .values(
                        payout_status=AssignmentPayoutStatus.PAID.value,
                        employee_paid_amount=row.amount,
                        transfer_reference=reference,
                        paid_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )

    async def _record_failure(self, claimed: list[_ClaimedRow], reason: str) -> None:
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(PendingPayout)
                .where(PendingPayout.pending_payout_id.in_([r.pending_payout_id for r in claimed]))
                .values(
                    status=PayoutStatus.FAILED.value,
                    failure_reason=reason,
                    retry_count=PendingPayout.retry_count + 1,
                )
                .execution_options(synchronize_session=False)
            )

    async def _pending_ids(self, session: AsyncSession, *criteria: Any) -> list[UUID]:
        result = await session.execute(
            select(PendingPayout.pending_payout_id)
            .where(*criteria, PendingPayout.status == PayoutStatus.PENDING.value)
            .order_by(PendingPayout.earned_at)
        )
        return list(result.scalars().all())

    async def _publish(self, event: Any) -> None:
        errors = await self.emitter.emit(event)
        if errors:
            logger.warning("%d handler(s) failed for %s", len(errors), event.event_type)


def _nothing_claimed(business_employee_id: UUID, payout_type: PayoutType) -> PayeeSettlementResult:
    return PayeeSettlementResult(
        business_employee_id=business_employee_id,
        payout_type=payout_type,
        success=False,
        error="Pending payouts are already being processed",
    )
