"""Job completion confirmation workflow.

A cleaner submits a finished job, the homeowner approves or disputes it,
and if the homeowner does nothing the auto-approval monitor approves it
when the window expires. Approval is the only path to payment release.

The homeowner approval and the auto-approval share one gate
(`_approve`): a conditional `submitted -> approved|auto_approved` update.
Whichever caller wins the update releases payment; the other sees an
InvalidTransitionError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from payout_engine.clock import Clock, SystemClock
from payout_engine.errors import (
    CompletionNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from payout_engine.events import (
    AsyncEventEmitter,
    CompletionApproved,
    CompletionAutoApproved,
    CompletionDisputed,
    CompletionSubmitted,
    DomainEvent,
    EarningRecorded,
    EmployeeJobApproved,
    EventMetadata,
    OwnerShareTransferFailed,
    OwnerShareTransferred,
)
from payout_engine.models import (
    Appointment,
    ApprovedBy,
    CompletionRecord,
    CompletionStatus,
    HomeownerApproval,
    JobAssignment,
    SystemApproval,
)
from payout_engine.money import format_amount
from payout_engine.services.completion_state_machine import CompletionStateMachine
from payout_engine.services.payment_release import (
    PaymentRelease,
    ReleasePlan,
    transfer_owner_share,
)
from payout_engine.services.payout_ledger import PayoutLedger
from payout_engine.services.pricing import (
    DEFAULT_AUTO_APPROVAL_HOURS,
    DEFAULT_PLATFORM_FEE_PERCENT,
    PricingConfigStore,
)
from payout_engine.services.settlement_calendar import SettlementCalendar
from payout_engine.transfers import TransferProvider, TransferResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of approving one completion record."""

    completion_record_id: UUID
    appointment_id: UUID
    completion_status: str
    approved_by: ApprovedBy
    plan: ReleasePlan
    appointment_completed: bool
    owner_transfer: TransferResult | None = None

    def to_dict(self) -> dict[str, Any]:
        owner: dict[str, Any] = {
            "amount": self.plan.owner_share,
            "formatted_amount": format_amount(self.plan.owner_share),
            "transferred": bool(self.owner_transfer and self.owner_transfer.success),
        }
        if self.owner_transfer is not None:
            owner["transfer_reference"] = self.owner_transfer.reference
            if not self.owner_transfer.success:
                owner["error"] = self.owner_transfer.message
        return {
            "completion_record_id": str(self.completion_record_id),
            "appointment_id": str(self.appointment_id),
            "completion_status": self.completion_status,
            "approved_by": str(self.approved_by.approver_id) if self.approved_by.approver_id else "system",
            "appointment_completed": self.appointment_completed,
            "gross_amount": self.plan.gross_amount,
            "platform_fee": self.plan.platform_fee,
            "net_amount": self.plan.net_amount,
            "owner_share": owner,
            "employee_earnings": [
                {
                    "pending_payout_id": str(e.pending_payout_id),
                    "business_employee_id": str(e.business_employee_id),
                    "amount": e.amount,
                    "formatted_amount": format_amount(e.amount),
                    "scheduled_payout_date": e.scheduled_payout_date.isoformat(),
                }
                for e in self.plan.earnings
            ],
        }


@dataclass(frozen=True)
class CompletionStatusView:
    """Completion state of an appointment and its records, as seen at `as_of`."""

    appointment_id: UUID
    appointment_completed: bool
    is_multi_cleaner: bool
    as_of: datetime
    records: tuple[CompletionRecord, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointment_id": str(self.appointment_id),
            "completed": self.appointment_completed,
            "is_multi_cleaner": self.is_multi_cleaner,
            "records": [_record_dict(r, self.as_of) for r in self.records],
        }


def seconds_until_auto_approval(record: CompletionRecord, now: datetime) -> int | None:
    """Whole seconds left in the approval window; None unless awaiting approval."""
    expires_at = record.auto_approval_expires_at
    if record.completion_status != CompletionStatus.SUBMITTED.value or expires_at is None:
        return None
    if expires_at.tzinfo is None:
        # SQLite hands back naive UTC values.
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return max(0, int((expires_at - now).total_seconds()))


def _record_dict(record: CompletionRecord, now: datetime) -> dict[str, Any]:
    def iso(value: datetime | None) -> str | None:
        return value.isoformat() if value else None

    remaining = seconds_until_auto_approval(record, now)
    return {
        "completion_record_id": str(record.completion_record_id),
        "cleaner_id": str(record.cleaner_id) if record.cleaner_id else None,
        "completion_status": record.completion_status,
        "submitted_at": iso(record.submitted_at),
        "auto_approval_expires_at": iso(record.auto_approval_expires_at),
        "seconds_until_auto_approval": remaining,
        "auto_approval_expired": remaining == 0,
        "approved_at": iso(record.approved_at),
        "approved_by": str(record.approved_by_id) if record.approved_by_id else None,
        "dispute_reason": record.dispute_reason,
        "can_be_approved": CompletionStateMachine.can_be_approved(record.completion_status),
    }


class CompletionService:
    """Submit, approve, dispute and inspect job completions.

    Owns its transactions: each operation opens a session from the
    factory and commits before any transfer or event publication.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transfer_provider: TransferProvider,
        *,
        emitter: AsyncEventEmitter | None = None,
        clock: Clock | None = None,
        calendar: SettlementCalendar | None = None,
        currency: str = "usd",
        default_auto_approval_hours: int = DEFAULT_AUTO_APPROVAL_HOURS,
        default_platform_fee_percent: Decimal | float = DEFAULT_PLATFORM_FEE_PERCENT,
    ):
        self.session_factory = session_factory
        self.transfer_provider = transfer_provider
        self.emitter = emitter or AsyncEventEmitter()
        self.clock = clock or SystemClock()
        self.calendar = calendar or SettlementCalendar()
        self.currency = currency
        self.default_auto_approval_hours = default_auto_approval_hours
        self.default_platform_fee_percent = default_platform_fee_percent

    def _pricing(self, session: AsyncSession) -> PricingConfigStore:
        return PricingConfigStore(
            session,
            default_auto_approval_hours=self.default_auto_approval_hours,
            default_platform_fee_percent=self.default_platform_fee_percent,
        )

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(
        self,
        appointment_id: UUID,
        cleaner_user_id: UUID,
        *,
        checklist: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> CompletionRecord:
        """Submit a finished job for homeowner approval.

        Raises:
            NotFoundError: Appointment does not exist.
            PermissionDeniedError: Caller did not work this job.
            InvalidTransitionError: Already submitted, approved or disputed.
        """
        now = self.clock.now()
        async with self.session_factory() as session, session.begin():
            appointment = await self._load_appointment(session, appointment_id)
            if not _worked_job(appointment, cleaner_user_id):
                raise PermissionDeniedError("Only the assigned cleaner can submit this job")

            record_cleaner = cleaner_user_id if appointment.is_multi_cleaner else None
            record = await self._find_record(session, appointment_id, record_cleaner)
            if record is None:
                record = CompletionRecord(
                    appointment_id=appointment_id,
                    cleaner_id=record_cleaner,
                    completion_status=CompletionStatus.NOT_SUBMITTED.value,
                )
                session.add(record)

            CompletionStateMachine.validate_transition(
                record.completion_status, CompletionStatus.SUBMITTED
            )

            hours = await self._pricing(session).get_auto_approval_hours()
            record.completion_status = CompletionStatus.SUBMITTED.value
            record.submitted_by_id = cleaner_user_id
            record.submitted_at = now
            record.auto_approval_expires_at = now + timedelta(hours=hours)
            record.checklist_json = checklist
            record.notes = notes
            await session.flush()
            homeowner_id = appointment.homeowner_id

        logger.info(
            "Completion submitted for appointment %s, auto-approves at %s",
            appointment_id,
            record.auto_approval_expires_at.isoformat(),
        )
        await self._publish(
            CompletionSubmitted(
                metadata=self._metadata(cleaner_user_id, "user"),
                completion_record_id=record.completion_record_id,
                appointment_id=appointment_id,
                homeowner_id=homeowner_id,
                submitted_by_id=cleaner_user_id,
                auto_approval_expires_at=record.auto_approval_expires_at,
            )
        )
        return record

    # ------------------------------------------------------------------
    # Approve
    # ------------------------------------------------------------------

    async def approve(
        self,
        appointment_id: UUID,
        homeowner_id: UUID,
        *,
        cleaner_id: UUID | None = None,
    ) -> ApprovalResult:
        """Homeowner approval of a submitted completion.

        For multi-cleaner appointments `cleaner_id` selects the record.
        """
        async with self.session_factory() as session:
            appointment = await self._load_appointment(session, appointment_id)
            if appointment.homeowner_id != homeowner_id:
                raise PermissionDeniedError("Only the homeowner can approve this job")
            record = await self._require_record(session, appointment, cleaner_id)
            CompletionStateMachine.validate_transition(
                record.completion_status, CompletionStatus.APPROVED
            )
            record_id = record.completion_record_id

        return await self._approve(record_id, HomeownerApproval(homeowner_id))

    async def auto_approve(self, completion_record_id: UUID) -> ApprovalResult:
        """System approval after the approval window expired."""
        return await self._approve(completion_record_id, SystemApproval())

    async def _approve(
        self,
        completion_record_id: UUID,
        approved_by: ApprovedBy,
    ) -> ApprovalResult:
        target = (
            CompletionStatus.AUTO_APPROVED
            if isinstance(approved_by, SystemApproval)
            else CompletionStatus.APPROVED
        )
        now = self.clock.now()

        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                update(CompletionRecord)
                .where(
                    CompletionRecord.completion_record_id == completion_record_id,
                    CompletionRecord.completion_status == CompletionStatus.SUBMITTED.value,
                )
                .values(
                    completion_status=target.value,
                    approved_at=now,
                    approved_by_id=approved_by.approver_id,
                )
                .returning(CompletionRecord.completion_record_id)
            )
            if result.first() is None:
                current = await session.scalar(
                    select(CompletionRecord.completion_status).where(
                        CompletionRecord.completion_record_id == completion_record_id
                    )
                )
                if current is None:
                    raise CompletionNotFoundError(
                        f"Completion record {completion_record_id} not found"
                    )
                CompletionStateMachine.validate_transition(current, target.value)
                raise InvalidTransitionError(
                    current, target.value, "completion changed concurrently"
                )

            record = await session.get(
                CompletionRecord, completion_record_id, populate_existing=True
            )
            if record is None:
                raise CompletionNotFoundError(
                    f"Completion record {completion_record_id} not found"
                )
            appointment = await self._load_appointment(session, record.appointment_id)

            ledger = PayoutLedger(session, calendar=self.calendar, clock=self.clock)
            release = PaymentRelease(session, ledger=ledger, pricing=self._pricing(session))
            plan = await release.release(appointment, record)

            completed = await self._roll_up(session, appointment, now)
            cleaner_user_id = record.submitted_by_id or record.cleaner_id or appointment.cleaner_id
            homeowner_id = appointment.homeowner_id

        logger.info(
            "Completion %s %s; released %s (%d employee earning(s), owner share %s)",
            completion_record_id,
            target.value,
            format_amount(plan.net_amount),
            len(plan.earnings),
            format_amount(plan.owner_share),
        )

        owner_transfer = await transfer_owner_share(self.transfer_provider, plan, self.currency)
        await self._publish_approval(
            plan, approved_by, homeowner_id, cleaner_user_id, owner_transfer
        )

        return ApprovalResult(
            completion_record_id=completion_record_id,
            appointment_id=plan.appointment_id,
            completion_status=target.value,
            approved_by=approved_by,
            plan=plan,
            appointment_completed=completed,
            owner_transfer=owner_transfer,
        )

    async def _roll_up(
        self,
        session: AsyncSession,
        appointment: Appointment,
        now: datetime,
    ) -> bool:
        """Mark the appointment completed once every required record is approved."""
        if appointment.completed:
            return True

        if appointment.is_multi_cleaner:
            result = await session.execute(
                select(CompletionRecord.completion_status).where(
                    CompletionRecord.appointment_id == appointment.appointment_id,
                    CompletionRecord.cleaner_id.is_not(None),
                )
            )
            statuses = list(result.scalars().all())
            if len(statuses) < appointment.cleaner_count or not all(
                CompletionStateMachine.is_approved(s) for s in statuses
            ):
                return False

        appointment.completed = True
        appointment.completed_at = now
        return True

    async def _publish_approval(
        self,
        plan: ReleasePlan,
        approved_by: ApprovedBy,
        homeowner_id: UUID,
        cleaner_user_id: UUID | None,
        owner_transfer: TransferResult | None,
    ) -> None:
        is_system = isinstance(approved_by, SystemApproval)
        metadata = (
            self._metadata(None, "scheduler")
            if is_system
            else self._metadata(approved_by.approver_id, "user")
        )
        events: list[DomainEvent] = []
        approved_cls = CompletionAutoApproved if is_system else CompletionApproved
        events.append(
            approved_cls(
                metadata=metadata,
                completion_record_id=plan.completion_record_id,
                appointment_id=plan.appointment_id,
                homeowner_id=homeowner_id,
                cleaner_user_id=cleaner_user_id,
            )
        )
        for earning in plan.earnings:
            events.append(
                EarningRecorded(
                    metadata=metadata,
                    pending_payout_id=earning.pending_payout_id,
                    business_employee_id=earning.business_employee_id,
                    business_owner_id=earning.business_owner_id,
                    job_assignment_id=earning.job_assignment_id,
                    amount=earning.amount,
                    scheduled_payout_date=earning.scheduled_payout_date,
                )
            )
            events.append(
                EmployeeJobApproved(
                    metadata=metadata,
                    appointment_id=plan.appointment_id,
                    business_owner_id=earning.business_owner_id,
                    business_employee_id=earning.business_employee_id,
                    employee_name=earning.employee_name,
                    auto_approved=is_system,
                )
            )
        if owner_transfer is not None:
            if owner_transfer.success:
                events.append(
                    OwnerShareTransferred(
                        metadata=metadata,
                        appointment_id=plan.appointment_id,
                        payer_id=plan.payer_id,
                        amount=plan.owner_share,
                        transfer_reference=owner_transfer.reference or "",
                    )
                )
            else:
                logger.error(
                    "Owner share transfer for appointment %s failed: %s",
                    plan.appointment_id,
                    owner_transfer.message,
                )
                events.append(
                    OwnerShareTransferFailed(
                        metadata=metadata,
                        appointment_id=plan.appointment_id,
                        payer_id=plan.payer_id,
                        amount=plan.owner_share,
                        reason=owner_transfer.message,
                    )
                )

        errors = await self.emitter.emit_all(events)
        if errors:
            logger.warning(
                "%d handler(s) failed publishing approval of %s",
                len(errors),
                plan.completion_record_id,
            )

    # ------------------------------------------------------------------
    # Dispute
    # ------------------------------------------------------------------

    async def dispute(
        self,
        appointment_id: UUID,
        homeowner_id: UUID,
        reason: str,
        *,
        cleaner_id: UUID | None = None,
    ) -> CompletionRecord:
        """Homeowner disputes a submitted job. Blocks payment release."""
        if not reason or not reason.strip():
            raise ValueError("A dispute reason is required")

        now = self.clock.now()
        async with self.session_factory() as session, session.begin():
            appointment = await self._load_appointment(session, appointment_id)
            if appointment.homeowner_id != homeowner_id:
                raise PermissionDeniedError("Only the homeowner can dispute this job")
            record = await self._require_record(session, appointment, cleaner_id)

            result = await session.execute(
                update(CompletionRecord)
                .where(
                    CompletionRecord.completion_record_id == record.completion_record_id,
                    CompletionRecord.completion_status == CompletionStatus.SUBMITTED.value,
                )
                .values(
                    completion_status=CompletionStatus.DISPUTED.value,
                    dispute_reason=reason,
                    disputed_at=now,
                )
                .returning(CompletionRecord.completion_record_id)
            )
            if result.first() is None:
                CompletionStateMachine.validate_transition(
                    record.completion_status, CompletionStatus.DISPUTED
                )
                # Status changed underneath us.
                raise InvalidTransitionError(
                    record.completion_status, CompletionStatus.DISPUTED.value
                )

            await session.refresh(record)
            cleaner_user_id = record.submitted_by_id or record.cleaner_id or appointment.cleaner_id

        logger.info("Completion %s disputed: %s", record.completion_record_id, reason)
        await self._publish(
            CompletionDisputed(
                metadata=self._metadata(homeowner_id, "user"),
                completion_record_id=record.completion_record_id,
                appointment_id=appointment_id,
                homeowner_id=homeowner_id,
                cleaner_user_id=cleaner_user_id,
                reason=reason,
            )
        )
        return record

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self, appointment_id: UUID) -> CompletionStatusView:
        async with self.session_factory() as session:
            appointment = await self._load_appointment(session, appointment_id)
            result = await session.execute(
                select(CompletionRecord)
                .where(CompletionRecord.appointment_id == appointment_id)
                .order_by(CompletionRecord.created_at)
            )
            records = tuple(result.scalars().all())
            return CompletionStatusView(
                appointment_id=appointment_id,
                appointment_completed=appointment.completed,
                is_multi_cleaner=appointment.is_multi_cleaner,
                as_of=self.clock.now(),
                records=records,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_appointment(self, session: AsyncSession, appointment_id: UUID) -> Appointment:
        result = await session.execute(
            select(Appointment)
            .where(Appointment.appointment_id == appointment_id)
            .options(selectinload(Appointment.assignments).selectinload(JobAssignment.employee))
            .execution_options(populate_existing=True)
        )
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def _find_record(
        self,
        session: AsyncSession,
        appointment_id: UUID,
        cleaner_id: UUID | None,
    ) -> CompletionRecord | None:
        query = select(CompletionRecord).where(CompletionRecord.appointment_id == appointment_id)
        if cleaner_id is None:
            query = query.where(CompletionRecord.cleaner_id.is_(None))
        else:
            query = query.where(CompletionRecord.cleaner_id == cleaner_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def _require_record(
        self,
        session: AsyncSession,
        appointment: Appointment,
        cleaner_id: UUID | None,
    ) -> CompletionRecord:
        if appointment.is_multi_cleaner and cleaner_id is None:
            raise ValueError("cleaner_id is required for multi-cleaner appointments")
        record = await self._find_record(
            session,
            appointment.appointment_id,
            cleaner_id if appointment.is_multi_cleaner else None,
        )
        if record is None:
            raise CompletionNotFoundError(
                f"No completion submitted for appointment {appointment.appointment_id}"
            )
        return record

    def _metadata(self, actor_id: UUID | None, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            actor_id=actor_id,
            actor_type=actor_type,
            timestamp=self.clock.now(),
        )

    async def _publish(self, event: DomainEvent) -> None:
        errors = await self.emitter.emit(event)
        if errors:
            logger.warning("%d handler(s) failed for %s", len(errors), event.event_type)


def _worked_job(appointment: Appointment, user_id: UUID) -> bool:
    if appointment.cleaner_id == user_id:
        return True
    return any(a.cleaner_user_id == user_id for a in appointment.assignments)
