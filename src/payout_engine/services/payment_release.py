"""Payment release for an approved job completion.

Splits the job's net amount (price minus platform fee) between the
employees who worked it and the payer who fulfilled it:

- Employee pay is deferred: written to the pending payout ledger for the
  next settlement Friday.
- The payer's retained share (business owner, or independent cleaner when
  no business is involved) is transferred immediately, after the approval
  transaction commits.

For multi-cleaner appointments each cleaner's completion releases only
that cleaner's share (net // cleaner_count) and assignments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payout_engine.models import (
    Appointment,
    CompletionRecord,
    JobAssignment,
    PayoutAccount,
)
from payout_engine.money import format_amount, percent_of
from payout_engine.services.payout_ledger import PayoutLedger
from payout_engine.services.pricing import PricingConfigStore
from payout_engine.transfers import (
    TransferFailure,
    TransferProvider,
    TransferRequest,
    TransferResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedEarning:
    """An employee earning written to the ledger during release."""

    pending_payout_id: UUID
    job_assignment_id: UUID
    business_employee_id: UUID
    business_owner_id: UUID
    employee_name: str
    amount: int
    scheduled_payout_date: date


@dataclass(frozen=True)
class ReleasePlan:
    """How one approved completion's money is split."""

    appointment_id: UUID
    completion_record_id: UUID
    gross_amount: int
    platform_fee: int
    net_amount: int
    earnings: tuple[RecordedEarning, ...]
    owner_share: int
    payer_id: UUID
    payer_destination: str | None
    payer_payouts_enabled: bool

    @property
    def employee_total(self) -> int:
        return sum(e.amount for e in self.earnings)


def split_gross(price_amount: int, cleaner_count: int, is_multi_cleaner: bool) -> int:
    """Gross amount released by one completion record."""
    if is_multi_cleaner and cleaner_count > 1:
        return price_amount // cleaner_count
    return price_amount


def assignments_for(appointment: Appointment, record: CompletionRecord) -> list[JobAssignment]:
    """Assignments whose pay is released by this completion record."""
    if record.cleaner_id is None:
        return list(appointment.assignments)
    return [a for a in appointment.assignments if a.cleaner_user_id == record.cleaner_id]


class PaymentRelease:
    """Computes and records the money movement for an approved completion.

    `release` runs inside the approval transaction. `transfer_owner_share`
    runs after it commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        ledger: PayoutLedger,
        pricing: PricingConfigStore,
    ):
        self.session = session
        self.ledger = ledger
        self.pricing = pricing

    async def release(
        self,
        appointment: Appointment,
        record: CompletionRecord,
    ) -> ReleasePlan:
        fee_percent: Decimal = await self.pricing.get_platform_fee_percent()
        gross = split_gross(
            appointment.price_amount,
            appointment.cleaner_count,
            appointment.is_multi_cleaner,
        )
        fee = percent_of(gross, fee_percent)
        net = gross - fee

        earnings: list[RecordedEarning] = []
        for assignment in assignments_for(appointment, record):
            if not assignment.earns_batched_pay:
                continue
            payout = await self.ledger.record_earning(
                assignment, assignment.pay_amount, appointment
            )
            earnings.append(
                RecordedEarning(
                    pending_payout_id=payout.pending_payout_id,
                    job_assignment_id=assignment.job_assignment_id,
                    business_employee_id=payout.business_employee_id,
                    business_owner_id=payout.business_owner_id,
                    employee_name=(
                        assignment.employee.full_name if assignment.employee else "Employee"
                    ),
                    amount=payout.amount,
                    scheduled_payout_date=payout.scheduled_payout_date,
                )
            )

        employee_total = sum(e.amount for e in earnings)
        owner_share = net - employee_total
        if owner_share < 0:
            logger.warning(
                "Employee pay %s exceeds net %s for appointment %s; owner share is zero",
                format_amount(employee_total),
                format_amount(net),
                appointment.appointment_id,
            )
            owner_share = 0

        payer_id = appointment.payer_id
        account = await self._payout_account(payer_id)

        return ReleasePlan(
            appointment_id=appointment.appointment_id,
            completion_record_id=record.completion_record_id,
            gross_amount=gross,
            platform_fee=fee,
            net_amount=net,
            earnings=tuple(earnings),
            owner_share=owner_share,
            payer_id=payer_id,
            payer_destination=account.destination_ref if account else None,
            payer_payouts_enabled=bool(account and account.payouts_enabled),
        )

    async def _payout_account(self, user_id: UUID) -> PayoutAccount | None:
        result = await self.session.execute(
            select(PayoutAccount).where(PayoutAccount.user_id == user_id)
        )
        return result.scalar_one_or_none()


async def transfer_owner_share(
    provider: TransferProvider,
    plan: ReleasePlan,
    currency: str = "usd",
) -> TransferResult | None:
    """Transfer the payer's retained share. Returns None when there is nothing to send.

    Keyed on the completion record so a repeated call cannot pay twice.
    """
    if plan.owner_share <= 0:
        return None
    if plan.payer_destination is None:
        return TransferResult.failed(
            TransferFailure.DESTINATION_NOT_READY, "Payer has not set up a payout account"
        )
    if not plan.payer_payouts_enabled:
        return TransferResult.failed(
            TransferFailure.DESTINATION_NOT_READY, "Payer has not completed payout onboarding"
        )

    return await provider.transfer(
        TransferRequest(
            amount=plan.owner_share,
            destination_ref=plan.payer_destination,
            idempotency_key=f"owner-share-{plan.completion_record_id}",
            currency=currency,
            description=f"Job payment for appointment {plan.appointment_id}",
            metadata={
                "payout_type": "job_payment",
                "appointment_id": str(plan.appointment_id),
                "completion_record_id": str(plan.completion_record_id),
            },
        )
    )
