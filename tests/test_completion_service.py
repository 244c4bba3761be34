"""Tests for the completion workflow and payment release."""

import asyncio
from datetime import date, timedelta
from uuid import uuid4

import pytest

from payout_engine.errors import (
    CompletionNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from payout_engine.events import OwnerShareTransferFailed
from payout_engine.models import (
    Appointment,
    CompletionStatus,
    HomeownerApproval,
    JobAssignment,
    SystemApproval,
)
from payout_engine.transfers import TransferFailure

pytestmark = pytest.mark.asyncio


@pytest.fixture
def completions(services):
    return services.completions


async def _business_job(seed, **kwargs):
    business = await seed.business()
    employee = await seed.employee(business)
    job = await seed.job(business, [employee], **kwargs)
    return business, employee, job


class TestSubmit:

    async def test_opens_approval_window(self, completions, seed, clock):
        _, employee, job = await _business_job(seed)

        record = await completions.submit(
            job.appointment_id,
            employee.user_id,
            checklist={"kitchen": True},
            notes="All done",
        )

        assert record.completion_status == CompletionStatus.SUBMITTED.value
        assert record.submitted_by_id == employee.user_id
        assert record.cleaner_id is None
        assert record.auto_approval_expires_at == clock.now() + timedelta(hours=4)
        assert record.checklist_json == {"kitchen": True}
        assert record.notes == "All done"

    async def test_window_from_pricing_config(self, completions, seed, clock):
        await seed.pricing(hours=24)
        _, employee, job = await _business_job(seed)

        record = await completions.submit(job.appointment_id, employee.user_id)

        assert record.auto_approval_expires_at == clock.now() + timedelta(hours=24)

    async def test_only_assigned_cleaner(self, completions, seed):
        _, _, job = await _business_job(seed)

        with pytest.raises(PermissionDeniedError):
            await completions.submit(job.appointment_id, uuid4())

    async def test_unknown_appointment(self, completions):
        with pytest.raises(NotFoundError):
            await completions.submit(uuid4(), uuid4())

    async def test_cannot_submit_twice(self, completions, seed):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        with pytest.raises(InvalidTransitionError):
            await completions.submit(job.appointment_id, employee.user_id)

    async def test_homeowner_notified(self, completions, channel, seed):
        homeowner_id = uuid4()
        business = await seed.business()
        employee = await seed.employee(business)
        job = await seed.job(business, [employee], homeowner_id=homeowner_id)

        await completions.submit(job.appointment_id, employee.user_id)

        assert [n.type for n in channel.for_user(homeowner_id)] == ["job_completion_submitted"]


class TestApprove:

    async def test_releases_payment(self, completions, provider, seed):
        """$100 job, 10% fee, $25 employee pay: $65 to the owner now, $25 pending."""
        business, employee, job = await _business_job(seed, price=10000, pay_amount=2500)
        homeowner_id = job.appointment.homeowner_id
        await completions.submit(job.appointment_id, employee.user_id)

        result = await completions.approve(job.appointment_id, homeowner_id)

        assert result.completion_status == "approved"
        assert result.approved_by == HomeownerApproval(homeowner_id)
        assert result.plan.gross_amount == 10000
        assert result.plan.platform_fee == 1000
        assert result.plan.net_amount == 9000
        assert result.plan.employee_total == 2500
        assert result.plan.owner_share == 6500
        assert result.appointment_completed is True

        assert len(provider.transfers) == 1
        transfer = provider.transfers[0]
        assert transfer.amount == 6500
        assert transfer.destination_ref == business.destination_ref
        assert transfer.idempotency_key == f"owner-share-{result.completion_record_id}"

        payouts = await seed.payouts()
        assert len(payouts) == 1
        assert payouts[0].amount == 2500
        assert payouts[0].status == "pending"
        assert payouts[0].scheduled_payout_date == date(2024, 1, 19)

        appointment = await seed.get(Appointment, job.appointment_id)
        assert appointment.completed is True
        assignment = await seed.get(JobAssignment, job.assignment.job_assignment_id)
        assert assignment.payout_status == "pending_batch"

        data = result.to_dict()
        assert data["approved_by"] == str(homeowner_id)
        assert data["owner_share"]["transferred"] is True
        assert data["employee_earnings"][0]["amount"] == 2500

    async def test_fee_from_pricing_config(self, completions, seed):
        await seed.pricing(fee="0.15")
        _, employee, job = await _business_job(seed, price=10000, pay_amount=2500)
        await completions.submit(job.appointment_id, employee.user_id)

        result = await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert result.plan.platform_fee == 1500
        assert result.plan.owner_share == 6000

    async def test_only_homeowner(self, completions, seed):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        with pytest.raises(PermissionDeniedError):
            await completions.approve(job.appointment_id, uuid4())

    async def test_requires_submission(self, completions, seed):
        _, _, job = await _business_job(seed)

        with pytest.raises(CompletionNotFoundError):
            await completions.approve(job.appointment_id, job.appointment.homeowner_id)

    async def test_second_approval_rejected(self, completions, provider, seed):
        _, employee, job = await _business_job(seed)
        homeowner_id = job.appointment.homeowner_id
        await completions.submit(job.appointment_id, employee.user_id)
        await completions.approve(job.appointment_id, homeowner_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await completions.approve(job.appointment_id, homeowner_id)

        assert exc_info.value.reason == "completion is already approved"
        assert len(await seed.payouts()) == 1
        assert len(provider.transfers) == 1

    async def test_racing_approval_and_auto_approval(self, completions, provider, seed, clock):
        _, employee, job = await _business_job(seed)
        record = await completions.submit(job.appointment_id, employee.user_id)
        clock.advance(hours=5)

        outcomes = await asyncio.gather(
            completions.approve(job.appointment_id, job.appointment.homeowner_id),
            completions.auto_approve(record.completion_record_id),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidTransitionError)
        assert errors[0].reason.startswith("completion is already ")
        assert len(await seed.payouts()) == 1
        assert len(provider.transfers) == 1

    async def test_employee_pay_exceeding_net(self, completions, provider, seed):
        _, employee, job = await _business_job(seed, price=10000, pay_amount=9500)
        await completions.submit(job.appointment_id, employee.user_id)

        result = await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert result.plan.owner_share == 0
        assert result.owner_transfer is None
        assert provider.transfers == []
        assert [p.amount for p in await seed.payouts()] == [9500]

    async def test_owner_without_payout_account(self, completions, emitter, provider, seed):
        business = await seed.business(with_account=False)
        employee = await seed.employee(business)
        job = await seed.job(business, [employee])
        failures = []

        async def capture(event):
            failures.append(event)

        emitter.on(OwnerShareTransferFailed, capture)
        await completions.submit(job.appointment_id, employee.user_id)

        result = await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert result.completion_status == "approved"
        assert result.owner_transfer.failure is TransferFailure.DESTINATION_NOT_READY
        assert result.to_dict()["owner_share"]["transferred"] is False
        assert provider.transfers == []
        assert len(await seed.payouts()) == 1
        assert [e.amount for e in failures] == [6500]

    async def test_notifications(self, completions, channel, seed):
        business, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert [n.type for n in channel.for_user(employee.user_id)] == ["job_approved"]
        assert [n.type for n in channel.for_user(business.owner_id)] == ["employee_job_approved"]


class TestAutoApprove:

    async def test_system_approval(self, completions, provider, seed, clock):
        _, employee, job = await _business_job(seed)
        record = await completions.submit(job.appointment_id, employee.user_id)
        clock.advance(hours=4)

        result = await completions.auto_approve(record.completion_record_id)

        assert result.completion_status == "auto_approved"
        assert result.approved_by == SystemApproval()
        assert result.to_dict()["approved_by"] == "system"
        stored = (await seed.completion_records(job.appointment_id))[0]
        assert stored.approved_by_id is None
        assert isinstance(stored.approved_by, SystemApproval)
        assert len(await seed.payouts()) == 1

    async def test_unknown_record(self, completions):
        with pytest.raises(CompletionNotFoundError):
            await completions.auto_approve(uuid4())


class TestDispute:

    async def test_blocks_payment(self, completions, provider, channel, seed):
        _, employee, job = await _business_job(seed)
        homeowner_id = job.appointment.homeowner_id
        await completions.submit(job.appointment_id, employee.user_id)

        record = await completions.dispute(job.appointment_id, homeowner_id, "Bathroom skipped")

        assert record.completion_status == "disputed"
        assert record.dispute_reason == "Bathroom skipped"
        assert await seed.payouts() == []
        assert provider.transfers == []
        assert [n.type for n in channel.for_user(employee.user_id)] == ["job_disputed"]

        with pytest.raises(InvalidTransitionError):
            await completions.approve(job.appointment_id, homeowner_id)

    async def test_reason_required(self, completions, seed):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        with pytest.raises(ValueError):
            await completions.dispute(job.appointment_id, job.appointment.homeowner_id, "  ")

    async def test_cannot_dispute_approved(self, completions, seed):
        _, employee, job = await _business_job(seed)
        homeowner_id = job.appointment.homeowner_id
        await completions.submit(job.appointment_id, employee.user_id)
        await completions.approve(job.appointment_id, homeowner_id)

        with pytest.raises(InvalidTransitionError):
            await completions.dispute(job.appointment_id, homeowner_id, "Too late")


class TestPayers:
    """Jobs without employee pay."""

    async def test_independent_cleaner_paid_directly(self, completions, provider, seed):
        cleaner_id = uuid4()
        destination = await seed.account(cleaner_id)
        job = await seed.job(None, independent_cleaner_id=cleaner_id, price=10000)
        await completions.submit(job.appointment_id, cleaner_id)

        result = await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert result.plan.earnings == ()
        assert result.plan.owner_share == 9000
        assert provider.transfers[0].destination_ref == destination
        assert await seed.payouts() == []

    async def test_owner_working_own_job(self, completions, provider, seed):
        business = await seed.business()
        job = await seed.job(business, self_assigned=True, price=10000)
        await completions.submit(job.appointment_id, business.owner_id)

        result = await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        assert result.plan.owner_share == 9000
        assert provider.transfers[0].destination_ref == business.destination_ref
        assert await seed.payouts() == []


class TestMultiCleaner:

    async def test_each_cleaner_released_separately(self, completions, provider, seed):
        business = await seed.business()
        maria = await seed.employee(business, first_name="Maria")
        sam = await seed.employee(business, first_name="Sam")
        job = await seed.job(business, [maria, sam], price=10000, pay_amount=2500)
        homeowner_id = job.appointment.homeowner_id

        await completions.submit(job.appointment_id, maria.user_id)
        await completions.submit(job.appointment_id, sam.user_id)

        first = await completions.approve(
            job.appointment_id, homeowner_id, cleaner_id=maria.user_id
        )
        assert first.plan.gross_amount == 5000
        assert first.plan.platform_fee == 500
        assert first.plan.owner_share == 2000
        assert [e.business_employee_id for e in first.plan.earnings] == [
            maria.business_employee_id
        ]
        assert first.appointment_completed is False

        second = await completions.approve(
            job.appointment_id, homeowner_id, cleaner_id=sam.user_id
        )
        assert second.appointment_completed is True
        assert len(await seed.payouts()) == 2
        assert provider.total_transferred == 4000

        view = await completions.status(job.appointment_id)
        assert view.appointment_completed is True
        assert view.is_multi_cleaner is True
        assert {r.completion_status for r in view.records} == {"approved"}

    async def test_cleaner_id_required(self, completions, seed):
        business = await seed.business()
        maria = await seed.employee(business, first_name="Maria")
        sam = await seed.employee(business, first_name="Sam")
        job = await seed.job(business, [maria, sam])
        await completions.submit(job.appointment_id, maria.user_id)

        with pytest.raises(ValueError):
            await completions.approve(job.appointment_id, job.appointment.homeowner_id)


class TestStatus:

    async def test_before_submission(self, completions, seed):
        _, _, job = await _business_job(seed)

        view = await completions.status(job.appointment_id)

        assert view.appointment_completed is False
        assert view.records == ()
        assert view.to_dict()["records"] == []

    async def test_submitted_record_can_be_approved(self, completions, seed):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        data = (await completions.status(job.appointment_id)).to_dict()

        assert data["records"][0]["completion_status"] == "submitted"
        assert data["records"][0]["can_be_approved"] is True

    async def test_time_left_until_auto_approval(self, completions, seed, clock):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)

        clock.advance(hours=1)
        record = (await completions.status(job.appointment_id)).to_dict()["records"][0]
        assert record["seconds_until_auto_approval"] == 3 * 60 * 60
        assert record["auto_approval_expired"] is False

        clock.advance(hours=3, minutes=1)
        record = (await completions.status(job.appointment_id)).to_dict()["records"][0]
        assert record["seconds_until_auto_approval"] == 0
        assert record["auto_approval_expired"] is True

    async def test_no_countdown_once_approved(self, completions, seed):
        _, employee, job = await _business_job(seed)
        await completions.submit(job.appointment_id, employee.user_id)
        await completions.approve(job.appointment_id, job.appointment.homeowner_id)

        record = (await completions.status(job.appointment_id)).to_dict()["records"][0]

        assert record["seconds_until_auto_approval"] is None
        assert record["auto_approval_expired"] is False
