"""Tests for the auto-approval monitor."""

import pytest

from payout_engine.errors import InvalidTransitionError
from payout_engine.services import AutoApprovalMonitor

pytestmark = pytest.mark.asyncio


@pytest.fixture
def monitor(services):
    return services.auto_approval


async def _submitted_job(services, seed):
    business = await seed.business()
    employee = await seed.employee(business)
    job = await seed.job(business, [employee])
    record = await services.completions.submit(job.appointment_id, employee.user_id)
    return job, record


async def test_nothing_before_window_expires(monitor, services, seed, clock):
    await _submitted_job(services, seed)
    clock.advance(hours=3, minutes=59)

    summary = await monitor.run()

    assert summary.processed == 0
    assert summary.errors == 0
    assert await seed.payouts() == []


async def test_approves_expired_records(monitor, services, seed, clock, channel):
    job, record = await _submitted_job(services, seed)
    clock.advance(hours=4)

    summary = await monitor.run()

    assert summary.processed == 1
    assert summary.approved == (record.completion_record_id,)
    stored = (await seed.completion_records(job.appointment_id))[0]
    assert stored.completion_status == "auto_approved"
    assert stored.approved_by_id is None
    assert len(await seed.payouts()) == 1

    homeowner_types = [n.type for n in channel.for_user(job.appointment.homeowner_id)]
    assert "job_auto_approved" in homeowner_types


async def test_second_pass_is_a_no_op(monitor, services, seed, clock, provider):
    await _submitted_job(services, seed)
    clock.advance(hours=5)
    await monitor.run()

    summary = await monitor.run()

    assert summary.processed == 0
    assert len(provider.transfers) == 1


async def test_disputed_records_ignored(monitor, services, seed, clock):
    job, _ = await _submitted_job(services, seed)
    await services.completions.dispute(
        job.appointment_id, job.appointment.homeowner_id, "Not finished"
    )
    clock.advance(hours=5)

    summary = await monitor.run()

    assert summary.processed == 0
    assert await seed.payouts() == []


async def test_batch_size_limits_pass(services, seed, clock, session_factory):
    for _ in range(3):
        await _submitted_job(services, seed)
    clock.advance(hours=5)
    monitor = AutoApprovalMonitor(
        session_factory, services.completions, clock=clock, batch_size=2
    )

    first = await monitor.run()
    second = await monitor.run()

    assert first.processed == 2
    assert second.processed == 1


class FlakyCompletions:
    """Completion service double that fails for chosen records."""

    def __init__(self, failing=(), already_done=()):
        self.failing = set(failing)
        self.already_done = set(already_done)
        self.approved = []

    async def auto_approve(self, record_id):
        if record_id in self.failing:
            raise RuntimeError("storage unavailable")
        if record_id in self.already_done:
            raise InvalidTransitionError("approved", "auto_approved")
        self.approved.append(record_id)


async def test_one_failure_does_not_stop_the_pass(services, seed, clock, session_factory):
    _, broken = await _submitted_job(services, seed)
    _, raced = await _submitted_job(services, seed)
    _, fine = await _submitted_job(services, seed)
    clock.advance(hours=5)
    fake = FlakyCompletions(
        failing={broken.completion_record_id},
        already_done={raced.completion_record_id},
    )
    monitor = AutoApprovalMonitor(session_factory, fake, clock=clock)

    summary = await monitor.run()

    assert summary.processed == 1
    assert summary.errors == 1
    assert fake.approved == [fine.completion_record_id]
    assert summary.to_dict()["approved"] == [str(fine.completion_record_id)]


async def test_empty_pass(monitor):
    summary = await monitor.run()

    assert summary.processed == 0
    assert summary.approved == ()
