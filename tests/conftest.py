"""Pytest fixtures for payout engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from payout_engine.clock import FixedClock
from payout_engine.config import Settings
from payout_engine.container import PayoutServices, build_services
from payout_engine.database import create_schema, get_engine, make_session_factory
from payout_engine.events import (
    AsyncEventEmitter,
    LoggingNotificationChannel,
    NotificationDispatcher,
)
from payout_engine.models import (
    Appointment,
    BusinessEmployee,
    CompletionRecord,
    JobAssignment,
    PayoutAccount,
    PendingPayout,
    PricingConfig,
)
from payout_engine.services import PayoutLedger, SettlementCalendar
from payout_engine.transfers import StubTransferProvider

# Monday; the next settlement Friday is 2024-01-19
EARNED_AT = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
SETTLEMENT_DAY = date(2024, 1, 19)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        settlement_anchor_date=date(2024, 1, 5),
        settlement_run_hour=9,
        auto_approval_interval_minutes=5,
        default_auto_approval_hours=4,
        default_platform_fee_percent=0.10,
        transfer_provider="stub",
        stripe_secret_key=None,
        currency="usd",
        scheduler_enabled=False,
    )


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so several sessions see the same data."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path}/payouts.db")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(EARNED_AT)


@pytest.fixture
def calendar() -> SettlementCalendar:
    return SettlementCalendar()


@pytest.fixture
def provider() -> StubTransferProvider:
    return StubTransferProvider()


@pytest.fixture
def channel() -> LoggingNotificationChannel:
    return LoggingNotificationChannel()


@pytest.fixture
def emitter(channel: LoggingNotificationChannel) -> AsyncEventEmitter:
    emitter = AsyncEventEmitter()
    NotificationDispatcher(channel).register(emitter)
    return emitter


@pytest.fixture
def services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    provider: StubTransferProvider,
    clock: FixedClock,
    emitter: AsyncEventEmitter,
) -> PayoutServices:
    return build_services(
        settings,
        session_factory,
        transfer_provider=provider,
        clock=clock,
        emitter=emitter,
    )


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class Business:
    """A business owner with a payout account."""

    owner_id: UUID
    destination_ref: str


@dataclass
class Job:
    """An appointment with its assignments."""

    appointment: Appointment
    assignments: list[JobAssignment]

    @property
    def appointment_id(self) -> UUID:
        return self.appointment.appointment_id

    @property
    def assignment(self) -> JobAssignment:
        return self.assignments[0]


class Seeder:
    """Creates businesses, employees and jobs, committing each."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def account(self, user_id: UUID, *, enabled: bool = True) -> str:
        destination = f"acct_{user_id.hex[:12]}"
        async with self.session_factory() as session, session.begin():
            session.add(
                PayoutAccount(user_id=user_id, destination_ref=destination, payouts_enabled=enabled)
            )
        return destination

    async def business(self, *, with_account: bool = True) -> Business:
        owner_id = uuid4()
        destination = await self.account(owner_id) if with_account else ""
        return Business(owner_id=owner_id, destination_ref=destination)

    async def employee(
        self,
        business: Business,
        *,
        first_name: str = "Maria",
        last_name: str = "Lopez",
        account: bool = True,
        payouts_enabled: bool = True,
    ) -> BusinessEmployee:
        employee = BusinessEmployee(
            business_owner_id=business.owner_id,
            user_id=uuid4(),
            first_name=first_name,
            last_name=last_name,
        )
        async with self.session_factory() as session, session.begin():
            session.add(employee)
        if account:
            await self.account(employee.user_id, enabled=payouts_enabled)
        return employee

    async def job(
        self,
        business: Business | None,
        workers: list[BusinessEmployee] | None = None,
        *,
        price: int = 10000,
        pay_amount: int = 2500,
        homeowner_id: UUID | None = None,
        independent_cleaner_id: UUID | None = None,
        self_assigned: bool = False,
    ) -> Job:
        workers = workers or []
        appointment = Appointment(
            homeowner_id=homeowner_id or uuid4(),
            business_owner_id=business.owner_id if business else None,
            cleaner_id=independent_cleaner_id,
            service_date=date(2024, 1, 8),
            price_amount=price,
            is_multi_cleaner=len(workers) > 1,
            cleaner_count=max(len(workers), 1),
        )
        assignments: list[JobAssignment] = []
        async with self.session_factory() as session, session.begin():
            session.add(appointment)
            await session.flush()
            if business and self_assigned:
                assignments.append(
                    JobAssignment(
                        appointment_id=appointment.appointment_id,
                        business_owner_id=business.owner_id,
                        cleaner_user_id=business.owner_id,
                        is_self_assignment=True,
                        pay_amount=0,
                    )
                )
            for worker in workers:
                assignments.append(
                    JobAssignment(
                        appointment_id=appointment.appointment_id,
                        business_owner_id=worker.business_owner_id,
                        business_employee_id=worker.business_employee_id,
                        cleaner_user_id=worker.user_id,
                        pay_type="hourly",
                        hours_worked=Decimal("2.50"),
                        pay_amount=pay_amount,
                    )
                )
            session.add_all(assignments)
        return Job(appointment=appointment, assignments=assignments)

    async def earning(
        self,
        business: Business,
        employee: BusinessEmployee,
        clock: FixedClock,
        *,
        amount: int = 2500,
        owner_id: UUID | None = None,
    ) -> PendingPayout:
        """Record one pending payout the way an approval would."""
        job = await self.job(business, [employee], pay_amount=amount)
        async with self.session_factory() as session, session.begin():
            assignment = await session.get(JobAssignment, job.assignment.job_assignment_id)
            appointment = await session.get(Appointment, job.appointment_id)
            assert assignment is not None and appointment is not None
            if owner_id is not None:
                assignment.business_owner_id = owner_id
            ledger = PayoutLedger(session, clock=clock)
            return await ledger.record_earning(assignment, amount, appointment)

    async def pricing(self, *, hours: int | None = None, fee: str | None = None) -> None:
        async with self.session_factory() as session, session.begin():
            session.add(
                PricingConfig(
                    completion_auto_approval_hours=hours,
                    platform_fee_percent=Decimal(fee) if fee is not None else None,
                )
            )

    # Query helpers

    async def payouts(self, business_employee_id: UUID | None = None) -> list[PendingPayout]:
        async with self.session_factory() as session:
            query = select(PendingPayout).order_by(PendingPayout.earned_at)
            if business_employee_id is not None:
                query = query.where(PendingPayout.business_employee_id == business_employee_id)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get(self, model, ident):
        async with self.session_factory() as session:
            return await session.get(model, ident)

    async def completion_records(self, appointment_id: UUID) -> list[CompletionRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CompletionRecord)
                .where(CompletionRecord.appointment_id == appointment_id)
                .order_by(CompletionRecord.created_at)
            )
            return list(result.scalars().all())


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seeder:
    return Seeder(session_factory)
