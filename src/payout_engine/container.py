"""Wiring of services from settings."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_engine.clock import Clock, SystemClock
from payout_engine.config import Settings
from payout_engine.events import (
    AsyncEventEmitter,
    LoggingNotificationChannel,
    NotificationChannel,
    NotificationDispatcher,
)
from payout_engine.services import (
    AutoApprovalMonitor,
    BatchSettlementProcessor,
    CompletionService,
    SettlementCalendar,
)
from payout_engine.transfers import TransferProvider, build_transfer_provider


@dataclass(frozen=True)
class PayoutServices:
    """The long-lived services shared by the API, scheduler and CLI."""

    session_factory: async_sessionmaker[AsyncSession]
    transfer_provider: TransferProvider
    emitter: AsyncEventEmitter
    clock: Clock
    calendar: SettlementCalendar
    completions: CompletionService
    settlement: BatchSettlementProcessor
    auto_approval: AutoApprovalMonitor


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    transfer_provider: TransferProvider | None = None,
    clock: Clock | None = None,
    emitter: AsyncEventEmitter | None = None,
    notification_channel: NotificationChannel | None = None,
) -> PayoutServices:
    """Build services; any collaborator can be overridden (tests, CLI)."""
    provider = transfer_provider or build_transfer_provider(settings)
    clock = clock or SystemClock()
    calendar = SettlementCalendar(settings.settlement_anchor_date)

    if emitter is None:
        emitter = AsyncEventEmitter()
        NotificationDispatcher(notification_channel or LoggingNotificationChannel()).register(
            emitter
        )

    completions = CompletionService(
        session_factory,
        provider,
        emitter=emitter,
        clock=clock,
        calendar=calendar,
        currency=settings.currency,
        default_auto_approval_hours=settings.default_auto_approval_hours,
        default_platform_fee_percent=settings.default_platform_fee_percent,
    )
    settlement = BatchSettlementProcessor(
        session_factory,
        provider,
        calendar=calendar,
        clock=clock,
        emitter=emitter,
        currency=settings.currency,
    )
    auto_approval = AutoApprovalMonitor(session_factory, completions, clock=clock)

    return PayoutServices(
        session_factory=session_factory,
        transfer_provider=provider,
        emitter=emitter,
        clock=clock,
        calendar=calendar,
        completions=completions,
        settlement=settlement,
        auto_approval=auto_approval,
    )
