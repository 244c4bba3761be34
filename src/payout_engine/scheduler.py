"""Periodic jobs: bi-weekly settlement and completion auto-approval.

Both jobs run on one AsyncIOScheduler, independently of each other. A
job that is still running when its next tick fires is not started twice,
and missed ticks are coalesced into one run.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from payout_engine.config import Settings
from payout_engine.services import AutoApprovalMonitor, BatchSettlementProcessor

logger = logging.getLogger(__name__)

SETTLEMENT_JOB_ID = "biweekly-settlement"
AUTO_APPROVAL_JOB_ID = "completion-auto-approval"


class PayoutScheduler:
    """Schedules the settlement processor and the auto-approval monitor."""

    def __init__(
        self,
        settings: Settings,
        settlement: BatchSettlementProcessor,
        auto_approval: AutoApprovalMonitor,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.settings = settings
        self.settlement = settlement
        self.auto_approval = auto_approval
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    async def run_settlement(self) -> None:
        try:
            summary = await self.settlement.run_scheduled()
        except Exception as exc:
            # Storage unavailable or similar; the next tick tries again.
            logger.exception("Settlement job failed", extra={"error": str(exc)})
            return
        if summary.ran:
            logger.info("settlement_job", extra=summary.to_dict())

    async def run_auto_approval(self) -> None:
        try:
            summary = await self.auto_approval.run()
        except Exception as exc:
            logger.exception("Auto-approval job failed", extra={"error": str(exc)})
            return
        if summary.processed or summary.errors:
            logger.info("auto_approval_job", extra=summary.to_dict())

    def start(self) -> None:
        self.scheduler.add_job(
            self.run_settlement,
            "cron",
            hour=self.settings.settlement_run_hour,
            minute=0,
            id=SETTLEMENT_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_auto_approval,
            "interval",
            minutes=self.settings.auto_approval_interval_minutes,
            id=AUTO_APPROVAL_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Payout scheduler started",
            extra={
                "settlement_run_hour": self.settings.settlement_run_hour,
                "auto_approval_interval_minutes": self.settings.auto_approval_interval_minutes,
            },
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
