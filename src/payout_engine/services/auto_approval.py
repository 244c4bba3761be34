"""Auto-approval of submitted completions whose approval window expired."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_engine.clock import Clock, SystemClock
from payout_engine.errors import InvalidTransitionError
from payout_engine.models import CompletionRecord, CompletionStatus
from payout_engine.services.completion_service import CompletionService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoApprovalSummary:
    """Outcome of one monitor pass."""

    processed: int = 0
    errors: int = 0
    approved: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "approved": [str(i) for i in self.approved],
        }


class AutoApprovalMonitor:
    """Approves expired submitted completions with a system approval.

    Each record is approved through the same gate as a homeowner approval,
    so a homeowner approving at the same moment cannot release payment
    twice. A failure on one record is logged and counted; the pass moves on.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        completion_service: CompletionService,
        *,
        clock: Clock | None = None,
        batch_size: int = 100,
    ):
        self.session_factory = session_factory
        self.completion_service = completion_service
        self.clock = clock or SystemClock()
        self.batch_size = batch_size

    async def find_expired(self) -> list[UUID]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CompletionRecord.completion_record_id)
                .where(
                    CompletionRecord.completion_status == CompletionStatus.SUBMITTED.value,
                    CompletionRecord.auto_approval_expires_at.is_not(None),
                    CompletionRecord.auto_approval_expires_at <= self.clock.now(),
                )
                .order_by(CompletionRecord.auto_approval_expires_at)
                .limit(self.batch_size)
            )
            return list(result.scalars().all())

    async def run(self) -> AutoApprovalSummary:
        expired = await self.find_expired()
        if not expired:
            return AutoApprovalSummary()

        approved: list[UUID] = []
        errors = 0
        for record_id in expired:
            try:
                await self.completion_service.auto_approve(record_id)
                approved.append(record_id)
            except InvalidTransitionError as e:
                # Approved or disputed between the scan and the update.
                logger.info("Skipping completion %s: %s", record_id, e)
            except Exception:
                logger.exception("Auto-approval failed for completion %s", record_id)
                errors += 1

        summary = AutoApprovalSummary(
            processed=len(approved),
            errors=errors,
            approved=tuple(approved),
        )
        logger.info(
            "Auto-approval pass: %d approved, %d error(s)",
            summary.processed,
            summary.errors,
            extra={"processed": summary.processed, "errors": summary.errors},
        )
        return summary
