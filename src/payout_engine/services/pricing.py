"""Pricing configuration reader with safe defaults."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payout_engine.models import PricingConfig

logger = logging.getLogger(__name__)

DEFAULT_AUTO_APPROVAL_HOURS = 4
DEFAULT_PLATFORM_FEE_PERCENT = Decimal("0.10")


class PricingConfigStore:
    """Reads the newest active pricing row.

    A missing row, a missing value or a zero approval window falls back to
    the configured defaults.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        default_auto_approval_hours: int = DEFAULT_AUTO_APPROVAL_HOURS,
        default_platform_fee_percent: Decimal | float = DEFAULT_PLATFORM_FEE_PERCENT,
    ):
        self.session = session
        self.default_auto_approval_hours = default_auto_approval_hours
        self.default_platform_fee_percent = Decimal(str(default_platform_fee_percent))

    async def get_active(self) -> PricingConfig | None:
        result = await self.session.execute(
            select(PricingConfig)
            .where(PricingConfig.is_active.is_(True))
            .order_by(PricingConfig.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_auto_approval_hours(self) -> int:
        config = await self.get_active()
        if config is None or not config.completion_auto_approval_hours:
            return self.default_auto_approval_hours
        if config.completion_auto_approval_hours < 0:
            logger.warning(
                "Ignoring negative auto-approval window %s",
                config.completion_auto_approval_hours,
            )
            return self.default_auto_approval_hours
        return config.completion_auto_approval_hours

    async def get_platform_fee_percent(self) -> Decimal:
        config = await self.get_active()
        if config is None or config.platform_fee_percent is None:
            return self.default_platform_fee_percent
        return Decimal(config.platform_fee_percent)
