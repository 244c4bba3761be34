"""Pricing configuration model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from payout_engine.models.base import Base, TimestampMixin


class PricingConfig(Base, TimestampMixin):
    """Platform pricing settings. The newest active row wins."""

    __tablename__ = "pricing_config"

    pricing_config_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completion_auto_approval_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    platform_fee_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "platform_fee_percent IS NULL OR (platform_fee_percent >= 0 AND platform_fee_percent < 1)",
            name="pricing_config_fee_check",
        ),
    )
