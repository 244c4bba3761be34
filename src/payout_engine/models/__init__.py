"""SQLAlchemy ORM models for the payout engine."""

from payout_engine.models.base import Base, TimestampMixin, UpdatedAtMixin
from payout_engine.models.workforce import BusinessEmployee, EmployeeStatus, PayoutAccount
from payout_engine.models.appointment import (
    Appointment,
    AssignmentPayoutStatus,
    JobAssignment,
    PayType,
)
from payout_engine.models.payout import ACTIVE_PAYOUT_STATUSES, PayoutStatus, PendingPayout
from payout_engine.models.completion import (
    ApprovedBy,
    CompletionRecord,
    CompletionStatus,
    HomeownerApproval,
    SystemApproval,
)
from payout_engine.models.pricing import PricingConfig

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "BusinessEmployee",
    "EmployeeStatus",
    "PayoutAccount",
    "Appointment",
    "AssignmentPayoutStatus",
    "JobAssignment",
    "PayType",
    "ACTIVE_PAYOUT_STATUSES",
    "PayoutStatus",
    "PendingPayout",
    "ApprovedBy",
    "CompletionRecord",
    "CompletionStatus",
    "HomeownerApproval",
    "SystemApproval",
    "PricingConfig",
]
