"""Business services for completion approval and payout settlement."""

from payout_engine.services.settlement_calendar import (
    DEFAULT_ANCHOR,
    SettlementCalendar,
    is_settlement_date,
    next_settlement_date,
)
from payout_engine.services.payout_ledger import (
    CancelResult,
    PayeePendingSummary,
    PayerPendingSummary,
    PayoutLedger,
)
from payout_engine.services.pricing import PricingConfigStore
from payout_engine.services.completion_state_machine import CompletionStateMachine
from payout_engine.services.payment_release import PaymentRelease, ReleasePlan
from payout_engine.services.completion_service import (
    ApprovalResult,
    CompletionService,
    CompletionStatusView,
)
from payout_engine.services.batch_settlement import (
    BatchSettlementProcessor,
    PayeeGroup,
    PayeeSettlementResult,
    PayoutType,
    SettlementBatch,
    SettlementRunSummary,
)
from payout_engine.services.auto_approval import AutoApprovalMonitor, AutoApprovalSummary

__all__ = [
    "DEFAULT_ANCHOR",
    "SettlementCalendar",
    "is_settlement_date",
    "next_settlement_date",
    "CancelResult",
    "PayeePendingSummary",
    "PayerPendingSummary",
    "PayoutLedger",
    "PricingConfigStore",
    "CompletionStateMachine",
    "PaymentRelease",
    "ReleasePlan",
    "ApprovalResult",
    "CompletionService",
    "CompletionStatusView",
    "BatchSettlementProcessor",
    "PayeeGroup",
    "PayeeSettlementResult",
    "PayoutType",
    "SettlementBatch",
    "SettlementRunSummary",
    "AutoApprovalMonitor",
    "AutoApprovalSummary",
]
