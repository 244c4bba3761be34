"""Domain events package.

This package provides:
- Typed domain events for completion, ledger and settlement operations
- An async event emitter for publishing them
- A notification dispatcher turning events into user notifications
"""

from payout_engine.events.types import (
    # Base
    DomainEvent,
    EventMetadata,
    EventCategory,
    # Completion Events
    CompletionSubmitted,
    CompletionApproved,
    CompletionAutoApproved,
    CompletionDisputed,
    EmployeeJobApproved,
    # Ledger Events
    EarningRecorded,
    PendingPayoutCancelled,
    # Settlement Events
    OwnerShareTransferred,
    OwnerShareTransferFailed,
    PayoutBatchSettled,
    PayoutBatchFailed,
)
from payout_engine.events.emitter import AsyncEventEmitter, EventHandler
from payout_engine.events.notifications import (
    LoggingNotificationChannel,
    Notification,
    NotificationChannel,
    NotificationDispatcher,
)

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    "CompletionSubmitted",
    "CompletionApproved",
    "CompletionAutoApproved",
    "CompletionDisputed",
    "EmployeeJobApproved",
    "EarningRecorded",
    "PendingPayoutCancelled",
    "OwnerShareTransferred",
    "OwnerShareTransferFailed",
    "PayoutBatchSettled",
    "PayoutBatchFailed",
    "AsyncEventEmitter",
    "EventHandler",
    "LoggingNotificationChannel",
    "Notification",
    "NotificationChannel",
    "NotificationDispatcher",
]
