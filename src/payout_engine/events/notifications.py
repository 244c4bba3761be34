"""Turns domain events into user notifications.

Delivery goes through a NotificationChannel. The default channel only
logs; production wires in-app, email and push senders behind the same
protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from payout_engine.events.emitter import AsyncEventEmitter
from payout_engine.events.types import (
    CompletionApproved,
    CompletionAutoApproved,
    CompletionDisputed,
    CompletionSubmitted,
    DomainEvent,
    EmployeeJobApproved,
    PayoutBatchFailed,
    PayoutBatchSettled,
)
from payout_engine.money import format_amount

logger = logging.getLogger(__name__)

ALL_CHANNELS = ("in_app", "email", "push")


@dataclass(frozen=True)
class Notification:
    """One message to one user."""

    user_id: UUID
    type: str
    title: str
    body: str
    channels: tuple[str, ...] = ALL_CHANNELS
    data: dict[str, Any] = field(default_factory=dict)


class NotificationChannel(Protocol):
    """Delivers notifications to users."""

    async def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationChannel:
    """Channel that logs notifications and keeps them in memory."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            "Notify %s [%s]: %s",
            notification.user_id,
            notification.type,
            notification.title,
        )

    def for_user(self, user_id: UUID) -> list[Notification]:
        return [n for n in self.sent if n.user_id == user_id]


class NotificationDispatcher:
    """Subscribes to the emitter and sends notifications for user-facing events."""

    def __init__(self, channel: NotificationChannel):
        self.channel = channel

    def register(self, emitter: AsyncEventEmitter) -> None:
        emitter.on(CompletionSubmitted, self._on_submitted)
        emitter.on(CompletionApproved, self._on_approved)
        emitter.on(CompletionAutoApproved, self._on_auto_approved)
        emitter.on(CompletionDisputed, self._on_disputed)
        emitter.on(EmployeeJobApproved, self._on_employee_job_approved)
        emitter.on(PayoutBatchSettled, self._on_batch_settled)
        emitter.on(PayoutBatchFailed, self._on_batch_failed)

    async def _on_submitted(self, event: DomainEvent) -> None:
        if not isinstance(event, CompletionSubmitted):
            return
        await self.channel.send(
            Notification(
                user_id=event.homeowner_id,
                type="job_completion_submitted",
                title="Job completed - review requested",
                body=(
                    "Your cleaner marked the job as complete. Approve it or it "
                    "will be approved automatically."
                ),
                data={
                    "appointment_id": str(event.appointment_id),
                    "auto_approval_expires_at": event.auto_approval_expires_at.isoformat(),
                },
            )
        )

    async def _on_approved(self, event: DomainEvent) -> None:
        if not isinstance(event, CompletionApproved):
            return
        if event.cleaner_user_id is None:
            return
        await self.channel.send(
            Notification(
                user_id=event.cleaner_user_id,
                type="job_approved",
                title="Job approved",
                body="The homeowner approved your work. Payment has been released.",
                data={"appointment_id": str(event.appointment_id)},
            )
        )

    async def _on_auto_approved(self, event: DomainEvent) -> None:
        if not isinstance(event, CompletionAutoApproved):
            return
        data = {"appointment_id": str(event.appointment_id)}
        await self.channel.send(
            Notification(
                user_id=event.homeowner_id,
                type="job_auto_approved",
                title="Job automatically approved",
                body="The review window ended and the job was approved.",
                channels=("in_app", "email"),
                data=data,
            )
        )
        if event.cleaner_user_id is not None:
            await self.channel.send(
                Notification(
                    user_id=event.cleaner_user_id,
                    type="job_auto_approved",
                    title="Job approved",
                    body="Your job was approved automatically. Payment has been released.",
                    data=data,
                )
            )

    async def _on_disputed(self, event: DomainEvent) -> None:
        if not isinstance(event, CompletionDisputed):
            return
        if event.cleaner_user_id is None:
            return
        await self.channel.send(
            Notification(
                user_id=event.cleaner_user_id,
                type="job_disputed",
                title="Job disputed",
                body=f"The homeowner disputed this job: {event.reason}",
                data={"appointment_id": str(event.appointment_id)},
            )
        )

    async def _on_employee_job_approved(self, event: DomainEvent) -> None:
        if not isinstance(event, EmployeeJobApproved):
            return
        how = "automatically approved" if event.auto_approved else "approved by the client"
        await self.channel.send(
            Notification(
                user_id=event.business_owner_id,
                type="employee_job_approved",
                title="Employee job approved",
                body=f"A job by {event.employee_name} was {how}.",
                channels=("in_app",),
                data={
                    "appointment_id": str(event.appointment_id),
                    "business_employee_id": str(event.business_employee_id),
                },
            )
        )

    async def _on_batch_settled(self, event: DomainEvent) -> None:
        if not isinstance(event, PayoutBatchSettled):
            return
        if event.employee_user_id is None:
            return
        await self.channel.send(
            Notification(
                user_id=event.employee_user_id,
                type="payout_sent",
                title="Payout sent",
                body=(
                    f"{format_amount(event.amount)} for {event.payout_count} "
                    f"job(s) is on its way."
                ),
                data={"transfer_reference": event.transfer_reference},
            )
        )

    async def _on_batch_failed(self, event: DomainEvent) -> None:
        if not isinstance(event, PayoutBatchFailed):
            return
        if event.employee_user_id is None:
            return
        await self.channel.send(
            Notification(
                user_id=event.employee_user_id,
                type="payout_failed",
                title="Payout could not be sent",
                body=f"Your payout of {format_amount(event.amount)} failed: {event.reason}",
                channels=("in_app", "email"),
            )
        )
