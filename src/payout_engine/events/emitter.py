"""Async event emitter for completion, ledger and settlement events.

Events are published after the state change they describe has committed.
Handlers run one at a time in registration order, so a payee's
notifications arrive in the order the events happened. A failing handler
is logged and reported back to the caller. The remaining handlers still
receive the event, and the money movement that produced it is never
rolled back.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar, Union

from payout_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class _Subscription:
    handler: EventHandler
    event_types: frozenset[str] | None  # None = any type
    categories: frozenset[EventCategory] | None  # None = any category

    def wants(self, event: DomainEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.categories is not None and event.category not in self.categories:
            return False
        return True


class AsyncEventEmitter:
    """Publishes domain events to subscribed handlers.

    Handlers may be coroutine functions or plain callables:

        emitter = AsyncEventEmitter()
        emitter.on(PayoutBatchSettled, notify_payee)
        emitter.on_category(EventCategory.COMPLETION, audit)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        types = event_type if isinstance(event_type, list) else [event_type]
        self._subscribe(handler, event_types=frozenset(t.__name__ for t in types))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        cats = category if isinstance(category, list) else [category]
        self._subscribe(handler, categories=frozenset(cats))

    def on_all(self, handler: EventHandler) -> None:
        self._subscribe(handler)

    def off(self, handler: EventHandler) -> None:
        """Remove every subscription of `handler`."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    def _subscribe(
        self,
        handler: EventHandler,
        *,
        event_types: frozenset[str] | None = None,
        categories: frozenset[EventCategory] | None = None,
    ) -> None:
        self._subscriptions.append(_Subscription(handler, event_types, categories))

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver `event` to every interested handler.

        Returns the exceptions raised by handlers, empty when all succeeded.
        """
        errors: list[Exception] = []
        for subscription in list(self._subscriptions):
            if not subscription.wants(event):
                continue
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(
                    "Handler %r failed for %s",
                    subscription.handler,
                    event.event_type,
                    extra={"event_id": str(event.metadata.event_id)},
                )
                errors.append(e)
        return errors

    async def emit_all(self, events: list[DomainEvent]) -> list[Exception]:
        """Emit several events in order, collecting handler errors."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(await self.emit(event))
        return errors
