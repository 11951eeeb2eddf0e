"""Async event emitter for publishing domain events.

Handlers are isolated: a failing handler is logged and the remaining
handlers still receive the event. Callers emit only after their
transaction has committed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from onboarding_engine.events.types import DomainEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

AsyncEventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: AsyncEventHandler
    event_types: set[str] | None  # None = all events


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_hr(event: OnboardingManagerApproved) -> None:
            ...

        emitter.on(OnboardingManagerApproved, notify_hr)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(self, event_type: type[T] | list[type[T]], handler: AsyncEventHandler) -> None:
        """Register handler for specific event type(s).

        Subclasses match their own name only; register each concrete type.
        """
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler=handler, event_types=types))

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler=handler, event_types=None))

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns the exceptions raised by handlers; never raises them.
        """
        tasks: list[asyncio.Task[None]] = []
        for reg in self._handlers:
            if reg.event_types and event.event_type not in reg.event_types:
                continue
            tasks.append(asyncio.create_task(self._call_handler(reg.handler, event)))

        errors: list[Exception] = []
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    errors.append(result)
        return errors

    async def emit_all(self, events: list[DomainEvent]) -> list[Exception]:
        """Emit events in order."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(await self.emit(event))
        return errors

    async def _call_handler(self, handler: AsyncEventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler %s failed for event %s", handler, event.event_type)
            raise
