"""
Event Bus Infrastructure

Architectural Intent:
- In-memory event bus for work node lifecycle events
- Supports async subscription handlers
- Handlers are matched on the exact event type
- A failing handler is logged and isolated: the remaining handlers still
  run and the publisher never sees the error, so progress reporting or
  telemetry cannot interrupt a deployment
"""

import logging
from typing import Callable, Awaitable
from stackgraph.domain.events.event_base import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            handlers = self._handlers.get(type(event), [])
            if not handlers:
                logger.debug("No handlers for %s", event.event_type)
            for handler in handlers:
                await self._deliver(handler, event)

    async def _deliver(self, handler: Handler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Handler %s failed on %s for %s",
                getattr(handler, "__qualname__", repr(handler)),
                event.event_type,
                event.aggregate_id,
            )

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, []))
