"""
Event Bus Port

Architectural Intent:
- Abstract interface for publishing work node lifecycle events
- Decouples the work graph from progress reporting and telemetry
- Implementation can be in-memory or backed by a message queue
"""

from typing import Protocol, Callable, Awaitable, runtime_checkable
from stackgraph.domain.events.event_base import DomainEvent


@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, events: list[DomainEvent]) -> None:
        """Deliver events in order to the handlers subscribed to their type.

        Implementations should not let a handler failure escape; the work
        graph logs anything that does and carries on scheduling.
        """
        ...

    def subscribe(
        self, event_type: type, handler: Callable[[DomainEvent], Awaitable[None]]
    ) -> None: ...
