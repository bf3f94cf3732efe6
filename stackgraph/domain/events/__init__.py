"""
Domain Events Package

Architectural Intent:
- Contains domain events emitted while a work graph executes
- Events are the primary mechanism for progress reporting and telemetry
"""

from stackgraph.domain.events.event_base import DomainEvent
from stackgraph.domain.events.work_node_events import (
    WorkNodeStartedEvent,
    WorkNodeCompletedEvent,
    WorkNodeFailedEvent,
    WorkNodesSkippedEvent,
)

__all__ = [
    "DomainEvent",
    "WorkNodeStartedEvent",
    "WorkNodeCompletedEvent",
    "WorkNodeFailedEvent",
    "WorkNodesSkippedEvent",
]
