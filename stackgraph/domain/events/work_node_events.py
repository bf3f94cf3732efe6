"""
Work Node Events

Architectural Intent:
- Lifecycle events emitted by the work graph while it executes
- Let progress reporting and telemetry tell "this node failed" apart
  from "these nodes were never attempted"
- The aggregate id of every event is the id of the node it concerns
"""

from dataclasses import dataclass
from typing import Any

from stackgraph.domain.events.event_base import DomainEvent


@dataclass(frozen=True)
class WorkNodeStartedEvent(DomainEvent):
    node_type: str = ""


@dataclass(frozen=True)
class WorkNodeCompletedEvent(DomainEvent):
    node_type: str = ""
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "node_type": self.node_type,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class WorkNodeFailedEvent(DomainEvent):
    node_type: str = ""
    duration_seconds: float = 0.0
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "node_type": self.node_type,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class WorkNodesSkippedEvent(DomainEvent):
    """Published once per failure cascade; aggregate id is the failed node."""
    skipped_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "skipped_ids": list(self.skipped_ids)}
