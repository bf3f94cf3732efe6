"""
Work Graph Telemetry

Architectural Intent:
- Bridges work node lifecycle events to the OTEL exporter
- Subscribes to the event bus; the work graph itself knows nothing about
  telemetry
"""

from stackgraph.domain.events.work_node_events import (
    WorkNodeCompletedEvent,
    WorkNodeFailedEvent,
    WorkNodesSkippedEvent,
)
from stackgraph.domain.ports.event_bus_port import EventBusPort
from stackgraph.infrastructure.telemetry.otel_exporter import OTELExporter


class WorkGraphTelemetry:
    def __init__(self, exporter: OTELExporter) -> None:
        self.exporter = exporter

    def attach(self, event_bus: EventBusPort) -> None:
        event_bus.subscribe(WorkNodeCompletedEvent, self.on_completed)
        event_bus.subscribe(WorkNodeFailedEvent, self.on_failed)
        event_bus.subscribe(WorkNodesSkippedEvent, self.on_skipped)

    async def on_completed(self, event: WorkNodeCompletedEvent) -> None:
        self.exporter.record_node_duration(
            event.aggregate_id, event.node_type, True, event.duration_seconds * 1000
        )

    async def on_failed(self, event: WorkNodeFailedEvent) -> None:
        self.exporter.record_node_duration(
            event.aggregate_id, event.node_type, False, event.duration_seconds * 1000
        )
        self.exporter.record_node_failed(event.aggregate_id, event.node_type)

    async def on_skipped(self, event: WorkNodesSkippedEvent) -> None:
        self.exporter.record_nodes_skipped(event.aggregate_id, len(event.skipped_ids))
