"""
Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for observability
- Work node durations and failures exported as metrics
"""

from stackgraph.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)
from stackgraph.infrastructure.telemetry.work_graph_telemetry import WorkGraphTelemetry

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
    "WorkGraphTelemetry",
]
