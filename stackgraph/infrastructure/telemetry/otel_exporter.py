"""
OpenTelemetry Exporter

Architectural Intent:
- Exports scheduler telemetry to OTLP-compatible backends
- Metrics are always buffered locally; they are also pushed to OTEL
  gauges once the SDK has been initialised against an endpoint

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
- Validation in __post_init__ prevents accidental plaintext export
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Optional, Any
from urllib.parse import urlparse
import logging
from datetime import datetime, UTC

logger = logging.getLogger(__name__)


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "stackgraph"
    environment: str = "development"
    enable_metrics: bool = True
    insecure: bool = False
    max_buffered_metrics: int = 10_000

    def __post_init__(self) -> None:
        if self.max_buffered_metrics < 1:
            raise ValueError("max_buffered_metrics must be at least 1")
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """OpenTelemetry exporter for work graph executions."""

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        # Oldest entries are dropped once full; without an endpoint nothing
        # ever drains the buffer
        self._metrics_buffer: deque[dict[str, Any]] = deque(
            maxlen=config.max_buffered_metrics
        )
        self._meter: Any = None
        self._gauges: dict[str, Any] = {}

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        from opentelemetry import metrics
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME

        try:
            resource = Resource(
                attributes={
                    SERVICE_NAME: self.config.service_name,
                    "environment": self.config.environment,
                }
            )

            if self.config.enable_metrics:
                metric_reader = PeriodicExportingMetricReader(
                    OTLPMetricExporter(
                        endpoint=self.config.endpoint, insecure=self.config.insecure
                    )
                )
                provider = MeterProvider(
                    resource=resource, metric_readers=[metric_reader]
                )
                metrics.set_meter_provider(provider)
                self._meter = metrics.get_meter(__name__)

            self._initialized = True

        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            self._initialized = False

    def _get_gauge(self, name: str, unit: str = "") -> Any:
        """Get or create a gauge for a metric name."""
        if name not in self._gauges and self._meter:
            self._gauges[name] = self._meter.create_gauge(name, unit=unit)
        return self._gauges.get(name)

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a metric value."""
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "attributes": attributes or {},
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        if self._initialized:
            gauge = self._get_gauge(name, unit)
            if gauge:
                gauge.set(value, attributes=attributes or {})

    def record_node_duration(
        self, node_id: str, node_type: str, success: bool, duration_ms: float
    ) -> None:
        """Record how long one deploy, build or publish operation took."""
        self.record_metric(
            "stackgraph.node.duration_ms",
            duration_ms,
            unit="ms",
            attributes={
                "node_id": node_id,
                "node_type": node_type,
                "success": str(success),
            },
        )

    def record_node_failed(self, node_id: str, node_type: str) -> None:
        self.record_metric(
            "stackgraph.node.failed",
            1.0,
            attributes={"node_id": node_id, "node_type": node_type},
        )

    def record_nodes_skipped(self, failed_node_id: str, count: int) -> None:
        self.record_metric(
            "stackgraph.node.skipped",
            float(count),
            attributes={"failed_node_id": failed_node_id},
        )

    async def export(self) -> None:
        """Export buffered telemetry via OTLP."""
        if not self._initialized:
            return

        # With the SDK initialized, metrics are auto-exported by the
        # PeriodicExportingMetricReader; only the local buffer is cleared.
        exported_count = len(self._metrics_buffer)
        self._metrics_buffer.clear()

        if exported_count:
            logger.debug("Flushed %d buffered metrics", exported_count)


async def create_exporter(
    endpoint: Optional[str] = None,
    service_name: str = "stackgraph",
    insecure: bool = False,
) -> OTELExporter:
    """Factory function to create OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        service_name=service_name,
        insecure=insecure,
    )
    exporter = OTELExporter(config)
    await exporter.initialize()
    return exporter
