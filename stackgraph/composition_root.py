"""
Composition Root

Architectural Intent:
- Dependency injection composition root
- Single place where the reader, event bus, telemetry and use case are
  wired together

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- The deploy/build/publish actions are supplied by the caller; they are
  the seam to the cloud control plane
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from stackgraph.application.dtos.deployment_dtos import DeployAssemblyRequest
from stackgraph.application.use_cases.deploy_assembly import DeployAssembly
from stackgraph.domain.ports.work_graph_actions_port import WorkGraphActionsPort
from stackgraph.infrastructure.cloud_assembly import CloudAssemblyReader
from stackgraph.infrastructure.config import StackgraphConfig, load_config
from stackgraph.infrastructure.event_bus import EventBus
from stackgraph.infrastructure.logging import configure_logging
from stackgraph.infrastructure.telemetry.otel_exporter import OTELConfig, OTELExporter
from stackgraph.infrastructure.telemetry.work_graph_telemetry import WorkGraphTelemetry


@dataclass
class StackgraphContainer:
    """DI container holding all wired dependencies."""

    config: StackgraphConfig
    assembly_reader: CloudAssemblyReader
    event_bus: EventBus
    exporter: OTELExporter
    telemetry: WorkGraphTelemetry
    deploy_assembly: DeployAssembly

    def deploy_request(
        self, stack_ids: Optional[Sequence[str]] = None
    ) -> DeployAssemblyRequest:
        """Build a deploy request from the loaded configuration."""
        return DeployAssemblyRequest(
            assembly_dir=self.config.deploy.assembly_dir,
            concurrency=self.config.concurrency.as_limits(),
            prebuild_assets=self.config.deploy.prebuild_assets,
            stack_ids=tuple(stack_ids) if stack_ids is not None else None,
        )


def create_container(
    actions: WorkGraphActionsPort,
    config: Optional[StackgraphConfig] = None,
) -> StackgraphContainer:
    """Create and wire all dependencies.

    The OTEL exporter is created but not initialised; call
    ``await container.exporter.initialize()`` to start exporting.
    """
    config = config or load_config()
    configure_logging(config.log_level)

    assembly_reader = CloudAssemblyReader()
    event_bus = EventBus()
    exporter = OTELExporter(
        OTELConfig(endpoint=config.telemetry.endpoint, insecure=config.telemetry.insecure)
    )
    telemetry = WorkGraphTelemetry(exporter)
    telemetry.attach(event_bus)

    deploy_assembly = DeployAssembly(assembly_reader, actions, event_bus)

    return StackgraphContainer(
        config=config,
        assembly_reader=assembly_reader,
        event_bus=event_bus,
        exporter=exporter,
        telemetry=telemetry,
        deploy_assembly=deploy_assembly,
    )
