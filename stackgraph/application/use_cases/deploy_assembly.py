"""
Deploy Assembly Use Case

Architectural Intent:
- Deploys a synthesized application: reads the assembly, builds the work
  graph, drops assets that are already published, then drives the graph
  with the injected deploy/build/publish actions
- Operation failures are reported in the response together with the
  nodes that were skipped because of them
- Configuration and dependency-cycle errors propagate to the caller
"""

from __future__ import annotations
import logging
from typing import Optional, Sequence

from stackgraph.application.dtos.deployment_dtos import (
    DeployAssemblyRequest,
    DeployAssemblyResponse,
)
from stackgraph.application.orchestration.work_graph import WorkGraph
from stackgraph.application.orchestration.work_graph_builder import WorkGraphBuilder
from stackgraph.domain.entities.artifacts import (
    AssetManifestArtifact,
    CloudArtifact,
    StackArtifact,
)
from stackgraph.domain.entities.work_node import DeploymentState
from stackgraph.domain.errors import ToolkitError
from stackgraph.domain.ports.assembly_reader_port import AssemblyReaderPort
from stackgraph.domain.ports.event_bus_port import EventBusPort
from stackgraph.domain.ports.work_graph_actions_port import WorkGraphActionsPort

logger = logging.getLogger(__name__)


class DeployAssembly:
    def __init__(
        self,
        assembly_reader: AssemblyReaderPort,
        actions: WorkGraphActionsPort,
        event_bus: Optional[EventBusPort] = None,
    ):
        self.assembly_reader = assembly_reader
        self.actions = actions
        self.event_bus = event_bus

    async def execute(self, request: DeployAssemblyRequest) -> DeployAssemblyResponse:
        artifacts = self.assembly_reader.read(request.assembly_dir)
        if request.stack_ids is not None:
            artifacts = select_stacks(artifacts, request.stack_ids)

        graph = WorkGraphBuilder(
            request.prebuild_assets, event_bus=self.event_bus
        ).build(artifacts)

        if request.is_asset_published is not None:
            await graph.remove_unnecessary_assets(request.is_asset_published)

        try:
            await graph.do_parallel(request.concurrency, self.actions)
        except Exception as e:
            if e is not graph.error:
                raise
            response = _report(graph, success=False, message=f"Deployment failed: {e}")
            logger.error(
                "Deployment failed at %s: %s (%d skipped)",
                ", ".join(response.failed),
                e,
                len(response.skipped),
            )
            return response

        logger.info("Deployment successful: %d work items completed.", len(graph))
        return _report(
            graph, success=True, message=f"Deployed {len(graph)} work items"
        )


def select_stacks(
    artifacts: Sequence[CloudArtifact], stack_ids: Sequence[str]
) -> list[CloudArtifact]:
    """Keep only the selected stacks and the asset manifests they use.

    Artifacts that are neither stacks nor asset manifests are kept as-is.
    Edges to stacks left out are pruned later by the graph builder.
    """
    stacks = {a.id: a for a in artifacts if isinstance(a, StackArtifact)}
    missing = [s for s in stack_ids if s not in stacks]
    if missing:
        raise ToolkitError(f"No stack(s) named {', '.join(missing)} in assembly")

    selected = {s for s in stack_ids}
    used_manifests = {
        dep.id
        for stack_id in selected
        for dep in stacks[stack_id].dependencies
        if isinstance(dep, AssetManifestArtifact)
    }

    ret = []
    for artifact in artifacts:
        if isinstance(artifact, StackArtifact) and artifact.id not in selected:
            continue
        if isinstance(artifact, AssetManifestArtifact) and artifact.id not in used_manifests:
            continue
        ret.append(artifact)
    return ret


def _report(graph: WorkGraph, success: bool, message: str) -> DeployAssemblyResponse:
    def ids_in(state: DeploymentState) -> tuple[str, ...]:
        return tuple(n.id for n in graph.nodes.values() if n.deployment_state == state)

    return DeployAssemblyResponse(
        success=success,
        message=message,
        completed=ids_in(DeploymentState.COMPLETED),
        failed=ids_in(DeploymentState.FAILED),
        skipped=ids_in(DeploymentState.SKIPPED),
        error=graph.error,
    )
