"""
Work Graph Builder

Architectural Intent:
- Turns the artifacts of a synthesized application into a WorkGraph
- One node per stack; one build node and one publish node per unique
  asset, shared by every stack and manifest that references it
- Nested assemblies are built into their own graph with prefixed ids and
  absorbed into the parent graph

Edge Rules:
- stack -> the stacks it depends on
- stack -> publish node of every asset it uses
- publish -> build node of the same asset
- build -> stacks the asset manifest depends on (and, when assets are not
  prebuilt, the stacks the parent stack depends on)
- publish -> stacks the parent stack depends on. Only there to keep asset
  publishing output from interleaving with those stacks' deploy output.
  These edges can close a cycle and are pruned after the graph is built.
"""

from __future__ import annotations
import logging
from typing import Optional, Sequence

from stackgraph.application.orchestration.work_graph import WorkGraph
from stackgraph.domain.entities.artifacts import (
    AssetManifestArtifact,
    CloudArtifact,
    NestedAssemblyArtifact,
    StackArtifact,
    only_stacks,
)
from stackgraph.domain.entities.work_node import (
    AssetBuildNode,
    AssetPublishNode,
    StackNode,
    WorkNodeType,
)
from stackgraph.domain.errors import ToolkitError
from stackgraph.domain.ports.event_bus_port import EventBusPort
from stackgraph.domain.value_objects.asset_manifest import (
    AssetManifest,
    AssetManifestEntry,
)
from stackgraph.domain.value_objects.content_hash import content_hash

logger = logging.getLogger(__name__)

NESTED_ID_SEPARATOR = "."


class WorkGraphBuilder:
    def __init__(
        self,
        prebuild_assets: bool,
        id_prefix: str = "",
        event_bus: Optional[EventBusPort] = None,
    ) -> None:
        self.prebuild_assets = prebuild_assets
        self.id_prefix = id_prefix
        self._event_bus = event_bus
        self.graph = WorkGraph(event_bus=event_bus)

    def build(self, artifacts: Sequence[CloudArtifact]) -> WorkGraph:
        parent_stacks = _stacks_from_assets(artifacts)

        for artifact in artifacts:
            if isinstance(artifact, StackArtifact):
                self._add_stack(artifact)
            elif isinstance(artifact, AssetManifestArtifact):
                parent_stack = parent_stacks.get(artifact.id)
                manifest = artifact.load_manifest()
                for entry in manifest.entries:
                    if parent_stack is None:
                        raise ToolkitError(
                            "Found an asset manifest that is not associated with a stack"
                        )
                    self._add_asset(parent_stack, artifact, manifest, entry)
            elif isinstance(artifact, NestedAssemblyArtifact):
                nested = WorkGraphBuilder(
                    self.prebuild_assets,
                    f"{self.id_prefix}{artifact.id}{NESTED_ID_SEPARATOR}",
                    self._event_bus,
                ).build(artifact.artifacts)
                self.graph.absorb(nested)
            else:
                logger.debug("Ignoring artifact %s", artifact.id)

        self.graph.remove_unavailable_dependencies()
        self._remove_stack_publish_cycles()

        logger.debug(
            "Built work graph%s with %d nodes",
            f" for {self.id_prefix}" if self.id_prefix else "",
            len(self.graph),
        )
        return self.graph

    def _add_stack(self, artifact: StackArtifact) -> None:
        self.graph.add_nodes(
            StackNode(
                id=self._stack_id(artifact),
                dependencies=set(self._stack_ids(artifact.dependencies)),
                stack=artifact,
                note=artifact.hierarchical_id,
            )
        )

    def _add_asset(
        self,
        parent_stack: StackArtifact,
        manifest_artifact: AssetManifestArtifact,
        manifest: AssetManifest,
        asset: AssetManifestEntry,
    ) -> None:
        asset_id = asset.id.asset_id
        build_id = f"build-{asset_id}-{content_hash([asset_id, asset.generic_source])[:10]}"
        publish_id = (
            f"publish-{asset_id}-{content_hash([asset_id, asset.generic_destination])[:10]}"
        )
        parent_dependencies = self._stack_ids(parent_stack.dependencies)

        # Identical assets are built once, however many stacks use them
        if self.graph.try_get_node(build_id) is None:
            dependencies = set(self._stack_ids(manifest_artifact.dependencies))
            if not self.prebuild_assets:
                dependencies.update(parent_dependencies)
            self.graph.add_nodes(
                AssetBuildNode(
                    id=build_id,
                    note=asset.display_name(False),
                    dependencies=dependencies,
                    parent_stack=parent_stack,
                    asset_manifest_artifact=manifest_artifact,
                    asset_manifest=manifest,
                    asset=asset,
                )
            )

        if self.graph.try_get_node(publish_id) is None:
            self.graph.add_nodes(
                AssetPublishNode(
                    id=publish_id,
                    note=asset.display_name(True),
                    dependencies={build_id},
                    parent_stack=parent_stack,
                    asset_manifest_artifact=manifest_artifact,
                    asset_manifest=manifest,
                    asset=asset,
                )
            )

        for inherited in parent_dependencies:
            self.graph.add_dependency(publish_id, inherited)

        # The stack node may not have been added yet
        self.graph.add_dependency(self._stack_id(parent_stack), publish_id)

    def _stack_ids(self, dependencies: Sequence[CloudArtifact]) -> list[str]:
        return [self._stack_id(d) for d in only_stacks(list(dependencies))]

    def _stack_id(self, artifact: CloudArtifact) -> str:
        if not isinstance(artifact, StackArtifact):
            raise ToolkitError(
                f"Can only call this on StackArtifact, got: {type(artifact).__name__}"
            )
        return f"{self.id_prefix}{artifact.id}"

    def _remove_stack_publish_cycles(self) -> None:
        """Drop publish edges that close a cycle back onto the publish node.

        The edge to the asset's own build node is never dropped.
        """
        for publish in self.graph.nodes_of_type(WorkNodeType.ASSET_PUBLISH):
            build_ids = {
                n.id
                for n in map(self.graph.try_get_node, publish.dependencies)
                if n is not None and n.type == WorkNodeType.ASSET_BUILD
            }
            for dep in sorted(publish.dependencies - build_ids):
                if self.graph.reachable(dep, publish.id):
                    logger.debug("Removing cyclic dependency %s -> %s", publish.id, dep)
                    publish.dependencies.discard(dep)


def _stacks_from_assets(artifacts: Sequence[CloudArtifact]) -> dict[str, StackArtifact]:
    """Map each asset manifest artifact id to the stack that uses it."""
    ret: dict[str, StackArtifact] = {}
    for stack in only_stacks(list(artifacts)):
        for dep in stack.dependencies:
            if isinstance(dep, AssetManifestArtifact):
                ret[dep.id] = stack
    return ret
