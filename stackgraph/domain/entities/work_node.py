"""
Work Node Model

Architectural Intent:
- A work node is one unit of schedulable work: deploy a stack, build an
  asset, or publish an asset
- All nodes share one envelope (id, dependencies, state, priority, note);
  each variant adds its own payload
- Nodes are mutable and owned by the WorkGraph that holds them; only the
  graph changes their state

State machine:
    PENDING -> QUEUED -> DEPLOYING -> COMPLETED | FAILED
    PENDING | QUEUED -> SKIPPED   (once any node has failed)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import ClassVar, Optional

from stackgraph.domain.entities.artifacts import AssetManifestArtifact, StackArtifact
from stackgraph.domain.value_objects.asset_manifest import (
    AssetManifest,
    AssetManifestEntry,
)


class WorkNodeType(str, Enum):
    STACK = "stack"
    ASSET_BUILD = "asset-build"
    ASSET_PUBLISH = "asset-publish"


class DeploymentState(Enum):
    PENDING = auto()
    QUEUED = auto()
    DEPLOYING = auto()
    COMPLETED = auto()
    FAILED = auto()
    SKIPPED = auto()


# Asset builds go first so that prebuilding actually happens before stacks
# where it can; between stacks and publishes, stacks go first.
DEFAULT_PRIORITIES: dict[WorkNodeType, int] = {
    WorkNodeType.ASSET_BUILD: 10,
    WorkNodeType.ASSET_PUBLISH: 0,
    WorkNodeType.STACK: 5,
}


@dataclass(eq=False, kw_only=True)
class WorkNode:
    type: ClassVar[WorkNodeType]

    id: str
    dependencies: set[str] = field(default_factory=set)
    deployment_state: DeploymentState = DeploymentState.PENDING
    priority: Optional[int] = None
    note: Optional[str] = None

    def __post_init__(self) -> None:
        self.dependencies = set(self.dependencies)
        if self.priority is None:
            self.priority = DEFAULT_PRIORITIES[self.type]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.id!r}, "
            f"state={self.deployment_state.name}, "
            f"dependencies={sorted(self.dependencies)})"
        )


@dataclass(eq=False, kw_only=True, repr=False)
class StackNode(WorkNode):
    type: ClassVar[WorkNodeType] = WorkNodeType.STACK

    stack: StackArtifact


@dataclass(eq=False, kw_only=True, repr=False)
class AssetNode(WorkNode):
    """Shared payload of the two phases of handling one asset."""

    parent_stack: StackArtifact
    asset_manifest_artifact: AssetManifestArtifact
    asset_manifest: AssetManifest
    asset: AssetManifestEntry


@dataclass(eq=False, kw_only=True, repr=False)
class AssetBuildNode(AssetNode):
    type: ClassVar[WorkNodeType] = WorkNodeType.ASSET_BUILD


@dataclass(eq=False, kw_only=True, repr=False)
class AssetPublishNode(AssetNode):
    type: ClassVar[WorkNodeType] = WorkNodeType.ASSET_PUBLISH
