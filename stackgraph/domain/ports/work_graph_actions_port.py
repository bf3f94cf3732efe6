"""
Work Graph Actions Port

Architectural Intent:
- The three operations the scheduler drives, one per node type
- The scheduler only cares whether they succeed or raise and how long
  they take; retries and timeouts belong inside the implementations
"""

from __future__ import annotations
from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from stackgraph.domain.entities.work_node import (
        AssetBuildNode,
        AssetPublishNode,
        StackNode,
    )


@runtime_checkable
class WorkGraphActionsPort(Protocol):
    async def deploy_stack(self, node: "StackNode") -> None:
        """Deploy one stack to the cloud control plane."""
        ...

    async def build_asset(self, node: "AssetBuildNode") -> None:
        """Produce the deployable form of one asset."""
        ...

    async def publish_asset(self, node: "AssetPublishNode") -> None:
        """Upload or push one built asset to its destination."""
        ...
