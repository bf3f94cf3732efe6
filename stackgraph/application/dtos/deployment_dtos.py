"""
Deployment DTOs

Architectural Intent:
- Data Transfer Objects for the deploy use case boundary
- Input validation at the application boundary
- The response separates the node that failed from the nodes that were
  never attempted because of it
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from stackgraph.application.orchestration.work_graph import Concurrency
from stackgraph.domain.entities.work_node import AssetPublishNode


@dataclass(frozen=True)
class DeployAssemblyRequest:
    assembly_dir: str
    concurrency: Concurrency = 1
    prebuild_assets: bool = True
    stack_ids: Optional[tuple[str, ...]] = None
    is_asset_published: Optional[Callable[[AssetPublishNode], Awaitable[bool]]] = None

    def __post_init__(self) -> None:
        if not self.assembly_dir:
            raise ValueError("assembly_dir cannot be empty")
        if self.stack_ids is not None and not self.stack_ids:
            raise ValueError("stack_ids cannot be empty when given")


@dataclass(frozen=True)
class DeployAssemblyResponse:
    success: bool
    message: str
    completed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    error: Optional[BaseException] = None
