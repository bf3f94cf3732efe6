"""
Work Graph

Architectural Intent:
- Owns every work node of one deployment and the edges between them
- Drives the nodes to completion with bounded, per-type concurrency
- Enforces dependency ordering: a node never starts before all of its
  dependencies have completed
- Fails fast but drains: after the first failure nothing new starts and
  pending work is skipped, but operations already in flight are awaited
  before the first error is raised

Scheduling Strategy:
- Single event loop, no locks; all graph mutation happens in the engine
  coroutine between awaits
- Dispatched operations run as asyncio tasks; the engine waits for the
  first one to settle, records the outcome, then refreshes the ready pool
  and dispatches again
- Among simultaneously ready nodes, higher priority is dispatched first
- Every dependency id must name a node before anything is dispatched
- Event publication failures are logged and never interrupt scheduling
"""

from __future__ import annotations
import asyncio
import logging
import re
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from stackgraph.application.orchestration.parallel import parallel_map
from stackgraph.domain.entities.work_node import (
    AssetBuildNode,
    AssetPublishNode,
    DeploymentState,
    StackNode,
    WorkNode,
    WorkNodeType,
)
from stackgraph.domain.errors import ToolkitError
from stackgraph.domain.events.event_base import DomainEvent
from stackgraph.domain.events.work_node_events import (
    WorkNodeCompletedEvent,
    WorkNodeFailedEvent,
    WorkNodeStartedEvent,
    WorkNodesSkippedEvent,
)
from stackgraph.domain.ports.event_bus_port import EventBusPort

logger = logging.getLogger(__name__)

Concurrency = Union[int, Mapping[Union[WorkNodeType, str], int]]

# Checking whether assets are already published hits the backing store
# once per asset; applications with more than 100 assets are common.
ASSET_CHECK_PARALLELISM = 8


@dataclass
class WorkGraphActions:
    deploy_stack: Callable[[StackNode], Awaitable[None]]
    build_asset: Callable[[AssetBuildNode], Awaitable[None]]
    publish_asset: Callable[[AssetPublishNode], Awaitable[None]]


class WorkGraph:
    def __init__(
        self,
        nodes: Optional[Mapping[str, WorkNode]] = None,
        event_bus: Optional[EventBusPort] = None,
    ) -> None:
        self._nodes: dict[str, WorkNode] = dict(nodes or {})
        self._ready_pool: list[WorkNode] = []
        self._lazy_dependencies: dict[str, list[str]] = {}
        self._error: Optional[BaseException] = None
        self._event_bus = event_bus
        self._events: list[DomainEvent] = []
        self._started_at: dict[str, float] = {}

    @property
    def nodes(self) -> Mapping[str, WorkNode]:
        return MappingProxyType(self._nodes)

    @property
    def error(self) -> Optional[BaseException]:
        """The first recorded operation failure, if any."""
        return self._error

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # Node and edge editing

    def add_nodes(self, *nodes: WorkNode) -> None:
        seen: set[str] = set()
        for node in nodes:
            if node.id in self._nodes or node.id in seen:
                raise ToolkitError(f"Duplicate use of node id: {node.id}")
            seen.add(node.id)

        for node in nodes:
            lazy = self._lazy_dependencies.pop(node.id, None)
            if lazy:
                node.dependencies.update(lazy)
            self._nodes[node.id] = node

    def remove_node(self, node_or_id: Union[WorkNode, str]) -> None:
        node_id = _node_id(node_or_id)
        removed = self._nodes.pop(node_id, None)
        self._lazy_dependencies.pop(node_id, None)
        if removed is not None:
            for node in self._nodes.values():
                node.dependencies.discard(node_id)

    def add_dependency(self, from_id: str, to_id: str) -> None:
        """Add an edge that may be registered before or after ``from_id`` exists."""
        node = self._nodes.get(from_id)
        if node is not None:
            node.dependencies.add(to_id)
            return
        self._lazy_dependencies.setdefault(from_id, []).append(to_id)

    def try_get_node(self, node_id: str) -> Optional[WorkNode]:
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> WorkNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise ToolkitError(f"No node with id {node_id} among {list(self._nodes)}")
        return node

    def nodes_of_type(self, node_type: Union[WorkNodeType, str]) -> list[WorkNode]:
        wanted = WorkNodeType(node_type)
        return [n for n in self._nodes.values() if n.type == wanted]

    def dependees(self, node_or_id: Union[WorkNode, str]) -> list[WorkNode]:
        """Return all nodes that depend on the given node."""
        node_id = _node_id(node_or_id)
        return [n for n in self._nodes.values() if node_id in n.dependencies]

    def absorb(self, graph: "WorkGraph") -> None:
        self.add_nodes(*graph._nodes.values())

    def remove_unavailable_dependencies(self) -> None:
        """Drop edges to nodes that are not part of this graph.

        Stack A may depend on stack B while only A was selected for this
        run; the edge is then redundant and is dropped rather than failing.
        """
        for node in self._nodes.values():
            node.dependencies.intersection_update(self._nodes)

    async def remove_unnecessary_assets(
        self, is_unnecessary: Callable[[AssetPublishNode], Awaitable[bool]]
    ) -> None:
        """Remove publish steps for assets that are already published, then
        the build steps nothing depends on anymore."""
        logger.debug("Checking for previously published assets")

        publishes = self.nodes_of_type(WorkNodeType.ASSET_PUBLISH)
        classified = await parallel_map(ASSET_CHECK_PARALLELISM, publishes, is_unnecessary)
        already_published = [
            node for node, unnecessary in zip(publishes, classified) if unnecessary
        ]
        for node in already_published:
            self.remove_node(node)

        logger.debug(
            "%d total assets, %d still need to be published",
            len(publishes),
            len(publishes) - len(already_published),
        )

        unused_builds = [
            build
            for build in self.nodes_of_type(WorkNodeType.ASSET_BUILD)
            if not self.dependees(build)
        ]
        for build in unused_builds:
            self.remove_node(build)

    # Graph queries

    def find_cycle(self) -> Optional[list[str]]:
        """Return one dependency cycle as a path of ids, or None.

        The path starts and ends with the same id. Not the fastest, but
        cycles are rare and this only runs to explain a stall.
        """
        seen: set[str] = set()

        def recurse(node_id: str, path: list[str]) -> Optional[list[str]]:
            if node_id in seen:
                return None
            try:
                node = self._nodes.get(node_id)
                for dep in sorted(node.dependencies) if node else ():
                    if dep in path:
                        return path[path.index(dep):] + [dep]
                    cycle = recurse(dep, path + [dep])
                    if cycle:
                        return cycle
                return None
            finally:
                seen.add(node_id)

        for node_id in self._nodes:
            cycle = recurse(node_id, [node_id])
            if cycle:
                return cycle
        return None

    def reachable(self, start: str, end: str) -> bool:
        """Whether ``end`` can be reached from ``start`` following dependency edges."""
        seen: set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current == end:
                return True
            node = self._nodes.get(current)
            if node is not None:
                stack.extend(node.dependencies)
        return False

    def has_failed(self) -> bool:
        return any(n.deployment_state == DeploymentState.FAILED for n in self._nodes.values())

    def done(self) -> bool:
        return all(
            n.deployment_state in (DeploymentState.COMPLETED, DeploymentState.SKIPPED)
            for n in self._nodes.values()
        )

    # Execution

    async def ready(self) -> list[WorkNode]:
        """Return the set of unblocked nodes."""
        self._update_ready_pool()
        return list(self._ready_pool)

    async def do_parallel(self, concurrency: Concurrency, actions: Any) -> None:
        """Execute every node, calling the action matching its type.

        ``concurrency`` is either one number, used both as the cap for each
        node type and as the cap on the total, or a mapping of per-type caps
        whose sum is the total cap.
        """
        handlers: dict[WorkNodeType, Callable[[Any], Awaitable[None]]] = {
            WorkNodeType.STACK: actions.deploy_stack,
            WorkNodeType.ASSET_BUILD: actions.build_asset,
            WorkNodeType.ASSET_PUBLISH: actions.publish_asset,
        }

        async def run(node: WorkNode) -> None:
            handler = handlers.get(node.type)
            if handler is None:
                raise ToolkitError(f"Unsupported work node type: {node.type}")
            await handler(node)

        await self._for_all_nodes(concurrency, run)

    async def _for_all_nodes(
        self, concurrency: Concurrency, fn: Callable[[WorkNode], Awaitable[None]]
    ) -> None:
        max_active, total_max = _concurrency_limits(concurrency)
        self._check_dependencies_exist()
        active = {t: 0 for t in WorkNodeType}
        in_flight: dict[asyncio.Task, WorkNode] = {}

        try:
            while True:
                self._update_ready_pool()

                i = 0
                while i < len(self._ready_pool):
                    node = self._ready_pool[i]
                    if active[node.type] < max_active[node.type] and sum(active.values()) < total_max:
                        del self._ready_pool[i]
                        active[node.type] += 1
                        in_flight[self._dispatch(node, fn)] = node
                    else:
                        i += 1

                await self._flush_events()

                if not in_flight:
                    if self._error is not None:
                        raise self._error
                    if self.done():
                        return
                    raise ToolkitError(
                        f"Unable to start any of {len(self._ready_pool)} ready artifacts "
                        f"with concurrency {concurrency}"
                    )

                finished, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for task in finished:
                    node = in_flight.pop(task)
                    active[node.type] -= 1
                    self._settle(task, node)
        finally:
            # In-flight operations are awaited on every exit path
            if in_flight:
                logger.info("Waiting for %d operations still in flight", len(in_flight))
                await asyncio.wait(in_flight)
                for task, node in in_flight.items():
                    self._settle(task, node)
                await self._flush_events()

    def _check_dependencies_exist(self) -> None:
        for node in self._nodes.values():
            for dep in sorted(node.dependencies):
                if dep not in self._nodes:
                    raise ToolkitError(
                        f"No node with id {dep} among {list(self._nodes)} "
                        f"(dependency of {node.id})"
                    )

    def _settle(self, task: asyncio.Task, node: WorkNode) -> None:
        if task.cancelled():
            self._failed(node, ToolkitError(f"Work on {node.id} was cancelled"))
        elif task.exception() is not None:
            self._failed(node, task.exception())
        else:
            self._deployed(node)

    def _dispatch(
        self, node: WorkNode, fn: Callable[[WorkNode], Awaitable[None]]
    ) -> asyncio.Task:
        node.deployment_state = DeploymentState.DEPLOYING
        self._started_at[node.id] = time.monotonic()
        self._events.append(
            WorkNodeStartedEvent(aggregate_id=node.id, node_type=node.type.value)
        )
        return asyncio.create_task(fn(node))

    def _deployed(self, node: WorkNode) -> None:
        node.deployment_state = DeploymentState.COMPLETED
        self._events.append(
            WorkNodeCompletedEvent(
                aggregate_id=node.id,
                node_type=node.type.value,
                duration_seconds=self._elapsed(node),
            )
        )

    def _failed(self, node: WorkNode, error: BaseException) -> None:
        # Only the first failure is reported; later ones happen while draining.
        if self._error is None:
            self._error = error
        node.deployment_state = DeploymentState.FAILED
        logger.warning("%s failed: %s", node.id, error)
        self._events.append(
            WorkNodeFailedEvent(
                aggregate_id=node.id,
                node_type=node.type.value,
                duration_seconds=self._elapsed(node),
                error_message=str(error),
            )
        )

        skipped = self.skip_rest()
        self._ready_pool.clear()
        if skipped:
            logger.info(
                "Skipping %d remaining artifacts after failure of %s", len(skipped), node.id
            )
            self._events.append(
                WorkNodesSkippedEvent(aggregate_id=node.id, skipped_ids=tuple(skipped))
            )

    def skip_rest(self) -> list[str]:
        """Mark every node that has not started yet as skipped."""
        skipped = []
        for node in self._nodes.values():
            if node.deployment_state in (DeploymentState.PENDING, DeploymentState.QUEUED):
                node.deployment_state = DeploymentState.SKIPPED
                skipped.append(node.id)
        return skipped

    def _update_ready_pool(self) -> None:
        active_count = 0
        pending_count = 0
        newly_ready = []
        for node in self._nodes.values():
            if node.deployment_state == DeploymentState.DEPLOYING:
                active_count += 1
            elif node.deployment_state == DeploymentState.PENDING:
                pending_count += 1
                if all(
                    self.node(dep).deployment_state == DeploymentState.COMPLETED
                    for dep in node.dependencies
                ):
                    newly_ready.append(node)

        for node in newly_ready:
            node.deployment_state = DeploymentState.QUEUED
            self._ready_pool.append(node)

        self._ready_pool = [
            n for n in self._ready_pool if n.deployment_state == DeploymentState.QUEUED
        ]
        self._ready_pool.sort(key=lambda n: n.priority or 0, reverse=True)

        if not self._ready_pool and active_count == 0 and pending_count > 0:
            cycle = self.find_cycle() or ["No cycle found!"]
            logger.debug("Cycle %s in graph %s", " -> ".join(cycle), self)
            raise ToolkitError(
                "Unable to make progress anymore, dependency cycle between remaining "
                f"artifacts: {' -> '.join(cycle)}"
            )

    async def _flush_events(self) -> None:
        events, self._events = self._events, []
        if self._event_bus is None or not events:
            return
        try:
            await self._event_bus.publish(events)
        except Exception:
            logger.exception("Failed to publish %d work node events", len(events))

    def _elapsed(self, node: WorkNode) -> float:
        started = self._started_at.pop(node.id, None)
        return time.monotonic() - started if started is not None else 0.0

    def __str__(self) -> str:
        lines = ["digraph D {"]
        for node_id, node in self._nodes.items():
            if node.deployment_state == DeploymentState.COMPLETED:
                attrs = {"style": "filled", "fillcolor": "yellow", "comment": node.note}
            else:
                attrs = {"comment": node.note}
            lines.append(f"  {_gv(node_id, attrs)};")
            for dep in sorted(node.dependencies):
                lines.append(f"  {_gv(node_id)} -> {_gv(dep)};")
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"WorkGraph(nodes={len(self._nodes)})"


def _node_id(node_or_id: Union[WorkNode, str]) -> str:
    return node_or_id if isinstance(node_or_id, str) else node_or_id.id


def _concurrency_limits(
    concurrency: Concurrency,
) -> tuple[dict[WorkNodeType, int], int]:
    if isinstance(concurrency, int):
        if concurrency < 1:
            raise ToolkitError(f"Concurrency must be at least 1, got {concurrency}")
        return {t: concurrency for t in WorkNodeType}, concurrency

    limits = {t: 1 for t in WorkNodeType}
    for key, value in concurrency.items():
        try:
            node_type = WorkNodeType(key)
        except ValueError as e:
            raise ToolkitError.with_cause(f"Unknown work node type in concurrency: {key}", e)
        if value < 1:
            raise ToolkitError(f"Concurrency for {node_type.value} must be at least 1, got {value}")
        limits[node_type] = value
    return limits, sum(limits.values())


_LONG_HEX_RE = re.compile(r"([0-9a-f]{6})[0-9a-f]{6,}")


def _gv(node_id: str, attrs: Optional[dict[str, Optional[str]]] = None) -> str:
    attr_string = ",".join(f'{k}="{v}"' for k, v in (attrs or {}).items() if v is not None)
    simplified = _LONG_HEX_RE.sub(r"\1", node_id)
    return f'"{simplified}" [{attr_string}]' if attr_string else f'"{simplified}"'
