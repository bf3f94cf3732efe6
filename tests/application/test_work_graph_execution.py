"""
Work Graph Execution Tests

Architectural Intent:
- Tests for dependency ordering, concurrency caps and failure handling
  of WorkGraph.do_parallel
- Actions are plain coroutines recording what they observe
"""

import asyncio
import time
import pytest
from unittest.mock import AsyncMock
from stackgraph.application.orchestration.work_graph import WorkGraph, WorkGraphActions
from stackgraph.domain.entities.artifacts import AssetManifestArtifact, StackArtifact
from stackgraph.domain.entities.work_node import (
    AssetBuildNode,
    AssetPublishNode,
    DeploymentState,
    StackNode,
    WorkNodeType,
)
from stackgraph.domain.errors import ToolkitError
from stackgraph.domain.events import (
    WorkNodeCompletedEvent,
    WorkNodeFailedEvent,
    WorkNodeStartedEvent,
    WorkNodesSkippedEvent,
)
from stackgraph.domain.value_objects.asset_manifest import AssetManifest
from stackgraph.infrastructure.event_bus import EventBus

_MANIFEST = AssetManifest(
    "/out", {"files": {"a": {"source": {"path": "a"}, "destinations": {"d": {}}}}}
)


def stack(node_id, *deps):
    return StackNode(id=node_id, dependencies=set(deps), stack=StackArtifact(node_id))


def _asset_fields():
    return {
        "parent_stack": StackArtifact("Parent"),
        "asset_manifest_artifact": AssetManifestArtifact("Parent.assets"),
        "asset_manifest": _MANIFEST,
        "asset": _MANIFEST.entries[0],
    }


def recording_actions(log, delay=0.0, fail=()):
    async def run(node):
        log.append(node.id)
        if delay:
            await asyncio.sleep(delay)
        if node.id in fail:
            raise RuntimeError(f"{node.id} broke")

    return WorkGraphActions(deploy_stack=run, build_asset=run, publish_asset=run)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_chain_runs_in_dependency_order(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B", "A"), stack("C", "B"))
        log = []

        await graph.do_parallel(4, recording_actions(log))

        assert log == ["A", "B", "C"]
        assert all(n.deployment_state == DeploymentState.COMPLETED for n in graph.nodes.values())
        assert graph.done()

    @pytest.mark.asyncio
    async def test_dependency_completes_before_dependent_starts(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B"), stack("C", "A", "B"))
        states_seen = {}

        async def deploy(node):
            states_seen[node.id] = {
                dep: graph.node(dep).deployment_state for dep in node.dependencies
            }
            await asyncio.sleep(0.01)

        await graph.do_parallel(
            3, WorkGraphActions(deploy_stack=deploy, build_asset=deploy, publish_asset=deploy)
        )

        assert states_seen["C"] == {
            "A": DeploymentState.COMPLETED,
            "B": DeploymentState.COMPLETED,
        }

    @pytest.mark.asyncio
    async def test_actions_dispatched_by_node_type(self):
        graph = WorkGraph()
        graph.add_nodes(
            AssetBuildNode(id="b", **_asset_fields()),
            AssetPublishNode(id="p", dependencies={"b"}, **_asset_fields()),
            stack("S", "p"),
        )
        actions = WorkGraphActions(
            deploy_stack=AsyncMock(), build_asset=AsyncMock(), publish_asset=AsyncMock()
        )

        await graph.do_parallel(1, actions)

        actions.build_asset.assert_awaited_once_with(graph.node("b"))
        actions.publish_asset.assert_awaited_once_with(graph.node("p"))
        actions.deploy_stack.assert_awaited_once_with(graph.node("S"))

    @pytest.mark.asyncio
    async def test_higher_priority_dispatched_first(self):
        graph = WorkGraph()
        graph.add_nodes(
            AssetPublishNode(id="publish", **_asset_fields()),
            stack("stack"),
            AssetBuildNode(id="build", **_asset_fields()),
        )
        log = []

        await graph.do_parallel(1, recording_actions(log))

        assert log == ["build", "stack", "publish"]

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        graph = WorkGraph()
        await graph.do_parallel(1, recording_actions([]))
        assert graph.done()

    @pytest.mark.asyncio
    async def test_ready_returns_unblocked_nodes(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B", "A"), stack("C"))

        ready = await graph.ready()

        assert {n.id for n in ready} == {"A", "C"}
        assert graph.node("A").deployment_state == DeploymentState.QUEUED
        assert graph.node("B").deployment_state == DeploymentState.PENDING


class TestCycles:
    @pytest.mark.asyncio
    async def test_cycle_rejected(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A", "B"), stack("B", "A"))

        with pytest.raises(ToolkitError, match="dependency cycle") as exc_info:
            await graph.do_parallel(1, recording_actions([]))

        message = str(exc_info.value)
        assert "A" in message and "B" in message
        assert "A -> B -> A" in message

    @pytest.mark.asyncio
    async def test_cycle_after_completed_work(self):
        graph = WorkGraph()
        graph.add_nodes(stack("Root"), stack("X", "Root", "Y"), stack("Y", "X"))
        log = []

        with pytest.raises(ToolkitError, match="X -> Y -> X"):
            await graph.do_parallel(1, recording_actions(log))

        assert log == ["Root"]

    @pytest.mark.asyncio
    async def test_missing_dependency_rejected(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A", "Missing"))

        with pytest.raises(ToolkitError, match="No node with id Missing"):
            await graph.do_parallel(1, recording_actions([]))


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_per_type_cap_respected(self):
        graph = WorkGraph()
        graph.add_nodes(*(stack(f"S{i}") for i in range(10)))
        peak = 0

        async def deploy(node):
            nonlocal peak
            deploying = sum(
                1 for n in graph.nodes.values()
                if n.deployment_state == DeploymentState.DEPLOYING
            )
            peak = max(peak, deploying)
            await asyncio.sleep(0.05)

        start = time.monotonic()
        await graph.do_parallel(
            {WorkNodeType.STACK: 2},
            WorkGraphActions(deploy_stack=deploy, build_asset=deploy, publish_asset=deploy),
        )
        elapsed = time.monotonic() - start

        assert peak == 2
        assert elapsed >= 0.25
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_single_number_caps_total(self):
        graph = WorkGraph()
        graph.add_nodes(
            *(stack(f"S{i}") for i in range(4)),
            *(AssetBuildNode(id=f"b{i}", **_asset_fields()) for i in range(4)),
        )
        in_flight = 0
        peak = 0

        async def work(node):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await graph.do_parallel(
            3, WorkGraphActions(deploy_stack=work, build_asset=work, publish_asset=work)
        )

        assert peak == 3

    @pytest.mark.asyncio
    async def test_mapping_keys_may_be_strings(self):
        graph = WorkGraph()
        graph.add_nodes(*(AssetBuildNode(id=f"b{i}", **_asset_fields()) for i in range(6)))
        in_flight = 0
        peak = 0

        async def work(node):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await graph.do_parallel(
            {"asset-build": 3, "stack": 1},
            WorkGraphActions(deploy_stack=work, build_asset=work, publish_asset=work),
        )

        assert peak == 3

    @pytest.mark.asyncio
    async def test_unspecified_types_default_to_one(self):
        graph = WorkGraph()
        graph.add_nodes(*(AssetPublishNode(id=f"p{i}", **_asset_fields()) for i in range(3)))
        in_flight = 0
        peak = 0

        async def work(node):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await graph.do_parallel(
            {WorkNodeType.STACK: 5},
            WorkGraphActions(deploy_stack=work, build_asset=work, publish_asset=work),
        )

        assert peak == 1

    @pytest.mark.asyncio
    async def test_zero_concurrency_rejected(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"))
        with pytest.raises(ToolkitError, match="at least 1"):
            await graph.do_parallel(0, recording_actions([]))

    @pytest.mark.asyncio
    async def test_zero_per_type_concurrency_rejected(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"))
        with pytest.raises(ToolkitError, match="at least 1"):
            await graph.do_parallel({WorkNodeType.STACK: 0}, recording_actions([]))

    @pytest.mark.asyncio
    async def test_unknown_node_type_rejected(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"))
        with pytest.raises(ToolkitError, match="Unknown work node type"):
            await graph.do_parallel({"lambda": 2}, recording_actions([]))


class TestFailures:
    @pytest.mark.asyncio
    async def test_in_flight_work_drains_before_error(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B"), stack("C"))
        finished = []

        async def deploy(node):
            if node.id == "A":
                raise RuntimeError("A broke")
            await asyncio.sleep(0.05)
            finished.append(node.id)

        with pytest.raises(RuntimeError, match="A broke"):
            await graph.do_parallel(
                3, WorkGraphActions(deploy_stack=deploy, build_asset=deploy, publish_asset=deploy)
            )

        assert sorted(finished) == ["B", "C"]
        assert graph.node("A").deployment_state == DeploymentState.FAILED
        assert graph.node("B").deployment_state == DeploymentState.COMPLETED
        assert graph.node("C").deployment_state == DeploymentState.COMPLETED
        assert graph.has_failed()

    @pytest.mark.asyncio
    async def test_pending_work_skipped_after_failure(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B", "A"), stack("C", "B"), stack("D"))
        log = []

        with pytest.raises(RuntimeError, match="A broke"):
            await graph.do_parallel(1, recording_actions(log, fail={"A"}))

        assert log == ["A"]
        assert graph.node("B").deployment_state == DeploymentState.SKIPPED
        assert graph.node("C").deployment_state == DeploymentState.SKIPPED
        assert graph.node("D").deployment_state == DeploymentState.SKIPPED
        assert not graph.done()

    @pytest.mark.asyncio
    async def test_first_error_wins(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B"))

        async def deploy(node):
            if node.id == "B":
                await asyncio.sleep(0.02)
            raise RuntimeError(f"{node.id} broke")

        with pytest.raises(RuntimeError, match="A broke"):
            await graph.do_parallel(
                2, WorkGraphActions(deploy_stack=deploy, build_asset=deploy, publish_asset=deploy)
            )

        assert graph.node("B").deployment_state == DeploymentState.FAILED
        assert str(graph.error) == "A broke"

    def test_skip_rest(self):
        graph = WorkGraph()
        a, b, c = stack("A"), stack("B"), stack("C")
        a.deployment_state = DeploymentState.COMPLETED
        b.deployment_state = DeploymentState.QUEUED
        graph.add_nodes(a, b, c)

        assert sorted(graph.skip_rest()) == ["B", "C"]
        assert a.deployment_state == DeploymentState.COMPLETED


class TestEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_events_published(self):
        bus = AsyncMock()
        graph = WorkGraph(event_bus=bus)
        graph.add_nodes(stack("A"), stack("B", "A"))

        await graph.do_parallel(1, recording_actions([]))

        events = [e for call in bus.publish.await_args_list for e in call.args[0]]
        summary = [(type(e), e.aggregate_id) for e in events]
        assert summary == [
            (WorkNodeStartedEvent, "A"),
            (WorkNodeCompletedEvent, "A"),
            (WorkNodeStartedEvent, "B"),
            (WorkNodeCompletedEvent, "B"),
        ]
        assert events[1].node_type == "stack"
        assert events[1].duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_failure_events_separate_failed_from_skipped(self):
        bus = AsyncMock()
        graph = WorkGraph(event_bus=bus)
        graph.add_nodes(stack("A"), stack("B", "A"), stack("C", "B"))

        with pytest.raises(RuntimeError):
            await graph.do_parallel(1, recording_actions([], fail={"A"}))

        events = [e for call in bus.publish.await_args_list for e in call.args[0]]
        failed = [e for e in events if isinstance(e, WorkNodeFailedEvent)]
        skipped = [e for e in events if isinstance(e, WorkNodesSkippedEvent)]

        assert len(failed) == 1
        assert failed[0].aggregate_id == "A"
        assert failed[0].error_message == "A broke"
        assert len(skipped) == 1
        assert skipped[0].aggregate_id == "A"
        assert sorted(skipped[0].skipped_ids) == ["B", "C"]

    @pytest.mark.asyncio
    async def test_no_bus_is_fine(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"))
        await graph.do_parallel(1, recording_actions([]))
        assert graph.done()


class TestDraining:
    @pytest.mark.asyncio
    async def test_raising_subscriber_does_not_abandon_work(self):
        bus = EventBus()

        async def broken_telemetry(event):
            raise RuntimeError("telemetry down")

        bus.subscribe(WorkNodeFailedEvent, broken_telemetry)
        graph = WorkGraph(event_bus=bus)
        graph.add_nodes(stack("A"), stack("B"), stack("C"))
        finished = []

        async def deploy(node):
            if node.id == "A":
                raise RuntimeError("A broke")
            await asyncio.sleep(0.05)
            finished.append(node.id)

        with pytest.raises(RuntimeError, match="A broke"):
            await graph.do_parallel(
                3, WorkGraphActions(deploy_stack=deploy, build_asset=deploy, publish_asset=deploy)
            )

        assert sorted(finished) == ["B", "C"]
        assert graph.node("B").deployment_state == DeploymentState.COMPLETED
        assert graph.node("C").deployment_state == DeploymentState.COMPLETED

    @pytest.mark.asyncio
    async def test_failing_bus_does_not_stop_scheduling(self):
        bus = AsyncMock()
        bus.publish.side_effect = ConnectionError("bus unreachable")
        graph = WorkGraph(event_bus=bus)
        graph.add_nodes(stack("A"), stack("B", "A"))
        log = []

        await graph.do_parallel(1, recording_actions(log))

        assert log == ["A", "B"]
        assert graph.done()
        assert bus.publish.await_count >= 2

    @pytest.mark.asyncio
    async def test_cancelled_run_waits_for_in_flight_work(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("B"), stack("After", "A", "B"))
        log = []

        run = asyncio.create_task(graph.do_parallel(2, recording_actions(log, delay=0.05)))
        await asyncio.sleep(0.01)
        run.cancel()

        with pytest.raises(asyncio.CancelledError):
            await run

        assert graph.node("A").deployment_state == DeploymentState.COMPLETED
        assert graph.node("B").deployment_state == DeploymentState.COMPLETED
        assert "After" not in log

    @pytest.mark.asyncio
    async def test_missing_dependency_rejected_before_dispatch(self):
        graph = WorkGraph()
        graph.add_nodes(stack("A"), stack("Slow"), stack("N", "A", "Missing"))
        log = []

        with pytest.raises(ToolkitError, match="No node with id Missing") as exc_info:
            await graph.do_parallel(3, recording_actions(log, delay=0.05))

        assert "dependency of N" in str(exc_info.value)
        assert log == []
        assert all(n.deployment_state == DeploymentState.PENDING for n in graph.nodes.values())
