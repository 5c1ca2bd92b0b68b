import asyncio

import pytest

from textool.graph import (
    InputSlot,
    NodeState,
    RenderError,
    TypeDescriptor,
    ValueKind,
    WorkingGraph,
)
from textool.registry import TypeRegistry


def _registry() -> TypeRegistry:
    registry = TypeRegistry()
    registry.register_all(
        [
            TypeDescriptor(
                id="const",
                name="Constant",
                inputs=(InputSlot(name="value", kind=ValueKind.NUMBER, default=0),),
                compute="const",
            ),
            TypeDescriptor(
                id="add",
                name="Add",
                inputs=(
                    InputSlot(name="a", kind=ValueKind.NUMBER, default=0),
                    InputSlot(name="b", kind=ValueKind.NUMBER, default=0),
                ),
                compute="add",
            ),
        ]
    )
    return registry


def _evaluate(node_type: TypeDescriptor, inputs: dict) -> int:
    if node_type.compute == "const":
        return inputs["value"]
    return inputs["a"] + inputs["b"]


class RecordingBackend:
    """Synchronous backend; each node's target is its own id so calls are traceable."""

    def __init__(self, fail: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self.fail = fail or set()
        self.released: list[str] = []

    def compute(self, node_type, inputs, target):
        self.calls.append(target)
        if target in self.fail:
            raise RuntimeError(f"boom in {target}")
        return _evaluate(node_type, inputs)

    def release(self, target) -> None:
        self.released.append(target)


class GatedBackend:
    """Asynchronous backend that holds selected nodes until their gate opens."""

    def __init__(self, gated: tuple[str, ...] = ()) -> None:
        self.gates = {node_id: asyncio.Event() for node_id in gated}
        self.started: list[str] = []
        self.finished: list[str] = []
        self.released: list[str] = []

    async def compute(self, node_type, inputs, target):
        self.started.append(target)
        await asyncio.sleep(0)
        if target in self.gates:
            await self.gates[target].wait()
        self.finished.append(target)
        return _evaluate(node_type, inputs)

    def release(self, target) -> None:
        self.released.append(target)


def _add_node(graph: WorkingGraph, node_id: str, type_id: str, **params) -> None:
    graph.create_node(node_id, type_id, params, target=node_id)


def _chain(graph: WorkingGraph) -> None:
    # Created out of order on purpose: ordering must come from the edges.
    _add_node(graph, "c", "add", b=100)
    _add_node(graph, "b", "add", b=10)
    _add_node(graph, "a", "const", value=1)
    graph.create_connection("ab", "a", "out", "b", "a")
    graph.create_connection("bc", "b", "out", "c", "a")


async def _wait_until(predicate) -> None:
    for _ in range(1000):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def test_flush_computes_chain_in_dependency_order() -> None:
    backend = RecordingBackend()
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _chain(graph)

    reports = asyncio.run(graph.flush())

    assert backend.calls == ["a", "b", "c"]
    assert [graph.get_output(n) for n in ("a", "b", "c")] == [1, 11, 111]
    assert all(graph.get_node(n).state == NodeState.CLEAN for n in ("a", "b", "c"))
    assert len(reports) == 1
    assert reports[0].computed == ["a", "b", "c"]


def test_parameter_change_propagates_downstream_only() -> None:
    backend = RecordingBackend()
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _chain(graph)
    _add_node(graph, "e", "const", value=7)
    asyncio.run(graph.flush())
    backend.calls.clear()

    graph.set_parameter("a", "value", 5)
    asyncio.run(graph.flush())

    assert backend.calls == ["a", "b", "c"]
    assert graph.get_output("b") == 15
    assert graph.get_output("c") == 115
    assert graph.get_output("e") == 7


def test_scheduling_twice_matches_scheduling_once() -> None:
    backend = RecordingBackend()
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _chain(graph)
    asyncio.run(graph.flush())
    backend.calls.clear()

    graph.schedule_node_job("b")
    graph.schedule_node_job("b")
    asyncio.run(graph.flush())

    assert backend.calls == ["b", "c"]
    assert graph.get_output("c") == 111


def test_flush_without_stale_nodes_is_a_no_op() -> None:
    backend = RecordingBackend()
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _chain(graph)
    asyncio.run(graph.flush())
    backend.calls.clear()

    reports = asyncio.run(graph.flush())

    assert backend.calls == []
    assert reports[0].computed == []


def test_failure_keeps_dependents_stale_and_spares_independent_branches() -> None:
    events: list[dict] = []
    backend = RecordingBackend(fail={"b"})
    graph = WorkingGraph(_registry(), backend, event_cb=events.append, auto_flush=False)
    _chain(graph)
    _add_node(graph, "d", "const", value=3)
    _add_node(graph, "e", "add", b=1)
    graph.create_connection("de", "d", "out", "e", "a")

    reports = asyncio.run(graph.flush())

    failed = graph.get_node("b")
    assert failed.state == NodeState.FAILED
    assert "boom in b" in failed.error
    assert graph.get_node("c").state == NodeState.STALE
    assert graph.get_output("c") is None
    assert "c" not in backend.calls
    assert graph.get_node("e").state == NodeState.CLEAN
    assert graph.get_output("e") == 4

    report = reports[0]
    assert report.failed == ["b"]
    assert report.skipped == ["c"]
    assert {"type": "NODE_FAILED", "node_id": "b", "error": failed.error} in events
    assert events[-1]["type"] == "FLUSH_COMPLETE"


def test_failed_node_keeps_last_good_output_and_recovers_on_retry() -> None:
    backend = RecordingBackend()
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _chain(graph)
    asyncio.run(graph.flush())

    backend.fail.add("b")
    graph.set_parameter("b", "b", 20)
    asyncio.run(graph.flush())
    assert graph.get_node("b").state == NodeState.FAILED
    assert graph.get_output("b") == 11

    backend.fail.clear()
    graph.schedule_node_job("b")
    assert graph.get_node("b").state == NodeState.STALE
    assert graph.get_node("c").state == NodeState.STALE
    asyncio.run(graph.flush())

    assert graph.get_node("b").state == NodeState.CLEAN
    assert graph.get_node("b").error is None
    assert graph.get_output("c") == 121


def test_render_errors_pass_through_unchanged() -> None:
    class Failing(RecordingBackend):
        def compute(self, node_type, inputs, target):
            raise RenderError("shader compile failed")

    graph = WorkingGraph(_registry(), Failing(), auto_flush=False)
    _add_node(graph, "a", "const")

    asyncio.run(graph.flush())

    assert graph.get_node("a").error == "shader compile failed"


def test_async_backend_orders_dependents_across_suspension() -> None:
    async def scenario() -> GatedBackend:
        backend = GatedBackend(gated=("a",))
        graph = WorkingGraph(_registry(), backend, auto_flush=False)
        _chain(graph)
        _add_node(graph, "e", "const", value=2)

        flush = asyncio.create_task(graph.flush())
        await _wait_until(lambda: "e" in backend.finished)
        # "a" is still suspended, so nothing downstream of it may start.
        assert backend.started == ["a", "e"]
        assert "b" not in backend.started

        backend.gates["a"].set()
        await flush
        assert graph.get_output("c") == 111
        return backend

    backend = asyncio.run(scenario())
    assert backend.finished.index("a") < backend.started.index("b")
    assert backend.finished.index("b") < backend.started.index("c")


def test_mutation_during_flush_is_picked_up_by_next_pass() -> None:
    async def scenario() -> tuple[WorkingGraph, GatedBackend, list]:
        backend = GatedBackend(gated=("a",))
        graph = WorkingGraph(_registry(), backend, auto_flush=False)
        _chain(graph)

        flush = asyncio.create_task(graph.flush())
        await _wait_until(lambda: "a" in backend.started)
        assert graph.get_node("a").state == NodeState.COMPUTING

        graph.set_parameter("a", "value", 2)
        assert graph.get_node("c").state == NodeState.STALE

        backend.gates["a"].set()
        reports = await flush
        return graph, backend, reports

    graph, backend, reports = asyncio.run(scenario())

    assert len(reports) == 2
    assert reports[0].discarded == ["a"]
    assert reports[0].skipped == ["b", "c"]
    assert reports[1].computed == ["a", "b", "c"]
    assert graph.get_output("c") == 112
    assert backend.started.count("a") == 2


def test_deleting_node_mid_compute_discards_result_and_releases_target() -> None:
    async def scenario() -> tuple[WorkingGraph, GatedBackend, list]:
        backend = GatedBackend(gated=("a",))
        graph = WorkingGraph(_registry(), backend, auto_flush=False)
        _chain(graph)

        flush = asyncio.create_task(graph.flush())
        await _wait_until(lambda: "a" in backend.started)

        graph.delete_node("a")
        reports = await flush
        return graph, backend, reports

    graph, backend, reports = asyncio.run(scenario())

    assert "a" not in graph
    assert "a" not in backend.finished
    assert backend.released == ["a"]
    assert "a" in reports[0].discarded
    # "b" lost its upstream and falls back to its literal input.
    assert graph.get_output("b") == 10
    assert graph.get_output("c") == 110
    assert graph.get_node("c").state == NodeState.CLEAN


def test_auto_flush_runs_in_background_on_running_loop() -> None:
    async def scenario() -> WorkingGraph:
        events: list[dict] = []

        async def listener(payload: dict) -> None:
            events.append(payload)

        graph = WorkingGraph(_registry(), RecordingBackend(), event_cb=listener)
        _chain(graph)
        graph.set_parameter("a", "value", 4)
        await graph.wait_idle()
        assert any(e["type"] == "NODE_UPDATED" and e["node_id"] == "c" for e in events)
        return graph

    graph = asyncio.run(scenario())

    assert graph.get_output("c") == 114
    assert graph.scheduler.pending is False


def test_failing_listener_does_not_abort_the_pass() -> None:
    def listener(payload: dict) -> None:
        raise RuntimeError("listener broke")

    graph = WorkingGraph(_registry(), RecordingBackend(), event_cb=listener, auto_flush=False)
    _chain(graph)

    asyncio.run(graph.flush())

    assert graph.get_output("c") == 111


class SlowBackend:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def compute(self, node_type, inputs, target):
        await asyncio.sleep(self.delay)
        return _evaluate(node_type, inputs)

    def release(self, target) -> None:
        pass


def test_cancelled_flush_leaves_node_schedulable() -> None:
    backend = SlowBackend(delay=10.0)
    graph = WorkingGraph(_registry(), backend, auto_flush=False)
    _add_node(graph, "a", "const", value=1)

    async def timed_out() -> None:
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(graph.flush(), 0.05)

    asyncio.run(timed_out())
    assert graph.get_node("a").state == NodeState.STALE
    assert graph.scheduler._in_flight == {}

    backend.delay = 0
    graph.set_parameter("a", "value", 5)
    graph.schedule_node_job("a")
    asyncio.run(graph.flush())

    assert graph.get_node("a").state == NodeState.CLEAN
    assert graph.get_output("a") == 5


def test_graph_can_be_reused_across_event_loops() -> None:
    graph = WorkingGraph(_registry(), RecordingBackend())

    async def edit(value: int) -> None:
        # The background drain task and the explicit flush contend for the lock.
        if "a" in graph:
            graph.set_parameter("a", "value", value)
        else:
            _add_node(graph, "a", "const", value=value)
        await graph.flush()

    asyncio.run(edit(1))
    assert graph.get_output("a") == 1

    asyncio.run(edit(2))
    assert graph.get_output("a") == 2
    assert graph.get_node("a").state == NodeState.CLEAN
