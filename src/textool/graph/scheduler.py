"""Staleness tracking and flush scheduling for the texture graph."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from textool.graph.errors import RenderError
from textool.graph.store import ConnectionStore, Node, NodeState, NodeStore
from textool.graph.types import TypeDescriptor

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Any]


class RenderBackend(Protocol):
    """Executes a node's compute step.

    ``compute`` may return the artifact directly or an awaitable resolving to
    it, and raises :class:`RenderError` on failure.
    """

    def compute(self, node_type: TypeDescriptor, inputs: dict[str, Any], target: Any) -> Any: ...

    def release(self, target: Any) -> None: ...


@dataclass
class FlushReport:
    """Outcome of one scheduler pass."""

    pass_number: int
    computed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.pass_number,
            "computed": list(self.computed),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
            "discarded": list(self.discarded),
        }


class Scheduler:
    """Marks nodes stale and recomputes them in dependency order.

    Only one pass runs at a time. Requests made while a pass is running set a
    flag that makes the drain loop run another pass afterwards, so mutations
    never alter the pass already in flight.
    """

    def __init__(
        self,
        nodes: NodeStore,
        connections: ConnectionStore,
        backend: RenderBackend,
        *,
        event_cb: EventCallback | None = None,
        auto_flush: bool = True,
    ) -> None:
        self.nodes = nodes
        self.connections = connections
        self.backend = backend
        self.event_cb = event_cb
        self.auto_flush = auto_flush
        self.passes = 0
        self.last_report: FlushReport | None = None
        self._requested = False
        # Created per event loop; an asyncio.Lock binds to the loop it first waits on.
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None
        self._drain_task: asyncio.Task[list[FlushReport]] | None = None
        self._in_flight: dict[str, asyncio.Task[None]] = {}

    @property
    def pending(self) -> bool:
        return self._requested

    def invalidate(self, node_id: str) -> set[str]:
        """Mark ``node_id`` and every node downstream of it stale."""
        affected = {node_id} | self.connections.descendants(node_id)
        for nid in affected:
            node = self.nodes.find(nid)
            if node is not None:
                node.invalidate()
        return affected

    def schedule(self, node_id: str) -> None:
        """Guarantee ``node_id`` is part of the next pass that has not started it."""
        node = self.nodes.get(node_id)
        if node.state in (NodeState.CLEAN, NodeState.FAILED):
            self.invalidate(node_id)
        self.request_flush()

    def request_flush(self) -> None:
        self._requested = True
        if not self.auto_flush:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._current_drain(loop) is None:
            self._drain_task = loop.create_task(self._drain())

    def discard(self, node_id: str) -> None:
        """Cancel an in-flight compute for a node that is going away."""
        task = self._in_flight.pop(node_id, None)
        if task is not None and not task.done():
            logger.debug("cancelling in-flight compute for deleted node %s", node_id)
            task.cancel()

    async def flush(self) -> list[FlushReport]:
        """Bring every stale node up to date, then wait for pending passes."""
        self._requested = True
        reports = await self._drain()
        await self.wait_idle()
        return reports

    async def wait_idle(self) -> None:
        loop = asyncio.get_running_loop()
        task = self._current_drain(loop)
        while task is not None:
            await task
            task = self._current_drain(loop)

    def _current_drain(self, loop: asyncio.AbstractEventLoop) -> asyncio.Task[list[FlushReport]] | None:
        """The live drain task on ``loop``; tasks left behind by another loop are ignored."""
        task = self._drain_task
        if task is None or task.done() or task.get_loop() is not loop:
            return None
        return task

    def _loop_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _drain(self) -> list[FlushReport]:
        reports: list[FlushReport] = []
        async with self._loop_lock():
            while self._requested:
                self._requested = False
                reports.append(await self._run_pass())
        return reports

    async def _run_pass(self) -> FlushReport:
        self.passes += 1
        report = FlushReport(self.passes)
        snapshot = {node.id: node for node in self.nodes if node.state == NodeState.STALE}

        dependents: dict[str, set[str]] = defaultdict(set)
        waiting: dict[str, int] = {}
        for node_id in snapshot:
            upstream = self.connections.upstream(node_id) & snapshot.keys()
            waiting[node_id] = len(upstream)
            for up in upstream:
                dependents[up].add(node_id)

        ready = deque(node_id for node_id in snapshot if waiting[node_id] == 0)
        running: dict[asyncio.Task[None], str] = {}

        try:
            while ready or running:
                while ready:
                    node_id = ready.popleft()
                    task = asyncio.create_task(self._compute(snapshot[node_id], report))
                    running[task] = node_id
                    self._in_flight[node_id] = task

                done, _ = await asyncio.wait(set(running), return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = running.pop(task)
                    if self._in_flight.get(node_id) is task:
                        del self._in_flight[node_id]
                    if task.cancelled():
                        report.discarded.append(node_id)
                    else:
                        task.result()
                    for dependent in sorted(dependents.get(node_id, ())):
                        waiting[dependent] -= 1
                        if waiting[dependent] == 0:
                            ready.append(dependent)
        finally:
            # Only non-empty when the pass itself was cancelled.
            for task, node_id in running.items():
                task.cancel()
                if self._in_flight.get(node_id) is task:
                    del self._in_flight[node_id]
            if running:
                await asyncio.gather(*running, return_exceptions=True)

        self.last_report = report
        logger.debug(
            "flush pass %d: computed=%d failed=%d skipped=%d discarded=%d",
            report.pass_number,
            len(report.computed),
            len(report.failed),
            len(report.skipped),
            len(report.discarded),
        )
        await self._emit({"type": "FLUSH_COMPLETE", **report.to_dict()})
        return report

    async def _compute(self, node: Node, report: FlushReport) -> None:
        if self.nodes.find(node.id) is not node:
            report.discarded.append(node.id)
            return

        blocked = sorted(
            up
            for up in self.connections.upstream(node.id)
            if self.nodes.get(up).state != NodeState.CLEAN
        )
        if blocked:
            # Inputs are unresolved; the node waits for a later pass.
            logger.debug("node %s not advanced, upstream not clean: %s", node.id, blocked)
            report.skipped.append(node.id)
            return

        inputs = self.connections.effective_inputs(node.id)
        version = node.version
        node.state = NodeState.COMPUTING

        error: RenderError | None = None
        result: Any = None
        try:
            result = self.backend.compute(node.type, inputs, node.target)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            # Leave the node where the next pass picks it up again.
            if self.nodes.find(node.id) is node:
                node.state = NodeState.STALE
            raise
        except RenderError as err:
            error = err
        except Exception as err:
            error = RenderError(f"{type(err).__name__}: {err}")

        if self.nodes.find(node.id) is not node:
            logger.debug("discarding result for deleted node %s", node.id)
            report.discarded.append(node.id)
            return

        if node.version != version:
            # Inputs changed while computing; the next pass recomputes it.
            logger.debug("discarding outdated result for node %s", node.id)
            node.state = NodeState.STALE
            report.discarded.append(node.id)
            return

        if error is not None:
            node.error = str(error)
            node.state = NodeState.FAILED
            report.failed.append(node.id)
            logger.warning("compute failed for node %s (%s): %s", node.id, node.type.id, error)
            await self._emit({"type": "NODE_FAILED", "node_id": node.id, "error": node.error})
            return

        node.output = result
        node.error = None
        node.state = NodeState.CLEAN
        report.computed.append(node.id)
        await self._emit({"type": "NODE_UPDATED", "node_id": node.id, "state": node.state.value})

    async def _emit(self, payload: dict[str, Any]) -> None:
        if not self.event_cb:
            return
        # A failing listener must not abort the pass.
        try:
            result = self.event_cb(payload)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("event callback failed for %s", payload.get("type"))
