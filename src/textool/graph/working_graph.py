"""Command interface over the texture graph engine."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from textool.graph.document import STATE_VERSION, StateDocument, validate_state_document
from textool.graph.errors import DuplicateIdError, UnknownSlotError
from textool.graph.scheduler import EventCallback, FlushReport, RenderBackend, Scheduler
from textool.graph.store import Connection, ConnectionStore, Node, NodeStore, NodeView
from textool.graph.types import TypeDescriptor, is_json_safe, to_portable

logger = logging.getLogger(__name__)


class TypeLookup(Protocol):
    """Source of type descriptors, usually a :class:`textool.registry.TypeRegistry`."""

    def get(self, type_id: str) -> TypeDescriptor: ...

    def has(self, type_id: str) -> bool: ...


class WorkingGraph:
    """Owns nodes and connections and keeps their outputs up to date.

    Mutations validate and apply synchronously; every call either commits
    completely or raises a :class:`~textool.graph.errors.GraphError` with the
    stores unchanged. Recomputation happens in :meth:`flush` (or in a
    background drain task when called from a running event loop with
    ``auto_flush`` enabled).
    """

    def __init__(
        self,
        registry: TypeLookup,
        backend: RenderBackend,
        *,
        event_cb: EventCallback | None = None,
        auto_flush: bool = True,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.nodes = NodeStore()
        self.connections = ConnectionStore(self.nodes)
        self.scheduler = Scheduler(
            self.nodes,
            self.connections,
            backend,
            event_cb=event_cb,
            auto_flush=auto_flush,
        )

    # -- nodes -----------------------------------------------------------

    def create_node(
        self,
        node_id: str,
        type_id: str,
        params: dict[str, Any] | None = None,
        target: Any = None,
    ) -> NodeView:
        if node_id in self.nodes:
            raise DuplicateIdError(f"node '{node_id}' already exists")
        node_type = self.registry.get(type_id)
        values = node_type.defaults()
        for name, value in (params or {}).items():
            if not node_type.has_input(name):
                raise UnknownSlotError(f"type '{type_id}' has no input '{name}'")
            values[name] = value

        node = Node(node_id, node_type, values, target=target)
        self.nodes.add(node)
        logger.debug("created node %s (%s)", node_id, type_id)
        self.scheduler.request_flush()
        return node.view()

    def delete_node(self, node_id: str) -> list[Connection]:
        node = self.nodes.get(node_id)
        downstream = self.connections.downstream(node_id)
        removed = self.connections.remove_touching(node_id)
        self.nodes.remove(node_id)
        self.scheduler.discard(node_id)
        if node.target is not None:
            self.backend.release(node.target)
            node.target = None
        node.output = None

        for dependent in sorted(downstream):
            if dependent in self.nodes:
                self.scheduler.invalidate(dependent)
        if downstream:
            self.scheduler.request_flush()
        logger.debug("deleted node %s with %d connection(s)", node_id, len(removed))
        return removed

    def set_parameter(self, node_id: str, name: str, value: Any) -> None:
        node = self.nodes.get(node_id)
        if not node.type.has_input(name):
            raise UnknownSlotError(f"node '{node_id}' ({node.type.id}) has no input '{name}'")
        node.params[name] = value
        self.scheduler.invalidate(node_id)
        self.scheduler.request_flush()

    def set_target(self, node_id: str, target: Any) -> None:
        node = self.nodes.get(node_id)
        previous = node.target
        if previous is target:
            return
        node.target = target
        if previous is not None:
            self.backend.release(previous)
        self.scheduler.invalidate(node_id)
        self.scheduler.request_flush()

    def get_node(self, node_id: str) -> NodeView:
        return self.nodes.get(node_id).view()

    def get_output(self, node_id: str) -> Any:
        return self.nodes.get(node_id).output

    def schedule_node_job(self, node_id: str) -> None:
        self.scheduler.schedule(node_id)

    # -- connections -----------------------------------------------------

    def create_connection(
        self,
        connection_id: str,
        from_node: str,
        from_slot: str,
        to_node: str,
        to_slot: str,
    ) -> Connection:
        connection = Connection(connection_id, from_node, from_slot, to_node, to_slot)
        self.connections.add(connection)
        self.scheduler.invalidate(to_node)
        self.scheduler.request_flush()
        return connection

    def delete_connection(self, connection_id: str) -> Connection:
        connection = self.connections.remove(connection_id)
        if connection.to_node in self.nodes:
            self.scheduler.invalidate(connection.to_node)
            self.scheduler.request_flush()
        return connection

    def effective_inputs(self, node_id: str) -> dict[str, Any]:
        return self.connections.effective_inputs(node_id)

    # -- scheduling ------------------------------------------------------

    async def flush(self) -> list[FlushReport]:
        return await self.scheduler.flush()

    async def wait_idle(self) -> None:
        await self.scheduler.wait_idle()

    # -- persistence boundary -------------------------------------------

    def export_state(self) -> dict[str, Any]:
        """Topology and JSON-safe literal params; cached outputs are never included."""
        nodes = {
            node.id: {"type": node.type.id, "params": self._portable_params(node)}
            for node in self.nodes
        }
        connections = {
            connection.id: connection.to_dict()
            for connection in self.connections
            if connection.from_node in nodes and connection.to_node in nodes
        }
        return {"version": STATE_VERSION, "nodes": nodes, "connections": connections}

    def _portable_params(self, node: Node) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for name, value in node.params.items():
            value = to_portable(value)
            if is_json_safe(value):
                params[name] = value
            elif value is not None:
                logger.debug(
                    "not exporting param %s.%s: %s is not JSON-safe",
                    node.id,
                    name,
                    type(value).__name__,
                )
        return params

    def load_state(self, data: dict[str, Any] | StateDocument) -> None:
        """Populate an empty graph from a state document and schedule every node."""
        if isinstance(data, StateDocument):
            document = data
        else:
            document = validate_state_document(data, registry=self.registry)
        if len(self.nodes):
            raise ValueError("load_state requires an empty graph")

        try:
            for node_id, entry in document.nodes.items():
                self.create_node(node_id, entry.type, entry.params)
            for connection_id, entry in document.connections.items():
                self.create_connection(
                    connection_id,
                    entry.from_node,
                    entry.from_slot,
                    entry.to_node,
                    entry.to_slot,
                )
        except Exception:
            self.clear()
            raise

        for node_id in document.nodes:
            self.schedule_node_job(node_id)

    def clear(self) -> None:
        for node_id in self.nodes.ids():
            self.delete_node(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes
