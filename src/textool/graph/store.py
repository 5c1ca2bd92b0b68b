"""Node and connection stores for the texture graph."""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from textool.graph.errors import (
    CycleDetectedError,
    DuplicateIdError,
    NotFoundError,
    SlotOccupiedError,
    UnknownSlotError,
)
from textool.graph.types import TypeDescriptor


class NodeState(str, Enum):
    """Staleness state of a node's cached output."""

    CLEAN = "CLEAN"
    STALE = "STALE"
    COMPUTING = "COMPUTING"
    FAILED = "FAILED"


@dataclass
class Node:
    id: str
    type: TypeDescriptor
    params: dict[str, Any]
    output: Any = None
    state: NodeState = NodeState.STALE
    target: Any = None
    error: str | None = None
    # Bumped on every invalidation; a compute result is only trusted when the
    # version it started from is still current.
    version: int = 0

    def invalidate(self) -> None:
        self.version += 1
        if self.state != NodeState.COMPUTING:
            self.state = NodeState.STALE

    def view(self) -> "NodeView":
        return NodeView(
            id=self.id,
            type_id=self.type.id,
            params=dict(self.params),
            state=self.state,
            has_output=self.output is not None,
            error=self.error,
            target=self.target,
        )


@dataclass(frozen=True)
class NodeView:
    """Read-only snapshot of a node handed out to callers."""

    id: str
    type_id: str
    params: dict[str, Any] = field(default_factory=dict)
    state: NodeState = NodeState.STALE
    has_output: bool = False
    error: str | None = None
    target: Any = None


@dataclass(frozen=True)
class Connection:
    id: str
    from_node: str
    from_slot: str
    to_node: str
    to_slot: str

    def to_dict(self) -> dict[str, str]:
        return {
            "fromNodeId": self.from_node,
            "fromSlot": self.from_slot,
            "toNodeId": self.to_node,
            "toSlot": self.to_slot,
        }


class NodeStore:
    """Owns node entities keyed by identifier."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def add(self, node: Node) -> None:
        if node.id in self._nodes:
            raise DuplicateIdError(f"node '{node.id}' already exists")
        self._nodes[node.id] = node

    def get(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFoundError(f"unknown node '{node_id}'") from None

    def find(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def remove(self, node_id: str) -> Node:
        node = self.get(node_id)
        del self._nodes[node_id]
        return node

    def ids(self) -> list[str]:
        return list(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)


class ConnectionStore:
    """Owns connections and derives the dependency graph from them."""

    def __init__(self, nodes: NodeStore) -> None:
        self._nodes = nodes
        self._connections: dict[str, Connection] = {}
        self._incoming: dict[str, dict[str, str]] = defaultdict(dict)
        self._outgoing: dict[str, set[str]] = defaultdict(set)

    def validate(self, connection: Connection) -> None:
        """Raise the first problem that prevents committing ``connection``."""
        if connection.id in self._connections:
            raise DuplicateIdError(f"connection '{connection.id}' already exists")

        source = self._nodes.get(connection.from_node)
        target = self._nodes.get(connection.to_node)

        if not target.type.has_input(connection.to_slot):
            raise UnknownSlotError(
                f"unknown input slot '{connection.to_slot}' on node '{target.id}' ({target.type.id})"
            )
        if connection.from_slot != source.type.output.name:
            raise UnknownSlotError(
                f"unknown output slot '{connection.from_slot}' on node '{source.id}' ({source.type.id})"
            )

        bound = self.binding(connection.to_node, connection.to_slot)
        if bound is not None:
            raise SlotOccupiedError(
                f"input '{connection.to_node}.{connection.to_slot}' is already bound by connection '{bound.id}'"
            )

        if self.would_cycle(connection.from_node, connection.to_node):
            raise CycleDetectedError(
                f"connection '{connection.id}' {connection.from_node} -> {connection.to_node} would create a cycle"
            )

    def add(self, connection: Connection) -> None:
        self.validate(connection)
        self._connections[connection.id] = connection
        self._incoming[connection.to_node][connection.to_slot] = connection.id
        self._outgoing[connection.from_node].add(connection.id)

    def get(self, connection_id: str) -> Connection:
        try:
            return self._connections[connection_id]
        except KeyError:
            raise NotFoundError(f"unknown connection '{connection_id}'") from None

    def remove(self, connection_id: str) -> Connection:
        connection = self.get(connection_id)
        del self._connections[connection_id]
        slots = self._incoming.get(connection.to_node, {})
        slots.pop(connection.to_slot, None)
        if not slots:
            self._incoming.pop(connection.to_node, None)
        outgoing = self._outgoing.get(connection.from_node, set())
        outgoing.discard(connection_id)
        if not outgoing:
            self._outgoing.pop(connection.from_node, None)
        return connection

    def remove_touching(self, node_id: str) -> list[Connection]:
        touching = [
            c.id
            for c in self._connections.values()
            if c.from_node == node_id or c.to_node == node_id
        ]
        return [self.remove(connection_id) for connection_id in touching]

    def binding(self, node_id: str, slot: str) -> Connection | None:
        connection_id = self._incoming.get(node_id, {}).get(slot)
        return self._connections[connection_id] if connection_id else None

    def connections_to(self, node_id: str) -> list[Connection]:
        return [self._connections[cid] for cid in self._incoming.get(node_id, {}).values()]

    def connections_from(self, node_id: str) -> list[Connection]:
        return [self._connections[cid] for cid in sorted(self._outgoing.get(node_id, ()))]

    def upstream(self, node_id: str) -> set[str]:
        return {c.from_node for c in self.connections_to(node_id)}

    def downstream(self, node_id: str) -> set[str]:
        return {c.to_node for c in self.connections_from(node_id)}

    def descendants(self, node_id: str) -> set[str]:
        """Every node reachable from ``node_id`` through outgoing connections."""
        seen: set[str] = set()
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for nxt in self.downstream(current):
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return seen

    def would_cycle(self, from_node: str, to_node: str) -> bool:
        """Whether an edge ``from_node -> to_node`` would close a cycle."""
        if from_node == to_node:
            return True
        return from_node in self.descendants(to_node)

    def effective_inputs(self, node_id: str) -> dict[str, Any]:
        """Resolve each declared input to an upstream output or the literal."""
        node = self._nodes.get(node_id)
        inputs: dict[str, Any] = {}
        for slot in node.type.inputs:
            value = node.params.get(slot.name, slot.default)
            bound = self.binding(node_id, slot.name)
            if bound is not None:
                source = self._nodes.find(bound.from_node)
                if (
                    source is not None
                    and source.state == NodeState.CLEAN
                    and source.output is not None
                ):
                    value = source.output
            inputs[slot.name] = value
        return inputs

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
