"""Portable graph state documents.

The engine never reads or writes files itself; this module only defines the
shape an external serializer exchanges with :class:`WorkingGraph`:

    {
      "version": 1,
      "nodes": {"<id>": {"type": "...", "params": {...}}},
      "connections": {"<id>": {"fromNodeId": "...", "fromSlot": "...",
                               "toNodeId": "...", "toSlot": "..."}}
    }

Documents saved by the browser editor use ``fromUuid``/``fromParam``/
``toUuid``/``toParam`` and carry ``board`` and ``position`` entries; those are
accepted and the UI-only fields ignored.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    model_validator,
)

from textool.graph.errors import StateDocumentError

STATE_VERSION = 1


class NodeEntry(BaseModel):
    """Node description inside a state document."""

    model_config = ConfigDict(extra="forbid")

    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    position: list[float] | None = None


class ConnectionEntry(BaseModel):
    """Connection description inside a state document."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    from_node: str = Field(
        validation_alias=AliasChoices("fromNodeId", "fromUuid", "from_node"),
        serialization_alias="fromNodeId",
    )
    from_slot: str = Field(
        default="out",
        validation_alias=AliasChoices("fromSlot", "fromParam", "from_slot"),
        serialization_alias="fromSlot",
    )
    to_node: str = Field(
        validation_alias=AliasChoices("toNodeId", "toUuid", "to_node"),
        serialization_alias="toNodeId",
    )
    to_slot: str = Field(
        validation_alias=AliasChoices("toSlot", "toParam", "to_slot"),
        serialization_alias="toSlot",
    )


class StateDocument(BaseModel):
    """Graph topology plus literal parameters."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(ge=1)
    board: dict[str, Any] | None = None
    nodes: dict[str, NodeEntry] = Field(default_factory=dict)
    connections: dict[str, ConnectionEntry] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_document(self, info: ValidationInfo) -> "StateDocument":
        errors: list[str] = []
        if self.version > STATE_VERSION:
            errors.append(f"unsupported state version {self.version} (max {STATE_VERSION})")

        registry = (info.context or {}).get("registry")
        if registry is not None:
            for node_id, node in self.nodes.items():
                if not registry.has(node.type):
                    errors.append(f"node '{node_id}' has unknown type '{node.type}'")
                    continue
                node_type = registry.get(node.type)
                for name in node.params:
                    if not node_type.has_input(name):
                        errors.append(f"node '{node_id}' has unknown param '{name}'")

        bound: dict[tuple[str, str], str] = {}
        for connection_id, edge in self.connections.items():
            for end in (edge.from_node, edge.to_node):
                if end not in self.nodes:
                    errors.append(f"connection '{connection_id}' references missing node '{end}'")
            key = (edge.to_node, edge.to_slot)
            if key in bound:
                errors.append(
                    f"connection '{connection_id}' binds '{edge.to_node}.{edge.to_slot}' "
                    f"already bound by '{bound[key]}'"
                )
            bound[key] = connection_id

            if registry is None:
                continue
            source = self.nodes.get(edge.from_node)
            target = self.nodes.get(edge.to_node)
            if not source or not target or not registry.has(source.type) or not registry.has(target.type):
                continue
            if edge.from_slot != registry.get(source.type).output.name:
                errors.append(
                    f"connection '{connection_id}' unknown output slot '{edge.from_slot}' on node '{edge.from_node}'"
                )
            if not registry.get(target.type).has_input(edge.to_slot):
                errors.append(
                    f"connection '{connection_id}' unknown input slot '{edge.to_slot}' on node '{edge.to_node}'"
                )

        if self._has_cycle():
            errors.append("connections contain a cycle")

        if errors:
            raise ValueError("; ".join(errors))
        return self

    def _has_cycle(self) -> bool:
        adjacency: dict[str, set[str]] = defaultdict(set)
        indegree: dict[str, int] = {node_id: 0 for node_id in self.nodes}
        for edge in self.connections.values():
            if edge.from_node in indegree and edge.to_node in indegree:
                if edge.to_node not in adjacency[edge.from_node]:
                    adjacency[edge.from_node].add(edge.to_node)
                    indegree[edge.to_node] += 1

        queue = deque([node_id for node_id, deg in indegree.items() if deg == 0])
        visited = 0
        while queue:
            node_id = queue.popleft()
            visited += 1
            for nxt in adjacency[node_id]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    queue.append(nxt)
        return visited != len(indegree)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "nodes": {
                node_id: {"type": node.type, "params": dict(node.params)}
                for node_id, node in self.nodes.items()
            },
            "connections": {
                connection_id: edge.model_dump(by_alias=True)
                for connection_id, edge in self.connections.items()
            },
        }


def validate_state_document(data: object, *, registry: Any = None) -> StateDocument:
    """Validate a raw state payload, optionally against a type registry."""
    if not isinstance(data, dict):
        raise StateDocumentError("state document root must be a mapping/object.")
    try:
        return StateDocument.model_validate(data, context={"registry": registry})
    except ValidationError as exc:
        raise StateDocumentError(str(exc)) from exc
