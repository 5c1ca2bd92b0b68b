"""Dependency-graph evaluation engine for texture operations."""

from textool.graph.document import STATE_VERSION, StateDocument, validate_state_document
from textool.graph.errors import (
    CycleDetectedError,
    DuplicateIdError,
    GraphError,
    NotFoundError,
    RenderError,
    SlotOccupiedError,
    StateDocumentError,
    UnknownSlotError,
    UnknownTypeError,
)
from textool.graph.scheduler import FlushReport, RenderBackend, Scheduler
from textool.graph.store import Connection, ConnectionStore, Node, NodeState, NodeStore, NodeView
from textool.graph.types import InputSlot, OutputSlot, TypeDescriptor, ValueKind
from textool.graph.working_graph import TypeLookup, WorkingGraph

__all__ = [
    "STATE_VERSION",
    "Connection",
    "ConnectionStore",
    "CycleDetectedError",
    "DuplicateIdError",
    "FlushReport",
    "GraphError",
    "InputSlot",
    "Node",
    "NodeState",
    "NodeStore",
    "NodeView",
    "NotFoundError",
    "OutputSlot",
    "RenderBackend",
    "RenderError",
    "Scheduler",
    "SlotOccupiedError",
    "StateDocument",
    "StateDocumentError",
    "TypeDescriptor",
    "TypeLookup",
    "UnknownSlotError",
    "UnknownTypeError",
    "ValueKind",
    "WorkingGraph",
    "validate_state_document",
]
