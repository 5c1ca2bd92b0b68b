"""Error types raised by the graph engine."""

from __future__ import annotations


class GraphError(Exception):
    """Base class for synchronous graph validation failures."""

    code = "GRAPH_ERROR"

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": str(self)}


class DuplicateIdError(GraphError):
    code = "DUPLICATE_ID"


class NotFoundError(GraphError):
    code = "NOT_FOUND"


class UnknownTypeError(GraphError):
    code = "UNKNOWN_TYPE"


class UnknownSlotError(GraphError):
    code = "UNKNOWN_SLOT"


class SlotOccupiedError(GraphError):
    code = "SLOT_OCCUPIED"


class CycleDetectedError(GraphError):
    code = "CYCLE_DETECTED"


class RenderError(GraphError):
    """Raised by a rendering backend when a node's compute step fails.

    Never escapes a flush: the scheduler records it on the failing node.
    """

    code = "RENDER_ERROR"


class StateDocumentError(ValueError):
    """Raised when a graph state document does not validate."""
