"""Message-driven editing session over a single working graph."""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from textool.config import EngineSettings
from textool.graph import GraphError, WorkingGraph
from textool.registry import TypeRegistry, builtin_registry
from textool.runner import build_graph


class JsonSocket(Protocol):
    async def send_json(self, payload: dict[str, Any]) -> None: ...


class EditorSession:
    """Maps editor messages onto :class:`WorkingGraph` commands.

    Graph events (node updates, failures, flush summaries) are forwarded to
    the socket that sent the latest message.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        registry: TypeRegistry | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.registry = registry or builtin_registry()
        self.socket: JsonSocket | None = None
        self.graph = self._new_graph()

    def _new_graph(self) -> WorkingGraph:
        return build_graph(self.settings, registry=self.registry, event_cb=self._forward)

    async def _forward(self, payload: dict[str, Any]) -> None:
        if self.socket is not None:
            await self.socket.send_json(payload)

    async def handle_message(self, websocket: JsonSocket, message: dict[str, Any]) -> None:
        self.socket = websocket
        msg_type = message.get("type")
        try:
            if msg_type == "CREATE_NODE":
                await self._create_node(websocket, message)
            elif msg_type == "DELETE_NODE":
                self.graph.delete_node(message["node_id"])
            elif msg_type == "SET_PARAMETER":
                self.graph.set_parameter(message["node_id"], message["name"], message["value"])
            elif msg_type == "CREATE_CONNECTION":
                await self._create_connection(websocket, message)
            elif msg_type == "DELETE_CONNECTION":
                self.graph.delete_connection(message["connection_id"])
            elif msg_type == "SCHEDULE_NODE":
                self.graph.schedule_node_job(message["node_id"])
            elif msg_type == "GET_NODE":
                await self._get_node(websocket, message["node_id"])
            elif msg_type == "LOAD_STATE":
                await self._load_state(message["state"])
            elif msg_type == "GET_STATE":
                await websocket.send_json({"type": "STATE", "state": self.graph.export_state()})
            elif msg_type == "FLUSH":
                await self.graph.flush()
            else:
                await websocket.send_json(
                    {
                        "type": "ERROR",
                        "message": f"unknown message type '{msg_type}'",
                    }
                )
                return
            await websocket.send_json({"type": "ACK", "message_type": msg_type})
        except GraphError as err:
            await websocket.send_json({"type": "ERROR", "message_type": msg_type, **err.to_dict()})
        except Exception as err:
            await websocket.send_json({"type": "ERROR", "message_type": msg_type, "message": str(err)})

    async def _create_node(self, websocket: JsonSocket, message: dict[str, Any]) -> None:
        node_id = str(message.get("node_id") or uuid.uuid4())
        view = self.graph.create_node(node_id, message["node_type"], message.get("params") or {})
        await websocket.send_json(
            {"type": "NODE_CREATED", "node_id": view.id, "params": view.params}
        )

    async def _create_connection(self, websocket: JsonSocket, message: dict[str, Any]) -> None:
        connection_id = str(message.get("connection_id") or uuid.uuid4())
        connection = self.graph.create_connection(
            connection_id,
            message["from_node"],
            message.get("from_slot", "out"),
            message["to_node"],
            message["to_slot"],
        )
        await websocket.send_json(
            {"type": "CONNECTION_CREATED", "connection_id": connection.id, **connection.to_dict()}
        )

    async def _get_node(self, websocket: JsonSocket, node_id: str) -> None:
        view = self.graph.get_node(node_id)
        await websocket.send_json(
            {
                "type": "NODE",
                "node_id": view.id,
                "node_type": view.type_id,
                "params": view.params,
                "state": view.state.value,
                "has_output": view.has_output,
                "error": view.error,
            }
        )

    async def _load_state(self, state: dict[str, Any]) -> None:
        await self.graph.wait_idle()
        graph = self._new_graph()
        graph.load_state(state)
        self.graph = graph

    async def close(self) -> None:
        await self.graph.wait_idle()
        self.socket = None
