"""WebSocket endpoint exposing an editor session."""

from __future__ import annotations

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from textool.session import EditorSession

session = EditorSession()

app = FastAPI(title="textool graph engine")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    try:
        while True:
            message = await websocket.receive_json()
            await session.handle_message(websocket, message)
    except WebSocketDisconnect:
        await session.close()
