"""
Chat WebSocket endpoint.

Clients connect to /ws?token=<jwt> (or send an Authorization header) and
exchange {"event", "data"} JSON text frames. Binary frames are ignored.
"""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.auth.dependencies import authenticate_websocket
from app.core.app_state import get_ws_app_state
from app.infra.logging_config import get_logger

logger = get_logger("realtime_router")

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    user = authenticate_websocket(websocket)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    gateway = get_ws_app_state(websocket).gateway
    await websocket.accept()
    await gateway.connect(websocket, user)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.debug("Dropping binary frame from %s", user.user_id)
                continue
            await gateway.handle_frame(user, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(websocket, user)
