"""
Per-user broadcast groups of WebSocket connections.

An event addressed to a user reaches every live connection that user holds
in this process.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Iterable, Set
from uuid import UUID

from fastapi import WebSocket

from app.infra.logging_config import get_logger

logger = get_logger("connections")


def build_frame(event: str, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": data}


class ConnectionHub:
    """Tracks WebSocket connections per user and fans events out to them."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._groups: Dict[UUID, Set[WebSocket]] = defaultdict(set)

    async def join(self, user_id: UUID, websocket: WebSocket) -> None:
        async with self._lock:
            self._groups[user_id].add(websocket)

    async def leave(self, user_id: UUID, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard(user_id, websocket)

    def _discard(self, user_id: UUID, websocket: WebSocket) -> None:
        connections = self._groups.get(user_id)
        if not connections:
            return
        connections.discard(websocket)
        if not connections:
            self._groups.pop(user_id, None)

    def connection_count(self, user_id: UUID) -> int:
        return len(self._groups.get(user_id, ()))

    async def send_to_connection(
        self, websocket: WebSocket, event: str, data: Dict[str, Any]
    ) -> bool:
        try:
            await websocket.send_json(build_frame(event, data))
        except Exception as e:
            logger.info("Dropping %s frame for closed connection: %s", event, e)
            return False
        return True

    async def send_to_user(
        self, user_id: UUID, event: str, data: Dict[str, Any]
    ) -> None:
        await self.send_to_users([user_id], event, data)

    async def send_to_users(
        self, user_ids: Iterable[UUID], event: str, data: Dict[str, Any]
    ) -> None:
        """Send one event to every connection of every listed user (each user once)."""
        targets: list[tuple[UUID, WebSocket]] = []
        async with self._lock:
            for user_id in dict.fromkeys(user_ids):
                for ws in self._groups.get(user_id, ()):
                    targets.append((user_id, ws))
        if not targets:
            return

        dead: list[tuple[UUID, WebSocket]] = []
        for user_id, ws in targets:
            if not await self.send_to_connection(ws, event, data):
                dead.append((user_id, ws))

        if dead:
            async with self._lock:
                for user_id, ws in dead:
                    self._discard(user_id, ws)
