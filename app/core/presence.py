"""
Per-process presence: how many live chat connections each user holds.

Lifecycle: empty when the owning AppState is built, an entry appears on a
user's first connection and is removed when their last one closes. Nothing
is persisted; a restart starts from empty. Each process has its own view,
so presence is advisory only.
"""

from __future__ import annotations

from typing import Dict, List
from uuid import UUID


class PresenceTracker:
    """Connection counts per user. Used from the event loop thread only."""

    def __init__(self) -> None:
        self._counts: Dict[UUID, int] = {}

    def on_connect(self, user_id: UUID) -> bool:
        """Count a new connection. Returns True if the user just came online."""
        previous = self._counts.get(user_id, 0)
        self._counts[user_id] = previous + 1
        return previous == 0

    def on_disconnect(self, user_id: UUID) -> bool:
        """Drop a connection. Returns True if that was the user's last one."""
        current = self._counts.get(user_id, 0)
        if current == 0:
            return False
        if current == 1:
            del self._counts[user_id]
            return True
        self._counts[user_id] = current - 1
        return False

    def is_online(self, user_id: UUID) -> bool:
        return user_id in self._counts

    def connection_count(self, user_id: UUID) -> int:
        return self._counts.get(user_id, 0)

    def online_users(self) -> List[UUID]:
        return list(self._counts)

    def clear(self) -> None:
        self._counts.clear()
