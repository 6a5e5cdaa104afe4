"""
Fire-and-forget delivery of out-of-band notices (WhatsApp).

Callers never wait on delivery and never see its errors: the scheduled work
runs after the primary state change is durable and every failure ends in
the log.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Set

from fastapi.concurrency import run_in_threadpool

from app.adapters.base import BaseNotificationAdapter
from app.config import Settings, get_settings
from app.infra.logging_config import get_logger

logger = get_logger("notifications")

PREVIEW_MAX_LENGTH = 200


@dataclass
class NewMessageNotice:
    recipient_id: str
    recipient_role: str
    recipient_phone: Optional[str]
    sender_name: str
    preview: str


class NotificationDispatcher:
    def __init__(
        self,
        adapter: Optional[BaseNotificationAdapter] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._adapter = adapter
        self._portal_urls = {
            "buyer": settings.buyer_portal_url,
            "manufacturer": settings.manufacturer_portal_url,
        }
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._adapter is not None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def format_new_message_notice(self, notice: NewMessageNotice) -> str:
        preview = notice.preview or ""
        if len(preview) > PREVIEW_MAX_LENGTH:
            preview = preview[: PREVIEW_MAX_LENGTH - 1] + "…"
        lines = [f"💬 *New message on Grupo* from {notice.sender_name}", "", preview]
        portal_url = self._portal_urls.get(notice.recipient_role)
        if portal_url:
            lines += ["", f"Reply on your Grupo portal: {portal_url}"]
        return "\n".join(lines)

    def deliver_new_message_notice(self, notice: NewMessageNotice) -> bool:
        """Send the notice now. Returns False on any failure; never raises."""
        if self._adapter is None or not notice.recipient_phone:
            return False
        text = self.format_new_message_notice(notice)
        try:
            result = self._adapter.send_text(notice.recipient_phone, text)
        except Exception:
            logger.exception(
                "Notification adapter %s raised for recipient %s",
                self._adapter.channel,
                notice.recipient_id,
            )
            return False
        if not result.success:
            logger.warning(
                "Notification to %s via %s failed: %s",
                notice.recipient_id,
                self._adapter.channel,
                result.error,
            )
            return False
        return True

    def dispatch(self, func: Callable[..., Any], *args: Any) -> Optional[asyncio.Task]:
        """
        Run a blocking notification job in a worker thread and return at once.

        Must be called from the event loop. Whatever the job raises is logged
        by the done callback.
        """
        if not self.enabled:
            return None
        task = asyncio.get_running_loop().create_task(run_in_threadpool(func, *args))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def dispatch_new_message_notice(
        self, notice: NewMessageNotice
    ) -> Optional[asyncio.Task]:
        if not notice.recipient_phone:
            return None
        return self.dispatch(self.deliver_new_message_notice, notice)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification task failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight notices (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
