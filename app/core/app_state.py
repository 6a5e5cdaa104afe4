"""Chat components owned by one application instance."""

from __future__ import annotations

from typing import Optional

from fastapi import Request, WebSocket

from app.adapters.base import BaseNotificationAdapter
from app.adapters.whatsapp import WhatsAppAdapter
from app.config import Settings, get_settings
from app.core.connections import ConnectionHub
from app.core.presence import PresenceTracker
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.realtime_gateway import RealtimeGateway, SessionScope


def build_notifier(settings: Settings) -> Optional[BaseNotificationAdapter]:
    """WhatsApp adapter when configured, else None (notices disabled)."""
    if not settings.whatsapp_configured:
        return None
    return WhatsAppAdapter(
        api_key=settings.wasender_api_key,
        base_url=settings.wasender_api_url,
        timeout=settings.whatsapp_timeout_seconds,
    )


class AppState:
    """
    Presence, connection groups, notification dispatch and the gateway.

    Built in create_app and stored on ``app.state.chat``; everything here
    lives as long as the process and starts empty.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        notifier: Optional[BaseNotificationAdapter] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.presence = PresenceTracker()
        self.hub = ConnectionHub()
        self.dispatcher = NotificationDispatcher(notifier, settings=settings)
        self.gateway = RealtimeGateway(
            self.hub,
            self.presence,
            session_scope,
            self.dispatcher,
            notify_offline_recipients=settings.chat_notify_offline_recipients,
            max_length=settings.message_max_length,
        )


def get_app_state(request: Request) -> AppState:
    """FastAPI dependency for HTTP routes."""
    return request.app.state.chat


def get_ws_app_state(websocket: WebSocket) -> AppState:
    return websocket.app.state.chat
