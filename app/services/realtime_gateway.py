"""
Realtime chat gateway: the per-connection event surface behind /ws.

A connection is authenticated before it is accepted, joins its user's
broadcast group and then sends `send-message` and `mark-read` events until
it disconnects. There is no error channel on the socket: invalid,
unauthorised or failing events are dropped and only logged.

Store work runs in a worker thread with a fresh session per event. Nothing
is cached across awaits; participancy is checked again for every event.
"""

from __future__ import annotations

from typing import Any, Callable, ContextManager, Dict, Optional

from fastapi import WebSocket
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.connections import ConnectionHub
from app.core.presence import PresenceTracker
from app.exceptions import StoreError
from app.infra.logging_config import get_logger
from app.schemas.auth import CurrentUser
from app.schemas.realtime import (
    EVENT_MARK_READ,
    EVENT_MESSAGE_NEW,
    EVENT_MESSAGE_READ,
    EVENT_PRESENCE,
    EVENT_SEND_MESSAGE,
    MarkReadEvent,
    SendMessageEvent,
    WsFrame,
)
from app.services.chat_actions import (
    NewMessageOutcome,
    ReadOutcome,
    persist_new_message,
    persist_read,
)
from app.services.conversation_service import ConversationService, is_participant
from app.services.notification_dispatcher import NewMessageNotice, NotificationDispatcher
from app.services.profile_service import ProfileService
from app.utils.message_summary import MAX_BODY_LENGTH, has_text

logger = get_logger("realtime_gateway")

SessionScope = Callable[[], ContextManager[Session]]


class RealtimeGateway:
    def __init__(
        self,
        hub: ConnectionHub,
        presence: PresenceTracker,
        session_scope: SessionScope,
        dispatcher: NotificationDispatcher,
        notify_offline_recipients: bool = True,
        max_length: int = MAX_BODY_LENGTH,
    ) -> None:
        self.hub = hub
        self.presence = presence
        self.session_scope = session_scope
        self.dispatcher = dispatcher
        self.notify_offline_recipients = notify_offline_recipients
        self.max_length = max_length

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket, user: CurrentUser) -> None:
        """Register an accepted connection and signal presence to the user's own connections."""
        await self.hub.join(user.user_id, websocket)
        newly_online = self.presence.on_connect(user.user_id)
        payload = {"userId": str(user.user_id), "online": True}
        if newly_online:
            await self.hub.send_to_user(user.user_id, EVENT_PRESENCE, payload)
        else:
            await self.hub.send_to_connection(websocket, EVENT_PRESENCE, payload)
        logger.debug(
            "User %s connected (%d live)",
            user.user_id,
            self.presence.connection_count(user.user_id),
        )

    async def disconnect(self, websocket: WebSocket, user: CurrentUser) -> None:
        await self.hub.leave(user.user_id, websocket)
        if self.presence.on_disconnect(user.user_id):
            await self.hub.send_to_user(
                user.user_id,
                EVENT_PRESENCE,
                {"userId": str(user.user_id), "online": False},
            )
            logger.debug("User %s went offline", user.user_id)

    async def handle_frame(self, user: CurrentUser, raw: str) -> None:
        """Parse one client frame and route it; malformed or unknown frames are dropped."""
        try:
            frame = WsFrame.model_validate_json(raw)
        except ValidationError:
            logger.debug("Dropping malformed frame from %s", user.user_id)
            return
        if frame.event == EVENT_SEND_MESSAGE:
            await self.send_message(user, frame.data)
        elif frame.event == EVENT_MARK_READ:
            await self.mark_read(user, frame.data)
        else:
            logger.debug("Dropping unknown event %r from %s", frame.event, user.user_id)

    # ------------------------------------------------------------------
    # send-message
    # ------------------------------------------------------------------

    async def send_message(
        self, user: CurrentUser, data: Dict[str, Any]
    ) -> Optional[NewMessageOutcome]:
        try:
            event = SendMessageEvent.model_validate(data)
        except ValidationError:
            logger.debug("Dropping invalid send-message from %s", user.user_id)
            return None
        if not has_text(event.body) and not event.attachments:
            return None
        try:
            outcome = await run_in_threadpool(self._store_new_message, user, event)
        except StoreError:
            logger.exception(
                "send-message from %s in %s failed", user.user_id, event.conversation_id
            )
            return None
        if outcome is None:
            return None
        await self.publish_new_message(outcome)
        return outcome

    def _store_new_message(
        self, user: CurrentUser, event: SendMessageEvent
    ) -> Optional[NewMessageOutcome]:
        with self.session_scope() as db:
            service = ConversationService(db)
            conversation = service.get_conversation(event.conversation_id)
            if conversation is None or not is_participant(
                conversation, user.user_id, user.role
            ):
                logger.debug(
                    "Dropping send-message from %s: not a participant of %s",
                    user.user_id,
                    event.conversation_id,
                )
                return None
            return persist_new_message(
                service,
                conversation,
                user,
                event.body if has_text(event.body) else None,
                attachments=event.attachments,
                client_temp_id=event.client_temp_id,
                requirement_id=event.requirement_id,
                ai_design_id=event.ai_design_id,
                max_length=self.max_length,
            )

    async def publish_new_message(self, outcome: NewMessageOutcome) -> None:
        """Deliver `message:new` to both participants, then notify an offline recipient."""
        await self.hub.send_to_users(
            outcome.participants, EVENT_MESSAGE_NEW, outcome.payload()
        )
        if (
            self.notify_offline_recipients
            and self.dispatcher.enabled
            and not self.presence.is_online(outcome.recipient_id)
        ):
            self.dispatcher.dispatch(self._notify_recipient, outcome)

    def _notify_recipient(self, outcome: NewMessageOutcome) -> bool:
        with self.session_scope() as db:
            profiles = ProfileService(db)
            recipient = profiles.get_profile(outcome.recipient_role, outcome.recipient_id)
            sender = profiles.get_profile(outcome.sender_role, outcome.sender_id)
            if recipient is None or not recipient.phone_number:
                return False
            notice = NewMessageNotice(
                recipient_id=str(outcome.recipient_id),
                recipient_role=outcome.recipient_role,
                recipient_phone=recipient.phone_number,
                sender_name=(
                    sender.display_name if sender else outcome.sender_role.title()
                ),
                preview=outcome.preview,
            )
        return self.dispatcher.deliver_new_message_notice(notice)

    # ------------------------------------------------------------------
    # mark-read
    # ------------------------------------------------------------------

    async def mark_read(
        self, user: CurrentUser, data: Dict[str, Any]
    ) -> Optional[ReadOutcome]:
        try:
            event = MarkReadEvent.model_validate(data)
        except ValidationError:
            logger.debug("Dropping invalid mark-read from %s", user.user_id)
            return None
        try:
            outcome = await run_in_threadpool(self._store_read, user, event)
        except StoreError:
            logger.exception(
                "mark-read from %s in %s failed", user.user_id, event.conversation_id
            )
            return None
        if outcome is None:
            return None
        await self.publish_read(outcome)
        return outcome

    def _store_read(self, user: CurrentUser, event: MarkReadEvent) -> Optional[ReadOutcome]:
        with self.session_scope() as db:
            service = ConversationService(db)
            conversation = service.get_conversation(event.conversation_id)
            if conversation is None or not is_participant(
                conversation, user.user_id, user.role
            ):
                return None
            return persist_read(
                service, conversation, user, up_to_message_id=event.up_to_message_id
            )

    async def publish_read(self, outcome: ReadOutcome) -> None:
        """Deliver `message:read` to both participants, the reader's other devices included."""
        await self.hub.send_to_users(
            outcome.participants, EVENT_MESSAGE_READ, outcome.payload()
        )
