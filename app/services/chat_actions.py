"""
Send and read-receipt actions shared by the HTTP API and the WebSocket gateway.

Both run synchronously inside one database session and return an outcome
the async caller broadcasts. Participancy is checked by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple
from uuid import UUID

from app.models.conversation import Conversation
from app.schemas.auth import CurrentUser
from app.schemas.chat import AttachmentCreate, ConversationSummary, MessageRead
from app.services.conversation_service import ConversationService, as_utc, peer_of
from app.utils.message_summary import build_message_summary


@dataclass
class NewMessageOutcome:
    message: MessageRead
    summary: ConversationSummary
    preview: str
    sender_id: UUID
    sender_role: str
    recipient_id: UUID
    recipient_role: str

    @property
    def participants(self) -> Tuple[UUID, UUID]:
        return self.sender_id, self.recipient_id

    def payload(self) -> Dict[str, Any]:
        """`message:new` event data."""
        return {
            "message": self.message.model_dump(mode="json"),
            "conversationSummary": self.summary.model_dump(mode="json"),
        }


@dataclass
class ReadOutcome:
    conversation_id: UUID
    reader_id: UUID
    participants: Tuple[UUID, UUID]
    up_to_message_id: Optional[UUID]
    at: datetime
    updated: int

    def payload(self) -> Dict[str, Any]:
        """`message:read` event data."""
        return {
            "conversationId": str(self.conversation_id),
            "readerUserId": str(self.reader_id),
            "upToMessageId": str(self.up_to_message_id) if self.up_to_message_id else None,
            "at": self.at.isoformat(),
        }


def persist_new_message(
    service: ConversationService,
    conversation: Conversation,
    sender: CurrentUser,
    body: Optional[str],
    attachments: Optional[Sequence[AttachmentCreate]] = None,
    client_temp_id: Optional[str] = None,
    requirement_id: Optional[UUID] = None,
    ai_design_id: Optional[UUID] = None,
    max_length: int = 4000,
) -> NewMessageOutcome:
    """Store the message and its attachments, then re-read the conversation summary."""
    message = service.post_message(
        conversation,
        sender.role,
        sender.user_id,
        body,
        attachments=attachments,
        client_temp_id=client_temp_id,
        requirement_id=requirement_id,
        ai_design_id=ai_design_id,
        max_length=max_length,
    )
    message_read = MessageRead.model_validate(message)
    refreshed = service.get_conversation(conversation.id) or conversation
    recipient_role, recipient_id = peer_of(conversation, sender.role)
    return NewMessageOutcome(
        message=message_read,
        summary=ConversationSummary.model_validate(refreshed),
        preview=build_message_summary(message_read.body, message_read.attachments),
        sender_id=sender.user_id,
        sender_role=sender.role,
        recipient_id=recipient_id,
        recipient_role=recipient_role,
    )


def persist_read(
    service: ConversationService,
    conversation: Conversation,
    reader: CurrentUser,
    up_to: Optional[datetime] = None,
    up_to_message_id: Optional[UUID] = None,
) -> Optional[ReadOutcome]:
    """
    Mark the reader's incoming messages read up to a cut-off.

    The cut-off is the creation time of `up_to_message_id` when given,
    else `up_to`, else now. Returns None when the referenced message does
    not exist in this conversation.
    """
    if up_to_message_id is not None:
        target = service.get_message(up_to_message_id)
        # Stricter than a fall back to now: an unresolvable id marks nothing.
        if target is None or target.conversation_id != conversation.id:
            return None
        at = target.created_at
    elif up_to is not None:
        at = up_to
    else:
        at = datetime.now(timezone.utc)
    at = as_utc(at)
    updated = service.mark_read(conversation.id, reader.user_id, at)
    return ReadOutcome(
        conversation_id=conversation.id,
        reader_id=reader.user_id,
        participants=(conversation.buyer_id, conversation.manufacturer_id),
        up_to_message_id=up_to_message_id,
        at=at,
        updated=updated,
    )
