"""Frames and event payloads for the chat WebSocket.

Frames are ``{"event": name, "data": {...}}`` in both directions; payload
keys are camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.chat import MAX_CLIENT_TEMP_ID_LENGTH, AttachmentCreate

EVENT_PRESENCE = "presence"
EVENT_SEND_MESSAGE = "send-message"
EVENT_MESSAGE_NEW = "message:new"
EVENT_MARK_READ = "mark-read"
EVENT_MESSAGE_READ = "message:read"


class WsFrame(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class SendMessageEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: UUID = Field(..., alias="conversationId")
    body: Optional[str] = None
    client_temp_id: Optional[str] = Field(
        None, alias="clientTempId", max_length=MAX_CLIENT_TEMP_ID_LENGTH
    )
    attachments: list[AttachmentCreate] = Field(default_factory=list)
    requirement_id: Optional[UUID] = Field(None, alias="requirementId")
    ai_design_id: Optional[UUID] = Field(None, alias="aiDesignId")


class MarkReadEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: UUID = Field(..., alias="conversationId")
    up_to_message_id: Optional[UUID] = Field(None, alias="upToMessageId")
