"""Pydantic schemas for conversations, messages and attachments (HTTP API)."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["buyer", "manufacturer"]

MAX_BODY_LENGTH = 4000
MAX_CLIENT_TEMP_ID_LENGTH = 64

# -----------------------------------------------------------------------------
# Attachments
# -----------------------------------------------------------------------------


class AttachmentCreate(BaseModel):
    """Metadata for an already-uploaded file. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., min_length=1)
    mime_type: Optional[str] = Field(None, alias="mimeType")
    size: Optional[int] = Field(None, ge=0)
    file_type: Optional[str] = Field(None, alias="fileType")
    original_name: Optional[str] = Field(None, alias="originalName")
    public_id: Optional[str] = Field(None, alias="publicId")
    thumbnail: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None


class AttachmentRead(BaseModel):
    id: UUID
    message_id: UUID
    file_url: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    file_type: Optional[str] = None
    original_name: Optional[str] = None
    public_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


class MessageRead(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_role: Role
    sender_id: UUID
    body: str
    requirement_id: Optional[UUID] = None
    ai_design_id: Optional[UUID] = None
    created_at: datetime
    is_read: bool
    client_temp_id: Optional[str] = None
    attachments: list[AttachmentRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class MessageSendRequest(BaseModel):
    """Body of POST /chat/conversations/{id}/messages."""

    body: Optional[str] = Field(None, max_length=MAX_BODY_LENGTH)
    client_temp_id: Optional[str] = Field(None, max_length=MAX_CLIENT_TEMP_ID_LENGTH)
    attachments: list[AttachmentCreate] = Field(default_factory=list)
    requirement_id: Optional[UUID] = None
    ai_design_id: Optional[UUID] = None


class MessageListResponse(BaseModel):
    items: list[MessageRead]
    count: int


class MarkReadRequest(BaseModel):
    """Either an explicit cut-off time or the id of the first message to keep unread."""

    up_to: Optional[datetime] = None
    up_to_message_id: Optional[UUID] = None


class MarkReadResponse(BaseModel):
    updated: int


# -----------------------------------------------------------------------------
# Conversations
# -----------------------------------------------------------------------------


class ConversationCreate(BaseModel):
    buyer_id: UUID
    manufacturer_id: UUID


class ConversationArchiveUpdate(BaseModel):
    is_archived: bool


class ConversationSummary(BaseModel):
    """Denormalized last-message preview pushed with every new message."""

    id: UUID
    last_message_at: Optional[datetime] = None
    last_message_text: Optional[str] = None
    is_archived: bool = False

    model_config = {"from_attributes": True}


class ConversationRead(ConversationSummary):
    buyer_id: UUID
    manufacturer_id: UUID
    created_at: datetime


class PeerProfile(BaseModel):
    id: UUID
    role: Role
    display_name: str


class ConversationListItem(ConversationRead):
    """List row. Previews are never null: an empty conversation shows '' at its creation time."""

    unread_count: int = 0
    peer: Optional[PeerProfile] = None

    @model_validator(mode="after")
    def fill_empty_preview(self) -> "ConversationListItem":
        if self.last_message_text is None:
            self.last_message_text = ""
        if self.last_message_at is None:
            self.last_message_at = self.created_at
        return self


class ConversationListResponse(BaseModel):
    items: list[ConversationListItem]
    next_cursor: Optional[datetime] = None
