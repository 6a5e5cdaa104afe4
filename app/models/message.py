"""Message and MessageAttachment models.

Messages are append-only; is_read is the only column that changes after
insert, and only from false to true.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import CreatedAtMixin, utcnow

SENDER_ROLES = ("buyer", "manufacturer")


class Message(Base):
    __tablename__ = "messages"

    __table_args__ = (
        CheckConstraint(
            "sender_role IN ('buyer', 'manufacturer')", name="ck_messages_sender_role"
        ),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_unread", "conversation_id", "is_read", "sender_id"),
        Index("ix_messages_requirement_id", "requirement_id"),
        Index("ix_messages_ai_design_id", "ai_design_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_role = Column(String(20), nullable=False)
    sender_id = Column(Uuid, nullable=False)
    body = Column(Text, nullable=False, default="")
    # Context tags only; requirements and AI designs live elsewhere.
    requirement_id = Column(Uuid, nullable=True)
    ai_design_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_read = Column(Boolean, nullable=False, default=False)
    client_temp_id = Column(String(64), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    attachments = relationship(
        "MessageAttachment",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MessageAttachment.created_at",
    )


class MessageAttachment(Base, CreatedAtMixin):
    """File reference produced by the upload step; immutable once stored."""

    __tablename__ = "message_attachments"

    __table_args__ = (Index("ix_message_attachments_message_id", "message_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id = Column(
        Uuid, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    file_url = Column(Text, nullable=False)
    mime_type = Column(String(255), nullable=True)
    size_bytes = Column(Integer, nullable=True)
    file_type = Column(String(50), nullable=True)
    original_name = Column(String(512), nullable=True)
    public_id = Column(String(512), nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    duration = Column(Float, nullable=True)

    message = relationship("Message", back_populates="attachments")
