"""Conversation model: the single channel between one buyer and one manufacturer."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import CreatedAtMixin


class Conversation(Base, CreatedAtMixin):
    """
    One row per (buyer, manufacturer) pair, created lazily on first contact.

    last_message_at / last_message_text are a denormalized summary of the
    newest message. They are written after the message itself and may lag
    behind it until the next successful insert.
    """

    __tablename__ = "conversations"

    __table_args__ = (
        UniqueConstraint(
            "buyer_id", "manufacturer_id", name="uq_conversation_participants"
        ),
        Index("ix_conversations_buyer_id", "buyer_id"),
        Index("ix_conversations_manufacturer_id", "manufacturer_id"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id = Column(
        Uuid, ForeignKey("buyer_profiles.id", ondelete="CASCADE"), nullable=False
    )
    manufacturer_id = Column(
        Uuid,
        ForeignKey("manufacturer_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    last_message_text = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )
