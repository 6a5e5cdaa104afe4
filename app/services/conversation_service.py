"""
Conversation Store: conversations, messages, attachments and read state.

Every store failure surfaces as StoreError with the driver error chained.
Nothing here retries; a message insert is not idempotent on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ContextManager, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.db import store_errors
from app.exceptions import StoreError
from app.infra.logging_config import get_logger
from app.models.conversation import Conversation
from app.models.message import Message, MessageAttachment
from app.schemas.chat import AttachmentCreate, PeerProfile
from app.services.profile_service import ProfileService
from app.utils.message_summary import build_message_summary, sanitize_body

logger = get_logger("conversation_service")

PEER_ROLE = {"buyer": "manufacturer", "manufacturer": "buyer"}

DEFAULT_CONVERSATION_PAGE_SIZE = 20
DEFAULT_MESSAGE_PAGE_SIZE = 50


@dataclass
class ConversationEntry:
    """A conversation enriched for the caller's list view."""

    conversation: Conversation
    unread_count: int = 0
    peer: Optional[PeerProfile] = None


@dataclass
class ConversationPage:
    entries: List[ConversationEntry] = field(default_factory=list)
    next_cursor: Optional[datetime] = None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_participant(conversation: Conversation, user_id: UUID, role: str) -> bool:
    """True if (user_id, role) is the buyer or the manufacturer of the conversation."""
    if role == "buyer":
        return conversation.buyer_id == user_id
    if role == "manufacturer":
        return conversation.manufacturer_id == user_id
    return False


def peer_of(conversation: Conversation, role: str) -> tuple[str, UUID]:
    """Return (peer_role, peer_id) for a participant with the given role."""
    if role == "buyer":
        return "manufacturer", conversation.manufacturer_id
    return "buyer", conversation.buyer_id


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class ConversationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _store_errors(self, action: str) -> ContextManager[None]:
        return store_errors(self.db, action)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _find_conversation(
        self, buyer_id: UUID, manufacturer_id: UUID
    ) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.buyer_id == buyer_id,
                Conversation.manufacturer_id == manufacturer_id,
            )
            .first()
        )

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Fetch a conversation, overwriting any copy already held by the session."""
        with self._store_errors("fetch conversation"):
            return (
                self.db.query(Conversation)
                .populate_existing()
                .filter(Conversation.id == conversation_id)
                .first()
            )

    def get_or_create_conversation(
        self, buyer_id: UUID, manufacturer_id: UUID
    ) -> Conversation:
        """
        Return the conversation for the pair, creating it on first contact.

        Two callers may both miss the read and race on the insert; the loser
        hits the unique constraint and re-reads the winner's row.
        """
        with self._store_errors("get or create conversation"):
            existing = self._find_conversation(buyer_id, manufacturer_id)
            if existing is not None:
                return existing
            conversation = Conversation(
                buyer_id=buyer_id, manufacturer_id=manufacturer_id
            )
            self.db.add(conversation)
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                existing = self._find_conversation(buyer_id, manufacturer_id)
                if existing is None:
                    raise StoreError("Failed to create conversation") from e
                logger.info(
                    "Conversation for buyer=%s manufacturer=%s created concurrently, using existing row",
                    buyer_id,
                    manufacturer_id,
                )
                return existing
            self.db.refresh(conversation)
            return conversation

    def list_conversations(
        self,
        user_id: UUID,
        role: str,
        search: Optional[str] = None,
        limit: int = DEFAULT_CONVERSATION_PAGE_SIZE,
        cursor: Optional[datetime] = None,
    ) -> ConversationPage:
        """
        List the caller's conversations, newest activity first.

        Unread counts and peer profiles are fetched with one query each,
        whatever the page size.
        """
        if role not in PEER_ROLE:
            raise ValueError(f"Unknown role: {role}")
        with self._store_errors("list conversations"):
            query = self.db.query(Conversation)
            if role == "buyer":
                query = query.filter(Conversation.buyer_id == user_id)
            else:
                query = query.filter(Conversation.manufacturer_id == user_id)
            if cursor is not None:
                query = query.filter(Conversation.last_message_at < as_utc(cursor))
            if search and search.strip():
                query = query.filter(
                    Conversation.last_message_text.ilike(
                        _like_pattern(search.strip()), escape="\\"
                    )
                )
            conversations = (
                query.order_by(
                    Conversation.last_message_at.desc().nulls_last(),
                    Conversation.created_at.desc(),
                )
                .limit(limit)
                .all()
            )
            if not conversations:
                return ConversationPage()

            unread = self.count_unread_by_conversation(
                [c.id for c in conversations], user_id
            )
            peer_role = PEER_ROLE[role]
            profiles = ProfileService(self.db).get_profiles_by_ids(
                peer_role, [peer_of(c, role)[1] for c in conversations]
            )

        entries = []
        for conversation in conversations:
            _, peer_id = peer_of(conversation, role)
            profile = profiles.get(peer_id)
            display_name = (
                profile.display_name if profile is not None else peer_role.title()
            )
            entries.append(
                ConversationEntry(
                    conversation=conversation,
                    unread_count=unread.get(conversation.id, 0),
                    peer=PeerProfile(
                        id=peer_id, role=peer_role, display_name=display_name
                    ),
                )
            )
        next_cursor = None
        if len(conversations) == limit:
            next_cursor = conversations[-1].last_message_at
        return ConversationPage(entries=entries, next_cursor=next_cursor)

    def count_unread_by_conversation(
        self, conversation_ids: Sequence[UUID], reader_user_id: UUID
    ) -> Dict[UUID, int]:
        """Unread messages not sent by the reader, per conversation, in one grouped query."""
        if not conversation_ids:
            return {}
        with self._store_errors("count unread messages"):
            rows = (
                self.db.query(Message.conversation_id, func.count(Message.id))
                .filter(
                    Message.conversation_id.in_(list(conversation_ids)),
                    Message.is_read.is_(False),
                    Message.sender_id != reader_user_id,
                )
                .group_by(Message.conversation_id)
                .all()
            )
        return {conversation_id: count for conversation_id, count in rows}

    def set_archived(
        self, conversation_id: UUID, archived: bool
    ) -> Optional[Conversation]:
        with self._store_errors("archive conversation"):
            conversation = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .first()
            )
            if conversation is None:
                return None
            conversation.is_archived = archived
            self.db.commit()
            self.db.refresh(conversation)
            return conversation

    def refresh_conversation_summary(
        self, conversation_id: UUID
    ) -> Optional[Conversation]:
        """Recompute the summary from the newest message (repairs a stale summary)."""
        with self._store_errors("refresh conversation summary"):
            conversation = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .first()
            )
            if conversation is None:
                return None
            latest = (
                self.db.query(Message)
                .options(selectinload(Message.attachments))
                .filter(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.desc())
                .first()
            )
            if latest is None:
                conversation.last_message_at = None
                conversation.last_message_text = None
            else:
                conversation.last_message_at = latest.created_at
                conversation.last_message_text = build_message_summary(
                    latest.body, latest.attachments
                )
            self.db.commit()
            self.db.refresh(conversation)
            return conversation

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def get_message(self, message_id: UUID) -> Optional[Message]:
        with self._store_errors("fetch message"):
            return self.db.query(Message).filter(Message.id == message_id).first()

    def insert_message(
        self,
        conversation_id: UUID,
        sender_role: str,
        sender_id: UUID,
        body: str,
        client_temp_id: Optional[str] = None,
        summary_text: Optional[str] = None,
        requirement_id: Optional[UUID] = None,
        ai_design_id: Optional[UUID] = None,
    ) -> Message:
        """
        Append a message, then refresh the conversation summary.

        The summary update is a separate step. If it fails the message still
        stands and the failure is only logged.
        """
        with self._store_errors("insert message"):
            message = Message(
                conversation_id=conversation_id,
                sender_role=sender_role,
                sender_id=sender_id,
                body=body,
                client_temp_id=client_temp_id,
                requirement_id=requirement_id,
                ai_design_id=ai_design_id,
            )
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)

        self._update_summary(
            conversation_id,
            message.created_at,
            summary_text if summary_text is not None else body,
        )
        return message

    def _update_summary(
        self, conversation_id: UUID, last_message_at: datetime, text: str
    ) -> bool:
        try:
            updated = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .update(
                    {
                        Conversation.last_message_at: last_message_at,
                        Conversation.last_message_text: text,
                    },
                    synchronize_session="fetch",
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                "Failed to update conversation summary for %s: %s", conversation_id, e
            )
            return False
        if not updated:
            logger.warning("Conversation %s vanished before summary update", conversation_id)
        return bool(updated)

    def insert_message_attachments(
        self,
        message_id: UUID,
        attachments: Iterable[AttachmentCreate | Dict[str, Any]],
    ) -> List[MessageAttachment]:
        items = [
            a if isinstance(a, AttachmentCreate) else AttachmentCreate.model_validate(a)
            for a in attachments or []
        ]
        if not items:
            return []
        with self._store_errors("insert attachments"):
            rows = [
                MessageAttachment(
                    message_id=message_id,
                    file_url=item.url,
                    mime_type=item.mime_type,
                    size_bytes=item.size,
                    file_type=item.file_type,
                    original_name=item.original_name,
                    public_id=item.public_id,
                    thumbnail_url=item.thumbnail,
                    width=item.width,
                    height=item.height,
                    duration=item.duration,
                )
                for item in items
            ]
            self.db.add_all(rows)
            self.db.commit()
            for row in rows:
                self.db.refresh(row)
            parent = self.db.get(Message, message_id)
            if parent is not None:
                self.db.expire(parent, ["attachments"])
        return rows

    def post_message(
        self,
        conversation: Conversation,
        sender_role: str,
        sender_id: UUID,
        body: Optional[str],
        attachments: Optional[Sequence[AttachmentCreate]] = None,
        client_temp_id: Optional[str] = None,
        requirement_id: Optional[UUID] = None,
        ai_design_id: Optional[UUID] = None,
        max_length: int = 4000,
    ) -> Message:
        """
        Sanitise, summarise and store a message with its attachments.

        Callers have already checked participancy and that there is a body
        or at least one attachment.
        """
        attachments = list(attachments or [])
        clean_body = sanitize_body(body, max_length) if body else ""
        summary_text = build_message_summary(clean_body, attachments)
        message = self.insert_message(
            conversation.id,
            sender_role,
            sender_id,
            clean_body,
            client_temp_id=client_temp_id,
            summary_text=summary_text,
            requirement_id=requirement_id,
            ai_design_id=ai_design_id,
        )
        if attachments:
            self.insert_message_attachments(message.id, attachments)
        return message

    def list_messages_with_attachments(
        self,
        conversation_id: UUID,
        before: Optional[datetime] = None,
        limit: int = DEFAULT_MESSAGE_PAGE_SIZE,
        requirement_id: Optional[UUID] = None,
        ai_design_id: Optional[UUID] = None,
    ) -> List[Message]:
        """The newest `limit` messages before `before`, returned oldest first."""
        with self._store_errors("list messages"):
            query = (
                self.db.query(Message)
                .options(selectinload(Message.attachments))
                .filter(Message.conversation_id == conversation_id)
            )
            if before is not None:
                query = query.filter(Message.created_at < as_utc(before))
            if requirement_id is not None:
                query = query.filter(Message.requirement_id == requirement_id)
            if ai_design_id is not None:
                query = query.filter(Message.ai_design_id == ai_design_id)
            rows = query.order_by(Message.created_at.desc()).limit(limit).all()
        rows.reverse()
        return rows

    def mark_read(
        self, conversation_id: UUID, reader_user_id: UUID, up_to: datetime
    ) -> int:
        """
        Flag as read every unread message created before `up_to` that the
        reader did not send. Returns the number of rows flipped.
        """
        with self._store_errors("mark messages read"):
            updated = (
                self.db.query(Message)
                .filter(
                    Message.conversation_id == conversation_id,
                    Message.created_at < as_utc(up_to),
                    Message.sender_id != reader_user_id,
                    Message.is_read.is_(False),
                )
                .update({Message.is_read: True}, synchronize_session="fetch")
            )
            self.db.commit()
        return updated
