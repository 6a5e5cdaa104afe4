"""Chat API: conversations, message history, sending and read receipts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.config import get_settings
from app.core.app_state import AppState, get_app_state
from app.db import get_db
from app.models.conversation import Conversation
from app.routers.utils.dependencies import get_participant_conversation
from app.schemas.auth import CurrentUser
from app.schemas.chat import (
    ConversationArchiveUpdate,
    ConversationCreate,
    ConversationListItem,
    ConversationListResponse,
    ConversationRead,
    MarkReadRequest,
    MarkReadResponse,
    MessageListResponse,
    MessageRead,
    MessageSendRequest,
)
from app.services.chat_actions import persist_new_message, persist_read
from app.services.conversation_service import ConversationService
from app.services.profile_service import ProfileService
from app.utils.message_summary import has_text

router = APIRouter(prefix="/chat", tags=["Chat"])

MAX_MESSAGE_PAGE = 100
MAX_CONTEXT_MESSAGE_PAGE = 200


@router.get("/conversations", response_model=ConversationListResponse)
def list_conversations(
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[datetime] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationListResponse:
    """List the caller's conversations, newest activity first, with unread counts."""
    page = ConversationService(db).list_conversations(
        current_user.user_id,
        current_user.role,
        search=search,
        limit=limit,
        cursor=cursor,
    )
    items = [
        ConversationListItem(
            **ConversationRead.model_validate(entry.conversation).model_dump(),
            unread_count=entry.unread_count,
            peer=entry.peer,
        )
        for entry in page.entries
    ]
    return ConversationListResponse(items=items, next_cursor=page.next_cursor)


@router.post("/conversations", response_model=ConversationRead)
def ensure_conversation(
    data: ConversationCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Get or create the conversation between a buyer and a manufacturer."""
    own_id = data.buyer_id if current_user.role == "buyer" else data.manufacturer_id
    if own_id != current_user.user_id:
        raise HTTPException(
            status_code=403, detail="Not authorized for this conversation"
        )
    profiles = ProfileService(db)
    if current_user.role == "buyer":
        if profiles.get_manufacturer(data.manufacturer_id) is None:
            raise HTTPException(status_code=404, detail="Manufacturer not found")
    elif profiles.get_buyer(data.buyer_id) is None:
        raise HTTPException(status_code=404, detail="Buyer not found")
    conversation = ConversationService(db).get_or_create_conversation(
        data.buyer_id, data.manufacturer_id
    )
    return ConversationRead.model_validate(conversation)


@router.get("/conversations/{conversation_id}", response_model=ConversationRead)
def get_conversation(
    conversation: Conversation = Depends(get_participant_conversation),
) -> ConversationRead:
    return ConversationRead.model_validate(conversation)


@router.patch("/conversations/{conversation_id}/archive", response_model=ConversationRead)
def archive_conversation(
    data: ConversationArchiveUpdate,
    conversation: Conversation = Depends(get_participant_conversation),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Archive or unarchive a conversation."""
    updated = ConversationService(db).set_archived(conversation.id, data.is_archived)
    if updated is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationRead.model_validate(updated)


def _message_page(
    db: Session,
    conversation_id: UUID,
    before: Optional[datetime],
    limit: int,
    requirement_id: Optional[UUID] = None,
    ai_design_id: Optional[UUID] = None,
) -> MessageListResponse:
    messages = ConversationService(db).list_messages_with_attachments(
        conversation_id,
        before=before,
        limit=limit,
        requirement_id=requirement_id,
        ai_design_id=ai_design_id,
    )
    items = [MessageRead.model_validate(m) for m in messages]
    return MessageListResponse(items=items, count=len(items))


@router.get(
    "/conversations/{conversation_id}/messages", response_model=MessageListResponse
)
def list_messages(
    before: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=MAX_MESSAGE_PAGE),
    requirement_id: Optional[UUID] = Query(None),
    ai_design_id: Optional[UUID] = Query(None),
    conversation: Conversation = Depends(get_participant_conversation),
    db: Session = Depends(get_db),
) -> MessageListResponse:
    """Message history, oldest first, ending just before `before`."""
    return _message_page(
        db, conversation.id, before, limit, requirement_id, ai_design_id
    )


@router.get(
    "/conversations/{conversation_id}/messages/requirement/{requirement_id}",
    response_model=MessageListResponse,
)
def list_requirement_messages(
    requirement_id: UUID,
    before: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=MAX_CONTEXT_MESSAGE_PAGE),
    conversation: Conversation = Depends(get_participant_conversation),
    db: Session = Depends(get_db),
) -> MessageListResponse:
    """The thread about one requirement."""
    return _message_page(db, conversation.id, before, limit, requirement_id=requirement_id)


@router.get(
    "/conversations/{conversation_id}/messages/ai-design/{ai_design_id}",
    response_model=MessageListResponse,
)
def list_ai_design_messages(
    ai_design_id: UUID,
    before: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=MAX_CONTEXT_MESSAGE_PAGE),
    conversation: Conversation = Depends(get_participant_conversation),
    db: Session = Depends(get_db),
) -> MessageListResponse:
    """The thread about one AI design."""
    return _message_page(db, conversation.id, before, limit, ai_design_id=ai_design_id)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=201,
)
async def send_message(
    data: MessageSendRequest,
    conversation: Conversation = Depends(get_participant_conversation),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat: AppState = Depends(get_app_state),
) -> MessageRead:
    """
    Send a message. Connected participants get `message:new`; an offline
    recipient is notified out of band after the response path is done.
    """
    if not has_text(data.body) and not data.attachments:
        raise HTTPException(
            status_code=400, detail="Either body or attachments must be provided"
        )
    outcome = await run_in_threadpool(
        persist_new_message,
        ConversationService(db),
        conversation,
        current_user,
        data.body if has_text(data.body) else None,
        attachments=data.attachments,
        client_temp_id=data.client_temp_id,
        requirement_id=data.requirement_id,
        ai_design_id=data.ai_design_id,
        max_length=get_settings().message_max_length,
    )
    await chat.gateway.publish_new_message(outcome)
    return outcome.message


@router.post(
    "/conversations/{conversation_id}/read", response_model=MarkReadResponse
)
async def mark_read(
    data: MarkReadRequest,
    conversation: Conversation = Depends(get_participant_conversation),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    chat: AppState = Depends(get_app_state),
) -> MarkReadResponse:
    """Mark incoming messages read up to a time or message (default: now)."""
    outcome = await run_in_threadpool(
        persist_read,
        ConversationService(db),
        conversation,
        current_user,
        up_to=data.up_to,
        up_to_message_id=data.up_to_message_id,
    )
    if outcome is None:
        raise HTTPException(status_code=404, detail="Message not found")
    await chat.gateway.publish_read(outcome)
    return MarkReadResponse(updated=outcome.updated)
