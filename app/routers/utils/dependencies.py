from uuid import UUID

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.db import get_db
from app.models.conversation import Conversation
from app.schemas.auth import CurrentUser
from app.services.conversation_service import ConversationService, is_participant


def get_participant_conversation(
    conversation_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Conversation:
    """FastAPI dependency: the conversation, if the caller is one of its participants."""
    conversation = ConversationService(db).get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not is_participant(conversation, current_user.user_id, current_user.role):
        raise HTTPException(
            status_code=403, detail="Not authorized for this conversation"
        )
    return conversation
