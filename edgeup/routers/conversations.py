"""Conversations API router."""
from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user
from edgeup.database import get_db
from edgeup.dependencies import get_messaging_service
from edgeup.models import User
from edgeup.schemas import (
    ChatMessageCreate,
    ChatMessageResponse,
    ChatMessageUpdate,
    ConversationCreate,
    ConversationResponse,
    ConversationSummary,
    MarkAllReadResponse
)
from edgeup.services.messaging_service import MessagingService

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("", response_model=ConversationResponse)
async def open_conversation(
    request: ConversationCreate,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    """Open (or reuse) the caller's conversation with a seller."""
    conversation, created = messaging.open_conversation(db, user.id, request.seller_id)
    response.status_code = 201 if created else 200
    return conversation


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    return messaging.list_conversations(db, user.id)


@router.get("/{conversation_id}/messages", response_model=List[ChatMessageResponse])
async def list_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    """Messages in a conversation, oldest first - participants only."""
    return messaging.list_messages(db, conversation_id, user.id)


@router.post("/{conversation_id}/messages", response_model=ChatMessageResponse, status_code=201)
async def send_message(
    conversation_id: str,
    request: ChatMessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    return messaging.send_message(db, conversation_id, user.id, request.message)


@router.put("/{conversation_id}/read", response_model=MarkAllReadResponse)
async def mark_conversation_read(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    count = messaging.mark_conversation_read(db, conversation_id, user.id)
    return {"message": "Messages marked as read", "count": count}


@router.get("/{conversation_id}/messages/{message_id}", response_model=ChatMessageResponse)
async def get_message(
    conversation_id: str,
    message_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    return messaging.get_message(db, conversation_id, message_id, user.id)


@router.put("/{conversation_id}/messages/{message_id}", response_model=ChatMessageResponse)
async def update_message(
    conversation_id: str,
    message_id: str,
    request: ChatMessageUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    messaging: MessagingService = Depends(get_messaging_service)
):
    """Sender edits the text, recipient flips the read flag."""
    return messaging.update_message(
        db, conversation_id, message_id, user.id,
        text=request.message, is_read=request.is_read
    )
