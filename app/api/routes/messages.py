# app/api/routes/messages.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from app.db.base import get_db
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.message import ConversationSummary, MessageCreate, MessageResponse
from app.core.security import get_current_user
from app.services import messaging as message_service
from app.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/send", response_model=Envelope[MessageResponse], status_code=status.HTTP_201_CREATED)
def send_message(
    message_in: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    message = message_service.send_message(db, dispatcher, current_user, message_in)
    return ok(MessageResponse.model_validate(message))


@router.get("/conversations", response_model=Envelope[List[ConversationSummary]])
def list_conversations(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok(message_service.list_conversations(db, current_user))


# Reading a conversation marks incoming messages as read
@router.get("/conversation/{user_id}", response_model=Envelope[List[MessageResponse]])
def get_conversation(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    messages = message_service.list_conversation(db, current_user, user_id, limit, offset)
    return ok([MessageResponse.model_validate(m) for m in messages])


@router.put("/{message_id}/read", response_model=Envelope[MessageResponse])
def mark_read(message_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    message = message_service.mark_read(db, message_id, current_user)
    return ok(MessageResponse.model_validate(message))


@router.delete("/{message_id}", response_model=Envelope[dict])
def delete_message(message_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    message_service.delete_message(db, message_id, current_user)
    return ok({"id": message_id, "deleted": True})
