# app/services/messaging.py
"""
Messaging Log. Messages are append-only; reading a conversation marks the
caller's unread incoming messages as read in the same call.
"""
from datetime import datetime
from typing import List

import structlog
from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.db.models.connection_request import ConnectionRequest
from app.db.models.message import Message
from app.db.models.user import User
from app.schemas.message import ConversationSummary, MessageCreate
from app.schemas.user import UserMini
from app.services.notifications import NotificationDispatcher

logger = structlog.get_logger(__name__)

PREVIEW_LENGTH = 100


def _between(user_id: int, other_id: int):
    return or_(
        and_(Message.sender_id == user_id, Message.recipient_id == other_id),
        and_(Message.sender_id == other_id, Message.recipient_id == user_id),
    )


def send_message(
    db: Session,
    dispatcher: NotificationDispatcher,
    sender: User,
    payload: MessageCreate,
) -> Message:
    if payload.recipient_id == sender.id:
        raise ValidationError("You cannot send a message to yourself")

    recipient = (
        db.query(User)
        .filter(User.id == payload.recipient_id, User.is_active == True)
        .first()
    )
    if not recipient:
        raise NotFoundError("Recipient not found")

    if payload.connection_request_id is not None:
        request = db.query(ConnectionRequest).filter(ConnectionRequest.id == payload.connection_request_id).first()
        if not request:
            raise NotFoundError("Connection request not found")
        if {request.consumer_id, request.vendor_id} != {sender.id, recipient.id}:
            raise ValidationError("Connection request does not involve both participants")

    message = Message(
        sender_id=sender.id,
        recipient_id=recipient.id,
        connection_request_id=payload.connection_request_id,
        content=payload.content,
        message_type=payload.message_type,
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    logger.info("message_sent", message_id=message.id, sender_id=sender.id, recipient_id=recipient.id)

    preview = payload.content[:PREVIEW_LENGTH]
    dispatcher.emit(
        db,
        recipient.id,
        "NEW_MESSAGE",
        f"New message from {sender.name}",
        preview,
        related_entity_type="message",
        related_entity_id=message.id,
        payload={"messageId": message.id, "senderId": sender.id, "preview": preview},
    )
    return message


def list_conversation(
    db: Session,
    user: User,
    other_user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> List[Message]:
    """One page of the conversation, paged newest first and returned oldest first."""
    if not db.query(User.id).filter(User.id == other_user_id).first():
        raise NotFoundError("User not found")

    page = (
        db.query(Message)
        .filter(_between(user.id, other_user_id), Message.is_deleted == False)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    now = datetime.utcnow()
    result = db.execute(
        update(Message)
        .where(
            Message.sender_id == other_user_id,
            Message.recipient_id == user.id,
            Message.is_read == False,
        )
        .values(is_read=True, read_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        # the page was loaded before the update
        for message in page:
            if message.recipient_id == user.id and not message.is_read:
                message.is_read = True
                message.read_at = now

    return list(reversed(page))


def list_conversations(db: Session, user: User) -> List[ConversationSummary]:
    """One entry per counterpart, most recent conversation first."""
    messages = (
        db.query(Message)
        .filter(
            or_(Message.sender_id == user.id, Message.recipient_id == user.id),
            Message.is_deleted == False,
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )

    latest = {}
    unread = {}
    for message in messages:
        other_id = message.recipient_id if message.sender_id == user.id else message.sender_id
        latest.setdefault(other_id, message)
        if message.recipient_id == user.id and not message.is_read:
            unread[other_id] = unread.get(other_id, 0) + 1

    if not latest:
        return []

    users = {u.id: u for u in db.query(User).filter(User.id.in_(list(latest))).all()}

    summaries = []
    for other_id, message in latest.items():
        summaries.append(
            ConversationSummary(
                user=UserMini.model_validate(users[other_id]),
                last_message=message.content,
                last_message_at=message.created_at,
                unread_count=unread.get(other_id, 0),
            )
        )
    return summaries


def mark_read(db: Session, message_id: int, user: User) -> Message:
    message = db.query(Message).filter(Message.id == message_id, Message.is_deleted == False).first()
    if not message:
        raise NotFoundError("Message not found")
    if message.recipient_id != user.id:
        raise ForbiddenError("Only the recipient can mark a message as read")

    if not message.is_read:
        message.is_read = True
        message.read_at = datetime.utcnow()
        db.commit()
        db.refresh(message)
    return message


def delete_message(db: Session, message_id: int, user: User) -> None:
    message = db.query(Message).filter(Message.id == message_id, Message.is_deleted == False).first()
    if not message:
        raise NotFoundError("Message not found")
    if message.sender_id != user.id:
        raise ForbiddenError("Only the sender can delete a message")

    message.is_deleted = True
    db.commit()
    logger.info("message_deleted", message_id=message_id, sender_id=user.id)
