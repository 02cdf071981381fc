# app/schemas/message.py
from pydantic import field_validator
from datetime import datetime
from typing import Literal, Optional

from app.schemas.common import CamelModel
from app.schemas.user import UserMini


class MessageCreate(CamelModel):
    recipient_id: int
    content: str
    connection_request_id: Optional[int] = None
    message_type: Literal["TEXT", "IMAGE", "FILE", "SYSTEM"] = "TEXT"

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class MessageResponse(CamelModel):
    id: int
    sender_id: int
    recipient_id: int
    connection_request_id: Optional[int] = None
    content: str
    message_type: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class ConversationSummary(CamelModel):
    user: UserMini
    last_message: str
    last_message_at: datetime
    unread_count: int
