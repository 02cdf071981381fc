# app/db/models/message.py
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from datetime import datetime
from app.db.base import Base

MESSAGE_TYPES = ("TEXT", "IMAGE", "FILE", "SYSTEM")


class Message(Base):
    """
    Append-only message between two users, optionally tied to a
    connection request. Deletion only sets `is_deleted`.
    """
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "message_type IN ('TEXT', 'IMAGE', 'FILE', 'SYSTEM')",
            name="ck_messages_type",
        ),
        Index("ix_messages_pair", "sender_id", "recipient_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    connection_request_id = Column(Integer, ForeignKey("connection_requests.id"), nullable=True)

    content = Column(String, nullable=False)
    message_type = Column(String, nullable=False, default="TEXT")

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
