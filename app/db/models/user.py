# app/db/models/user.py
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func

from app.db.base import Base

CONSUMER = "CONSUMER"
VENDOR = "VENDOR"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('CONSUMER', 'VENDOR')", name="ck_users_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)

    # passwordless accounts (magic link, OTP, OAuth) have no hash
    password_hash = Column(String, nullable=True)

    role = Column(String, nullable=False, default=CONSUMER, server_default=CONSUMER)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
