from pydantic import EmailStr, Field
from typing import Literal, Optional
from datetime import datetime

from app.schemas.common import CamelModel


class UserCreate(CamelModel):
    email: EmailStr
    name: str = Field(..., min_length=2, max_length=100)
    role: Literal["CONSUMER", "VENDOR"] = "CONSUMER"
    phone: Optional[str] = None
    # omitted for passwordless sign-up flows
    password: Optional[str] = Field(default=None, min_length=8)


class UserResponse(CamelModel):
    id: int
    email: EmailStr
    name: str
    role: str
    phone: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[datetime] = None


class UserMini(CamelModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class VendorSummary(CamelModel):
    id: int
    name: str
    is_verified: bool
    average_rating: float
    rating_count: int
