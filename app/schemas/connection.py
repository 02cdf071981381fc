from pydantic import Field, field_validator, model_validator
from datetime import date, datetime
from typing import Literal, Optional

from app.core.config import settings
from app.schemas.common import CamelModel
from app.schemas.user import UserMini

Urgency = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


# --- CREATE (consumer) ---
class ConnectionRequestCreate(CamelModel):
    vendor_id: int
    service_id: Optional[int] = None
    message: str
    project_description: Optional[str] = None
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    preferred_start_date: Optional[date] = None
    urgency: Urgency = "MEDIUM"

    @field_validator("message")
    @classmethod
    def message_long_enough(cls, value: str) -> str:
        value = value.strip()
        if len(value) < settings.MIN_REQUEST_MESSAGE_LENGTH:
            raise ValueError(
                f"message must be at least {settings.MIN_REQUEST_MESSAGE_LENGTH} characters"
            )
        return value

    @model_validator(mode="after")
    def budget_range_ordered(self):
        if self.budget_min is not None and self.budget_max is not None:
            if self.budget_max < self.budget_min:
                raise ValueError("budgetMax must be greater than or equal to budgetMin")
        return self


# --- STATUS UPDATE (vendor) ---
class ConnectionStatusUpdate(CamelModel):
    status: Literal["ACCEPTED", "DECLINED"]


# --- RESPONSE ---
class ConnectionRequestResponse(CamelModel):
    id: int
    consumer_id: int
    vendor_id: int
    service_id: Optional[int] = None
    message: str
    project_description: Optional[str] = None
    budget_range_min: Optional[float] = None
    budget_range_max: Optional[float] = None
    preferred_start_date: Optional[date] = None
    urgency: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None


class ConnectionRequestListItem(ConnectionRequestResponse):
    counterpart: UserMini
    service_name: Optional[str] = None
    category_name: Optional[str] = None
