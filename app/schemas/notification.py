from datetime import datetime
from typing import List, Optional

from app.schemas.common import CamelModel


class NotificationResponse(CamelModel):
    id: int
    title: str
    message: str
    notification_type: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(CamelModel):
    items: List[NotificationResponse]
    unread_count: int


class NotificationHealth(CamelModel):
    status: str
    delivery_failures: int
    last_failure_at: Optional[datetime] = None
