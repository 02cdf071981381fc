# app/api/routes/health.py
from fastapi import APIRouter, Depends

from app.schemas.common import Envelope, ok
from app.schemas.notification import NotificationHealth
from app.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter(tags=["health"])


# Liveness plus notification delivery failures; exempt from rate limiting
@router.get("/health", response_model=Envelope[dict])
def health(dispatcher: NotificationDispatcher = Depends(get_dispatcher)):
    notifications = NotificationHealth(**dispatcher.health())
    return ok({"status": "ok", "notifications": notifications.model_dump(mode="json", by_alias=True)})
