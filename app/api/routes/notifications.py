# app/api/routes/notifications.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.notification import NotificationListResponse, NotificationResponse
from app.core.security import get_current_user
from app.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Envelope[NotificationListResponse])
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, unread_count = notification_service.list_notifications(db, current_user, limit, offset)
    return ok(
        NotificationListResponse(
            items=[NotificationResponse.model_validate(n) for n in items],
            unread_count=unread_count,
        )
    )


@router.put("/read-all", response_model=Envelope[dict])
def mark_all_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_read(db, current_user)
    return ok({"updated": updated})


@router.put("/{notification_id}/read", response_model=Envelope[NotificationResponse])
def mark_read(notification_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    notification = notification_service.mark_notification_read(db, notification_id, current_user)
    return ok(NotificationResponse.model_validate(notification))
