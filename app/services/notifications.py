# app/services/notifications.py
"""
Notification Dispatcher.

Domain operations call `dispatcher.emit(...)` after their own commit. The
dispatcher stores a `Notification` row, hands the event to the delivery
sink (push / SMS / email live outside this service) and to any in-process
real-time subscribers. Every failure on that path is logged and counted,
never raised: a notification problem must not fail or undo the operation
that triggered it.
"""
from datetime import datetime
from typing import Callable, List, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.db.models.notification import Notification
from app.db.models.user import User

logger = structlog.get_logger(__name__)

Subscriber = Callable[[dict], None]


class NotificationSink:
    """Delivery collaborator. Implementations forward events to push/SMS/email."""

    def deliver(self, event: dict) -> None:
        raise NotImplementedError


class LoggingSink(NotificationSink):
    def deliver(self, event: dict) -> None:
        logger.info(
            "notification_dispatched",
            user_id=event["userId"],
            notification_type=event["type"],
            notification_id=event["notificationId"],
        )


class NotificationDispatcher:
    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink or LoggingSink()
        self.failures = 0
        self.last_failure_at: Optional[datetime] = None
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(
        self,
        db: Session,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None,
        payload: Optional[dict] = None,
    ) -> Optional[Notification]:
        try:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
        except Exception:
            db.rollback()
            self._record_failure("notification_store_failed", user_id, notification_type)
            return None

        event = {
            "notificationId": notification.id,
            "userId": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "relatedEntityType": related_entity_type,
            "relatedEntityId": related_entity_id,
            "payload": payload or {},
        }

        try:
            self.sink.deliver(event)
            notification.is_pushed = True
            notification.push_sent_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            self._record_failure("notification_delivery_failed", user_id, notification_type)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                self._record_failure("notification_subscriber_failed", user_id, notification_type)

        return notification

    def health(self) -> dict:
        return {
            "status": "degraded" if self.failures else "ok",
            "delivery_failures": self.failures,
            "last_failure_at": self.last_failure_at,
        }

    def _record_failure(self, event_name: str, user_id: int, notification_type: str) -> None:
        self.failures += 1
        self.last_failure_at = datetime.utcnow()
        logger.exception(event_name, user_id=user_id, notification_type=notification_type)


dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return dispatcher


def list_notifications(db: Session, user: User, limit: int = 20, offset: int = 0):
    items = (
        db.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    unread_count = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read == False)
        .count()
    )
    return items, unread_count


def mark_notification_read(db: Session, notification_id: int, user: User) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if not notification:
        raise NotFoundError("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: User) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read == False)
        .values(is_read=True, read_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount
