# app/services/connections.py
"""
Connection Request Manager.

    PENDING --(vendor)--> ACCEPTED
    PENDING --(vendor)--> DECLINED
    PENDING --(consumer)--> CANCELLED

Terminal states never change. Every transition is a single UPDATE guarded
by `status = 'PENDING'`, so of two racing transitions exactly one matches a
row and the other is reported as INVALID_STATE_TRANSITION.
"""
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from app.core.errors import (
    DuplicateRequestError,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from app.db.models.category import Category
from app.db.models.connection_request import (
    ACCEPTED,
    CANCELLED,
    DECLINED,
    PENDING,
    REQUEST_STATUSES,
    ConnectionRequest,
)
from app.db.models.service import Service
from app.db.models.user import CONSUMER, VENDOR, User
from app.schemas.connection import (
    ConnectionRequestCreate,
    ConnectionRequestListItem,
    ConnectionRequestResponse,
)
from app.schemas.user import UserMini
from app.services.notifications import NotificationDispatcher
from app.services.users import vendor_summary

logger = structlog.get_logger(__name__)

VENDOR_DECISIONS = (ACCEPTED, DECLINED)


def _same_service(service_id: Optional[int]):
    if service_id is None:
        return ConnectionRequest.service_id.is_(None)
    return ConnectionRequest.service_id == service_id


def create_request(
    db: Session,
    dispatcher: NotificationDispatcher,
    consumer: User,
    payload: ConnectionRequestCreate,
) -> ConnectionRequest:
    if consumer.role != CONSUMER:
        raise ForbiddenError("Only consumers can create connection requests")
    if payload.vendor_id == consumer.id:
        raise ValidationError("You cannot send a connection request to yourself")

    vendor = (
        db.query(User)
        .filter(User.id == payload.vendor_id, User.role == VENDOR, User.is_active == True)
        .first()
    )
    if not vendor:
        raise NotFoundError("Vendor not found")

    if payload.service_id is not None:
        service = (
            db.query(Service)
            .filter(Service.id == payload.service_id, Service.is_active == True)
            .first()
        )
        if not service:
            raise NotFoundError("Service not found")

    existing = (
        db.query(ConnectionRequest.id)
        .filter(
            ConnectionRequest.consumer_id == consumer.id,
            ConnectionRequest.vendor_id == vendor.id,
            _same_service(payload.service_id),
            ConnectionRequest.status != CANCELLED,
        )
        .first()
    )
    if existing:
        raise DuplicateRequestError("A connection request to this vendor for this service already exists")

    request = ConnectionRequest(
        consumer_id=consumer.id,
        vendor_id=vendor.id,
        service_id=payload.service_id,
        message=payload.message,
        project_description=payload.project_description,
        budget_range_min=payload.budget_min,
        budget_range_max=payload.budget_max,
        preferred_start_date=payload.preferred_start_date,
        urgency=payload.urgency,
        status=PENDING,
    )
    db.add(request)
    try:
        db.commit()
    except IntegrityError:
        # lost the race against a concurrent insert of the same triple
        db.rollback()
        raise DuplicateRequestError("A connection request to this vendor for this service already exists")
    db.refresh(request)

    logger.info(
        "connection_request_created",
        request_id=request.id,
        consumer_id=consumer.id,
        vendor_id=vendor.id,
        service_id=payload.service_id,
    )
    dispatcher.emit(
        db,
        vendor.id,
        "CONNECTION_REQUEST_CREATED",
        "New connection request",
        f"{consumer.name} would like to connect with you",
        related_entity_type="connection_request",
        related_entity_id=request.id,
        payload={
            "connectionRequest": ConnectionRequestResponse.model_validate(request).model_dump(
                mode="json", by_alias=True
            ),
        },
    )
    return request


def _transition(
    db: Session,
    request_id: int,
    owner_column,
    owner_id: int,
    new_status: str,
) -> ConnectionRequest:
    now = datetime.utcnow()
    result = db.execute(
        update(ConnectionRequest)
        .where(
            ConnectionRequest.id == request_id,
            owner_column == owner_id,
            ConnectionRequest.status == PENDING,
        )
        .values(status=new_status, responded_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = (
            db.query(ConnectionRequest)
            .filter(ConnectionRequest.id == request_id, owner_column == owner_id)
            .first()
        )
        if not current:
            raise NotFoundError("Connection request not found")
        raise InvalidStateTransitionError(
            f"Connection request is already {current.status}; cannot move it to {new_status}"
        )
    db.commit()

    request = db.query(ConnectionRequest).filter(ConnectionRequest.id == request_id).one()
    logger.info("connection_request_transitioned", request_id=request_id, status=new_status)
    return request


def respond_to_request(
    db: Session,
    dispatcher: NotificationDispatcher,
    request_id: int,
    vendor: User,
    decision: str,
) -> ConnectionRequest:
    if decision not in VENDOR_DECISIONS:
        raise ValidationError("status must be ACCEPTED or DECLINED")

    request = _transition(db, request_id, ConnectionRequest.vendor_id, vendor.id, decision)

    verb = "accepted" if decision == ACCEPTED else "declined"
    dispatcher.emit(
        db,
        request.consumer_id,
        f"CONNECTION_REQUEST_{decision}",
        f"Connection request {verb}",
        f"{vendor.name} {verb} your connection request",
        related_entity_type="connection_request",
        related_entity_id=request.id,
        payload={
            "connectionRequestId": request.id,
            "status": decision,
            "vendor": vendor_summary(db, vendor).model_dump(mode="json", by_alias=True),
        },
    )
    return request


def cancel_request(
    db: Session,
    dispatcher: NotificationDispatcher,
    request_id: int,
    consumer: User,
) -> ConnectionRequest:
    request = _transition(db, request_id, ConnectionRequest.consumer_id, consumer.id, CANCELLED)

    dispatcher.emit(
        db,
        request.vendor_id,
        "CONNECTION_REQUEST_CANCELLED",
        "Connection request cancelled",
        f"{consumer.name} cancelled their connection request",
        related_entity_type="connection_request",
        related_entity_id=request.id,
        payload={"connectionRequestId": request.id, "status": CANCELLED},
    )
    return request


def get_request(db: Session, request_id: int, user: User) -> ConnectionRequest:
    request = (
        db.query(ConnectionRequest)
        .filter(
            ConnectionRequest.id == request_id,
            or_(ConnectionRequest.consumer_id == user.id, ConnectionRequest.vendor_id == user.id),
        )
        .first()
    )
    if not request:
        raise NotFoundError("Connection request not found")
    return request


def list_for_user(db: Session, user: User, status: Optional[str] = None) -> List[ConnectionRequestListItem]:
    """Requests the user sent (consumer) or received (vendor), newest first."""
    if status is not None and status not in REQUEST_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(REQUEST_STATUSES)}")

    counterpart = aliased(User)
    if user.role == CONSUMER:
        own_column, counterpart_column = ConnectionRequest.consumer_id, ConnectionRequest.vendor_id
    else:
        own_column, counterpart_column = ConnectionRequest.vendor_id, ConnectionRequest.consumer_id

    q = (
        db.query(ConnectionRequest, counterpart, Service.name, Category.name)
        .join(counterpart, counterpart_column == counterpart.id)
        .outerjoin(Service, ConnectionRequest.service_id == Service.id)
        .outerjoin(Category, Service.category_id == Category.id)
        .filter(own_column == user.id)
    )
    if status is not None:
        q = q.filter(ConnectionRequest.status == status)

    rows = q.order_by(ConnectionRequest.created_at.desc(), ConnectionRequest.id.desc()).all()

    items = []
    for request, other, service_name, category_name in rows:
        base = ConnectionRequestResponse.model_validate(request).model_dump()
        items.append(
            ConnectionRequestListItem(
                **base,
                counterpart=UserMini.model_validate(other),
                service_name=service_name,
                category_name=category_name,
            )
        )
    return items
