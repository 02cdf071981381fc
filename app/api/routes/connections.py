# app/api/routes/connections.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.base import get_db
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.connection import (
    ConnectionRequestCreate,
    ConnectionRequestListItem,
    ConnectionRequestResponse,
    ConnectionStatusUpdate,
)
from app.core.security import get_current_user
from app.services import connections as connection_service
from app.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/connections", tags=["connections"])


# Consumer creates a connection request

@router.post(
    "/request",
    response_model=Envelope[ConnectionRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_request(
    request_in: ConnectionRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    request = connection_service.create_request(db, dispatcher, current_user, request_in)
    return ok(ConnectionRequestResponse.model_validate(request))


# Requests sent (consumer) or received (vendor)

@router.get("/requests", response_model=Envelope[List[ConnectionRequestListItem]])
def list_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(connection_service.list_for_user(db, current_user, status_filter))


@router.get("/requests/{request_id}", response_model=Envelope[ConnectionRequestResponse])
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    request = connection_service.get_request(db, request_id, current_user)
    return ok(ConnectionRequestResponse.model_validate(request))


# Vendor accepts or declines

@router.put("/requests/{request_id}/status", response_model=Envelope[ConnectionRequestResponse])
def respond_to_request(
    request_id: int,
    update: ConnectionStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    request = connection_service.respond_to_request(db, dispatcher, request_id, current_user, update.status)
    return ok(ConnectionRequestResponse.model_validate(request))


# Consumer cancels a pending request

@router.post("/requests/{request_id}/cancel", response_model=Envelope[ConnectionRequestResponse])
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    request = connection_service.cancel_request(db, dispatcher, request_id, current_user)
    return ok(ConnectionRequestResponse.model_validate(request))
