# app/services/users.py
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.core.security import hash_password
from app.db.models.user import VENDOR, User
from app.schemas.user import UserCreate, VendorSummary
from app.services import ratings as rating_service

logger = structlog.get_logger(__name__)


def register_user(db: Session, payload: UserCreate) -> User:
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(
        email=payload.email,
        name=payload.name,
        role=payload.role,
        phone=payload.phone,
        password_hash=hash_password(payload.password) if payload.password else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already registered")
    db.refresh(user)

    logger.info("user_registered", user_id=user.id, role=user.role)
    return user


def deactivate_user(db: Session, user: User) -> User:
    # requests, messages and ratings keep pointing at the row
    user.is_active = False
    db.commit()
    db.refresh(user)
    logger.info("user_deactivated", user_id=user.id)
    return user


def vendor_summary(db: Session, vendor: User) -> VendorSummary:
    """Public profile summary attached to responses and notification events."""
    stats = rating_service.get_aggregate(db, vendor.id)
    return VendorSummary(
        id=vendor.id,
        name=vendor.name,
        is_verified=vendor.is_verified,
        average_rating=round(stats.average_overall, 2),
        rating_count=stats.count,
    )


def get_vendor_profile(db: Session, vendor_id: int) -> VendorSummary:
    vendor = (
        db.query(User)
        .filter(User.id == vendor_id, User.role == VENDOR, User.is_active == True)
        .first()
    )
    if not vendor:
        raise NotFoundError("Vendor not found")
    return vendor_summary(db, vendor)
