# app/api/routes/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.user import UserResponse, VendorSummary
from app.core.security import get_current_user
from app.services import users as user_service

router = APIRouter(tags=["users"])


# Deactivate own account; history stays in place
@router.post("/users/me/deactivate", response_model=Envelope[UserResponse])
def deactivate_me(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    user = user_service.deactivate_user(db, current_user)
    return ok(UserResponse.model_validate(user))


# Vendor public profile (public)
@router.get("/vendors/{vendor_id}", response_model=Envelope[VendorSummary])
def vendor_profile(vendor_id: int, db: Session = Depends(get_db)):
    return ok(user_service.get_vendor_profile(db, vendor_id))
