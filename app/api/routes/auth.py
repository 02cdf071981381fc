# app/api/routes/auth.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.user import UserCreate, UserResponse
from app.core.security import get_current_user
from app.services import users as user_service

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
def register(user: UserCreate, db: Session = Depends(get_db)):
    new_user = user_service.register_user(db, user)
    return ok(UserResponse.model_validate(new_user))


@router.get("/me", response_model=Envelope[UserResponse])
def me(current_user: User = Depends(get_current_user)):
    return ok(UserResponse.model_validate(current_user))
