# app/core/security.py
"""
Authentication contract.

Every authenticated route depends on `get_auth_context`, which asks the
configured `IdentityProvider` to turn the bearer credential into an
`AuthContext`. The production provider validates an HS256 JWT whose `sub`
claim is the user id. Tests replace the provider through
`app.dependency_overrides[get_identity_provider]`; there is no bypass
inside this module.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import UnauthorizedError
from app.db.base import get_db
from app.db.models.user import CONSUMER, VENDOR, User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"exp": expire, "sub": str(user_id)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


@dataclass
class AuthContext:
    """The authenticated caller of the current request."""

    user: User

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def is_consumer(self) -> bool:
        return self.user.role == CONSUMER

    @property
    def is_vendor(self) -> bool:
        return self.user.role == VENDOR


class IdentityProvider:
    def authenticate(self, db: Session, token: Optional[str]) -> AuthContext:
        raise NotImplementedError

    @staticmethod
    def _load_active_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            raise UnauthorizedError("User not found or inactive")
        return user


class JWTIdentityProvider(IdentityProvider):
    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def authenticate(self, db: Session, token: Optional[str]) -> AuthContext:
        if not token:
            raise UnauthorizedError("Missing bearer token")
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            user_id = int(payload["sub"])
        except (JWTError, KeyError, TypeError, ValueError):
            raise UnauthorizedError("Could not validate credentials")
        return AuthContext(user=self._load_active_user(db, user_id))


_provider = JWTIdentityProvider(settings.SECRET_KEY, settings.ALGORITHM)


def get_identity_provider() -> IdentityProvider:
    return _provider


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> AuthContext:
    token = credentials.credentials if credentials else None
    return provider.authenticate(db, token)


def get_current_user(auth: AuthContext = Depends(get_auth_context)) -> User:
    return auth.user
