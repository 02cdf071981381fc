"""Pytest configuration and fixtures for FixRx tests.

Every test gets a fresh in-memory SQLite database, a static identity
provider (the bearer token is the user id) and a notification dispatcher
whose sink records events instead of delivering them.
"""

import os

# settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "0")

from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import UnauthorizedError
from app.core.security import AuthContext, IdentityProvider, get_identity_provider
from app.db import models  # noqa: F401
from app.db.base import Base, get_db
from app.db.models.category import Category
from app.db.models.service import Service
from app.db.models.user import CONSUMER, VENDOR, User
from app.main import app
from app.services.notifications import NotificationDispatcher, NotificationSink, get_dispatcher


class StaticIdentityProvider(IdentityProvider):
    """Treats the bearer token as a user id."""

    def authenticate(self, db: Session, token: Optional[str]) -> AuthContext:
        if not token or not token.isdigit():
            raise UnauthorizedError("Missing bearer token")
        return AuthContext(user=self._load_active_user(db, int(token)))


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []

    def deliver(self, event: dict) -> None:
        self.events.append(event)


class FailingSink(NotificationSink):
    def deliver(self, event: dict) -> None:
        raise RuntimeError("push gateway unavailable")


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {user.id}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def dispatcher(sink) -> NotificationDispatcher:
    return NotificationDispatcher(sink=sink)


@pytest.fixture
def client(db, dispatcher):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_identity_provider] = lambda: StaticIdentityProvider()
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(db: Session, email: str, name: str, role: str = CONSUMER, **kwargs) -> User:
    user = User(email=email, name=name, role=role, **kwargs)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def consumer(db) -> User:
    return make_user(db, "carol@example.com", "Carol Consumer", CONSUMER, phone="555-0100")


@pytest.fixture
def other_consumer(db) -> User:
    return make_user(db, "dave@example.com", "Dave Consumer", CONSUMER)


@pytest.fixture
def vendor(db) -> User:
    return make_user(db, "vic@example.com", "Vic Vendor", VENDOR, is_verified=True)


@pytest.fixture
def other_vendor(db) -> User:
    return make_user(db, "wendy@example.com", "Wendy Vendor", VENDOR)


@pytest.fixture
def category(db) -> Category:
    category = Category(name="Plumbing", description="Pipes and fixtures", sort_order=1)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def service(db, category) -> Service:
    service = Service(category_id=category.id, name="Leak repair")
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def file_sessionmaker(tmp_path):
    """Sessions on a file-backed database, one connection each, for race tests."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'fixrx.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
