"""Tests for the bearer-token identity contract."""

from datetime import timedelta

import pytest

from conftest import make_user
from app.core.config import settings
from app.core.errors import UnauthorizedError
from app.core.security import (
    JWTIdentityProvider,
    create_access_token,
    hash_password,
    verify_password,
)
from app.db.models.user import VENDOR


@pytest.fixture
def provider() -> JWTIdentityProvider:
    return JWTIdentityProvider(settings.SECRET_KEY, settings.ALGORITHM)


def test_password_hash_roundtrip():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_valid_token_resolves_user(db, provider, vendor):
    ctx = provider.authenticate(db, create_access_token(vendor.id))
    assert ctx.user_id == vendor.id
    assert ctx.is_vendor and not ctx.is_consumer


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_bad_tokens_rejected(db, provider, token):
    with pytest.raises(UnauthorizedError):
        provider.authenticate(db, token)


def test_expired_token_rejected(db, provider, consumer):
    token = create_access_token(consumer.id, expires_delta=timedelta(minutes=-5))
    with pytest.raises(UnauthorizedError):
        provider.authenticate(db, token)


def test_token_signed_with_other_key_rejected(db, consumer):
    token = create_access_token(consumer.id)
    with pytest.raises(UnauthorizedError):
        JWTIdentityProvider("another-secret").authenticate(db, token)


def test_inactive_user_rejected(db, provider):
    user = make_user(db, "gone@example.com", "Gone Vendor", VENDOR, is_active=False)
    with pytest.raises(UnauthorizedError):
        provider.authenticate(db, create_access_token(user.id))
