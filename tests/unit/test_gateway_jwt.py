"""Unit tests for JWT handler."""

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from config.settings import settings
from src.sc_common.errors import InvalidCredentialsError
from src.sc_gateway.auth.jwt_handler import create_access_token, decode_token


def test_access_token_contains_correct_claims() -> None:
    token = create_access_token("alice")
    payload = jwt.get_unverified_claims(token)
    assert payload["sub"] == "alice"
    assert payload["type"] == "access"


def test_decode_valid_access_token() -> None:
    payload = decode_token(create_access_token("alice"))
    assert payload["sub"] == "alice"


def test_malformed_token_raises() -> None:
    with pytest.raises(InvalidCredentialsError):
        decode_token("not-a-jwt")


def test_expired_token_raises() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {"sub": "alice", "type": "access", "iat": now - timedelta(hours=2),
         "exp": now - timedelta(hours=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


def test_non_access_token_raises() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {"sub": "alice", "type": "refresh", "exp": now + timedelta(hours=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)


def test_wrong_secret_raises() -> None:
    token = jwt.encode(
        {"sub": "alice", "type": "access"}, "some-other-secret", algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(InvalidCredentialsError):
        decode_token(token)
