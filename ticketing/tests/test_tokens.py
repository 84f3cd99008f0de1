from datetime import datetime, timedelta, timezone

import jwt
import pytest

from ticketing.auth_service.permissions import Role
from ticketing.auth_service.tokens import create_token, verify_token
from ticketing.errors import AuthenticationError


@pytest.fixture(autouse=True)
def mock_jwt_secret(mocker):
    mocker.patch("ticketing.config.JWT_SECRET", "test_secret")


def test_create_token():
    token = create_token(123, "alice", Role.ORGANIZER)

    assert isinstance(token, str)

    # Decode to verify contents using the same secret
    payload = jwt.decode(token, "test_secret", algorithms=["HS256"])
    assert payload["sub"] == "123"
    assert payload["username"] == "alice"
    assert payload["role"] == "organizer"
    assert "exp" in payload
    assert "iat" in payload
    assert "jti" in payload


def test_create_token_uses_configured_lifetime(mocker):
    mocker.patch("ticketing.config.TOKEN_EXPIRATION_MINUTES", 5)
    token = create_token(1, "alice", Role.ATTENDEE)

    payload = jwt.decode(token, "test_secret", algorithms=["HS256"])
    assert payload["exp"] - payload["iat"] == 5 * 60


def test_verify_token():
    token = create_token(456, "bobby", "attendee")

    claims = verify_token(token)
    assert claims.user_id == 456
    assert claims.username == "bobby"
    assert claims.role == "attendee"
    assert claims.expires_at > datetime.now(timezone.utc)


def test_tokens_for_same_user_are_distinct():
    assert create_token(1, "alice", Role.ATTENDEE) != create_token(1, "alice", Role.ATTENDEE)


def test_verify_token_expired():
    token = create_token(1, "alice", Role.ATTENDEE, ttl=timedelta(seconds=-1))

    with pytest.raises(AuthenticationError, match="token expired"):
        verify_token(token)


def test_verify_token_invalid():
    with pytest.raises(AuthenticationError, match="invalid token"):
        verify_token("invalid.token.here")


def test_verify_token_signed_with_other_secret():
    now = datetime.now(timezone.utc)
    forged = jwt.encode(
        {"sub": "1", "username": "alice", "role": "organizer", "iat": now, "exp": now + timedelta(minutes=5)},
        "not_the_secret",
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError, match="invalid token"):
        verify_token(forged)


def test_verify_token_with_edited_payload():
    token = create_token(1, "alice", Role.ATTENDEE)
    header, payload, signature = token.split(".")
    other_payload = create_token(1, "alice", Role.ORGANIZER).split(".")[1]

    with pytest.raises(AuthenticationError):
        verify_token(".".join([header, other_payload, signature]))


def test_verify_token_missing_claims():
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": "1", "iat": now, "exp": now + timedelta(minutes=5)}, "test_secret", algorithm="HS256")

    with pytest.raises(AuthenticationError, match="invalid token"):
        verify_token(token)


def test_verify_token_non_numeric_subject():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "abc", "username": "alice", "role": "attendee", "iat": now, "exp": now + timedelta(minutes=5)},
        "test_secret",
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError, match="invalid token"):
        verify_token(token)


def test_create_token_lifetime_capped_by_revocation_retention(mocker):
    mocker.patch("ticketing.config.REVOCATION_RETENTION_MINUTES", 30)

    token = create_token(1, "alice", Role.ATTENDEE, ttl=timedelta(hours=2))

    payload = jwt.decode(token, "test_secret", algorithms=["HS256"])
    assert payload["exp"] - payload["iat"] == 30 * 60
