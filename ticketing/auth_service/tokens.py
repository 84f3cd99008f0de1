"""
Session token issuance and verification.

Tokens are HS256 JWTs. Nothing here touches the database: whether a token
has been revoked is answered separately by the revocation ledger.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import jwt

from ticketing import config
from ticketing.auth_service.permissions import Role
from ticketing.errors import AuthenticationError


@dataclass(frozen=True)
class SessionClaims:
    """
    Decoded token payload.

    Attributes:
        user_id: The authenticated user's id.
        username: Username at issuance time.
        role: Role at issuance time. The request gate re-reads the current
            role from the user record before authorizing.
        expires_at: When the token stops being accepted.
    """
    user_id: int
    username: str
    role: str
    expires_at: datetime


# --- JWT CREATION ---
def create_token(
    user_id: int,
    username: str,
    role: Union[Role, str],
    ttl: Optional[timedelta] = None,
) -> str:
    """
    Generates a new session token for a given user.

    Args:
        user_id (int): The unique ID of the user.
        username (str): The user's username.
        role (Role | str): The user's current role.
        ttl (timedelta, optional): Validity window. Defaults to TOKEN_EXPIRATION_MINUTES.
            Never longer than REVOCATION_RETENTION_MINUTES, so a revoked token
            cannot outlive its ledger entry.

    Returns:
        str: Encoded JWT string.
    """
    if ttl is None:
        ttl = timedelta(minutes=config.TOKEN_EXPIRATION_MINUTES)

    max_ttl = timedelta(minutes=config.REVOCATION_RETENTION_MINUTES)
    if ttl > max_ttl:
        logging.warning(f"[Auth] Token lifetime {ttl} exceeds revocation retention; using {max_ttl}")
        ttl = max_ttl

    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(user_id),
        "username": username,
        "role": Role(role).value,
        "exp": now + ttl,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    }

    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


# --- JWT VALIDATION ---
def verify_token(token: str) -> SessionClaims:
    """
    Check the token's signature and expiry and return its claims.

    Args:
        token (str): JWT string.

    Returns:
        SessionClaims: The decoded claims.

    Raises:
        AuthenticationError: Bad signature, malformed token, or expired.
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("invalid token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("invalid token")

    username = payload.get("username")
    role = payload.get("role")
    if not username or not role:
        raise AuthenticationError("invalid token")

    return SessionClaims(
        user_id=user_id,
        username=username,
        role=role,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
