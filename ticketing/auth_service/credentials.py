"""
Credential store: user accounts, password hashes and current roles.

Passwords are hashed with Argon2. The time cost used for each hash is stored
alongside it, and hashes made with an older cost are upgraded on the next
successful sign-in.
"""

import logging
from typing import Any, Dict, Optional, Union

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ticketing import config
from ticketing.auth_service.permissions import Role, parse_role
from ticketing.database.db_connection import get_db
from ticketing.database.models import User, as_utc
from ticketing.errors import AuthenticationError, UsernameTaken, ValidationError

USERNAME_MIN_LENGTH = 5
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 5
PASSWORD_MAX_LENGTH = 100

# Roles a new account may start with; co_organizer is only ever granted by delegation
SIGNUP_ROLES = (Role.ATTENDEE, Role.ORGANIZER)

ph = PasswordHasher(
    time_cost=config.PASSWORD_HASH_TIME_COST,
    memory_cost=config.PASSWORD_HASH_MEMORY_KIB,
)


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "user_id": user.user_id,
        "username": user.username,
        "role": user.role,
        "created_at": as_utc(user.created_at).isoformat() if user.created_at else None,
    }


def verify_password(plaintext: str, stored_hash: str) -> bool:
    """Return True when `plaintext` matches `stored_hash`."""
    try:
        return ph.verify(stored_hash, plaintext)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def _validate_credentials(username: Any, password: Any) -> None:
    if not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError("Username and password are required")
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters"
        )
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters"
        )


def create_user(username: str, password: str, role: Union[Role, str] = Role.ATTENDEE) -> Dict[str, Any]:
    """
    Register a new account.

    Args:
        username (str): Unique username, 5-30 characters.
        password (str): Plaintext password, 5-100 characters. Only its hash is stored.
        role (Role | str): attendee (default) or organizer.

    Returns:
        dict: The created user (without the hash).

    Raises:
        ValidationError: Bad username, password or role.
        UsernameTaken: The username is already registered.
    """
    _validate_credentials(username, password)

    requested = parse_role(role)
    if requested not in SIGNUP_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(r.value for r in SIGNUP_ROLES)}")

    pw_hash = ph.hash(password)

    try:
        with get_db(write=True) as db:
            user = User(
                username=username,
                password_hash=pw_hash,
                hash_cost=ph.time_cost,
                role=requested.value,
            )
            db.add(user)
            db.flush()
            created = user_to_dict(user)
    except IntegrityError:
        raise UsernameTaken()

    logging.info(f"[Auth] Created user {created['user_id']} with role {created['role']}")
    return created


def verify_credentials(username: str, password: str) -> Dict[str, Any]:
    """
    Check a username/password pair.

    Returns:
        dict: The matching user.

    Raises:
        ValidationError: Missing username or password.
        AuthenticationError: Unknown username or wrong password.
    """
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationError("Username and password are required")

    with get_db() as db:
        user = db.scalar(select(User).where(User.username == username))
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid username or password")
        found = user_to_dict(user)
        stale_hash = user.password_hash

    if ph.check_needs_rehash(stale_hash):
        with get_db(write=True) as db:
            user = db.get(User, found["user_id"])
            user.password_hash = ph.hash(password)
            user.hash_cost = ph.time_cost
        logging.info(f"[Auth] Upgraded password hash for user {found['user_id']}")

    return found


def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    with get_db() as db:
        user = db.get(User, user_id)
        return user_to_dict(user) if user is not None else None


def get_current_role(user_id: int) -> Optional[str]:
    """Role currently stored for the user, or None if the user does not exist."""
    with get_db() as db:
        return db.scalar(select(User.role).where(User.user_id == user_id))
