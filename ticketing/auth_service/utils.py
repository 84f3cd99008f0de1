"""
Shared authentication helpers for route handlers.

Every privileged request passes the same gates, in order:
token signature + expiry -> revocation ledger -> current role -> permission table.
"""

from typing import Optional, Tuple, Union

from flask import Response, jsonify, request

from ticketing.auth_service import credentials, revocation
from ticketing.auth_service.permissions import Action, authorize
from ticketing.auth_service.tokens import SessionClaims, verify_token
from ticketing.errors import AuthenticationError, AuthorizationError, TicketingError


def get_bearer_token() -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def authenticate(token: Optional[str], required_action: Union[Action, str, None] = None) -> SessionClaims:
    """
    Run a token through all the gates.

    The returned claims carry the role currently stored for the user, not
    the one baked into the token, so promotions and demotions apply to
    sessions that are already open.

    Raises:
        AuthenticationError: Missing, invalid, expired or revoked token, or unknown user.
        AuthorizationError: The user's role does not permit `required_action`.
    """
    if not token:
        raise AuthenticationError("Authorization token is missing or invalid")

    claims = verify_token(token)

    if revocation.is_revoked(token):
        raise AuthenticationError("Token is revoked. Please sign in again.")

    role = credentials.get_current_role(claims.user_id)
    if role is None:
        raise AuthenticationError("invalid token")

    if required_action is not None and not authorize(role, required_action):
        raise AuthorizationError()

    return SessionClaims(
        user_id=claims.user_id,
        username=claims.username,
        role=role,
        expires_at=claims.expires_at,
    )


# --- REQUEST GATE ---
def verify_token_from_request(
    required_action: Union[Action, str, None] = None,
) -> Tuple[Optional[int], Optional[str], Optional[Response], Optional[int]]:
    """
    Verify the bearer token on the current request.

    Args:
        required_action (Action, optional): Action the caller's role must permit.

    Returns:
        tuple: (user_id, role, error_response, status_code)
               If successful, error_response and status_code are None.
               If failed, user_id and role are None.
    """
    try:
        claims = authenticate(get_bearer_token(), required_action)
    except TicketingError as e:
        return None, None, jsonify(e.to_dict()), e.status_code

    return claims.user_id, claims.role, None, None


def optional_session_from_request() -> Optional[SessionClaims]:
    """
    Claims for the current request if it carries a usable token, else None.

    Used by endpoints that anonymous guests may also call.
    """
    token = get_bearer_token()
    if not token:
        return None
    try:
        return authenticate(token)
    except AuthenticationError:
        return None
