"""
Authentication service route handlers.

Provides routes for:
- User signup
- User signin (issues a session token)
- User signout (revokes the presented token)
- Profile retrieval (/me)

Token logic lives in `auth_service.tokens`, the request gates in `auth_service.utils`.
"""

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, jsonify, request

from ticketing.auth_service import credentials, revocation
from ticketing.auth_service.permissions import Role
from ticketing.auth_service.tokens import create_token
from ticketing.auth_service.utils import get_bearer_token, verify_token_from_request
from ticketing.errors import NotFoundError

auth_bp = Blueprint("auth", __name__)


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- SIGNUP ---
@auth_bp.route("/signup", methods=["POST"])
def signup() -> Tuple[Response, int]:
    """
    Register a new user.

    Expects a JSON body with:
    - username (str): Unique, 5-30 characters.
    - password (str): 5-100 characters.
    - role (str, optional): "attendee" (default) or "organizer".

    Returns:
        201: JSON with user_id, username and role.
        400: Missing or invalid fields.
        409: Username already exists.
    """
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    username = data.get("username")
    if isinstance(username, str):
        username = username.strip()

    user = credentials.create_user(
        username,
        data.get("password"),
        data.get("role") or Role.ATTENDEE,
    )

    return jsonify({
        "message": f'User created successfully with role "{user["role"]}"',
        "user_id": user["user_id"],
        "username": user["username"],
        "role": user["role"],
    }), 201


# --- SIGNIN ---
@auth_bp.route("/signin", methods=["POST"])
def signin() -> Tuple[Response, int]:
    """
    Authenticate a user and return a session token.

    Expects a JSON body with:
    - username (str)
    - password (str)

    Returns:
        200: JSON with message, user_id, role and token.
        400: Missing credentials.
        401: Invalid credentials.
    """
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    username = data.get("username")
    if isinstance(username, str):
        username = username.strip()

    user = credentials.verify_credentials(username, data.get("password"))
    token = create_token(user["user_id"], user["username"], user["role"])

    logging.info(f"[Auth] User {user['user_id']} signed in")
    return jsonify({
        "message": "Login successful",
        "user_id": user["user_id"],
        "role": user["role"],
        "token": token,
    }), 200


# --- SIGNOUT ---
@auth_bp.route("/signout", methods=["POST"])
def signout() -> Tuple[Response, int]:
    """
    Revoke the token used for this request.

    Requires Authorization header: Bearer <token>

    Returns:
        200: Logout confirmation.
        401: Missing, invalid, expired or already revoked token.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    revocation.revoke(get_bearer_token())

    logging.info(f"[Auth] User {user_id} signed out")
    return jsonify({"message": "Logout successful"}), 200


# --- GET CURRENT USER ---
@auth_bp.route("/me", methods=["GET"])
def get_current_user() -> Tuple[Response, int]:
    """
    Retrieve the current user's profile.

    Requires Authorization header: Bearer <token>

    Returns:
        200: User profile object.
        401: Authentication failure.
        404: User not found (edge case).
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    user = credentials.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")

    return jsonify(user), 200
