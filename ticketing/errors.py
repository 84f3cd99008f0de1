"""
Error kinds raised by the ticketing services.

Each kind carries the HTTP status the gateway answers with, so route
handlers can let them propagate instead of building error responses.
"""

from typing import Any, Dict


class TicketingError(Exception):
    """Base class for every failure scoped to a single request."""

    status_code = 500
    kind = "internal"
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class ValidationError(TicketingError):
    """Malformed or out-of-range input. Never worth retrying."""

    status_code = 400
    kind = "validation"
    default_message = "Invalid input"


class AuthenticationError(TicketingError):
    """Missing, invalid, expired or revoked token, or bad credentials."""

    status_code = 401
    kind = "authentication"
    default_message = "Authentication required"


class AuthorizationError(TicketingError):
    """Valid session, but the role or relation does not allow the action."""

    status_code = 403
    kind = "authorization"
    default_message = "You do not have permission to perform this action"


class NotFoundError(TicketingError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class ConflictError(TicketingError):
    """Business-rule violation against current state."""

    status_code = 409
    kind = "conflict"
    default_message = "Conflict with current state"


class SoldOut(ConflictError):
    kind = "sold_out"
    default_message = "Event is sold out"


class AlreadyRegistered(ConflictError):
    kind = "already_registered"
    default_message = "You are already registered for this event"


class NotRegistered(ConflictError):
    kind = "not_registered"
    default_message = "You have not registered or already cancelled your ticket"


class AlreadyCoOrganizer(ConflictError):
    kind = "already_coorganizer"
    default_message = "User is already a co-organizer for this event"


class NotCoOrganizer(ConflictError):
    kind = "not_coorganizer"
    default_message = "User is not a co-organizer for this event"


class UsernameTaken(ConflictError):
    kind = "username_taken"
    default_message = "Username already exists"


class CapacityBelowSold(ConflictError):
    kind = "capacity_below_sold"
    default_message = "Capacity cannot be lower than the number of tickets already sold"


class TransientError(TicketingError):
    """Storage timeout or contention. Safe to retry with backoff."""

    status_code = 503
    kind = "transient"
    default_message = "Service temporarily unavailable, please retry"
