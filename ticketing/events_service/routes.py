"""
Events service routes: browse, create, update and delete events,
buy and cancel tickets, manage co-organizers, and the sales/attendee reports.

Every privileged route first runs `verify_token_from_request` with the action
it needs; finer, per-event checks (creator or co-organizer) happen in the
inventory and delegation services.
"""

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, jsonify, request

from ticketing.auth_service.permissions import Action, Role, authorize
from ticketing.auth_service.utils import optional_session_from_request, verify_token_from_request
from ticketing.errors import AuthorizationError, ValidationError
from ticketing.events_service import delegation, inventory

events_bp = Blueprint("events", __name__)


# --- REQUEST LOGGING ---
@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


def _caller_role() -> str:
    """Role of the caller for browse routes; anonymous callers are guests."""
    claims = optional_session_from_request()
    role = claims.role if claims else Role.GUEST.value
    if not authorize(role, Action.BROWSE_EVENTS):
        raise AuthorizationError()
    return role


# --- BROWSE ---
@events_bp.route("/", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return all events.

    Guests and attendees see name, price and date only; organizers and
    co-organizers see the full record. The token is optional here.

    Returns:
        200: List of event objects.
    """
    visibility = inventory.visibility_for_role(_caller_role())
    return jsonify(inventory.list_events(visibility)), 200


@events_bp.route("/<int:event_id>", methods=["GET"])
def get_event(event_id: int) -> Tuple[Response, int]:
    """
    Get a single event by ID, projected for the caller's role.

    Returns:
        200: Event object.
        404: Event not found.
    """
    visibility = inventory.visibility_for_role(_caller_role())
    return jsonify(inventory.get_event(event_id, visibility)), 200


# --- CREATE / UPDATE / DELETE ---
@events_bp.route("/", methods=["POST"])
def create_event() -> Tuple[Response, int]:
    """
    Create an event owned by the caller.

    Expects JSON: name, date (ISO-8601), price (>= 0), capacity (>= 1),
    and optionally description.

    Returns:
        201: The created event.
        400: Validation error.
        401/403: Authentication or role failure.
    """
    user_id, _, err, code = verify_token_from_request(Action.CREATE_EVENT)
    if err:
        return err, code

    data: Dict[str, Any] = request.get_json(silent=True) or {}

    event = inventory.create_event(
        organizer_id=user_id,
        name=data.get("name"),
        description=data.get("description"),
        date=data.get("date"),
        price=data.get("price"),
        capacity=data.get("capacity"),
    )
    return jsonify({"message": "Event created successfully", "event": event}), 201


@events_bp.route("/<int:event_id>", methods=["PUT"])
def update_event(event_id: int) -> Tuple[Response, int]:
    """
    Update the supplied fields of an event.

    Permission:
    - update_event action
    - AND the creator or a co-organizer of this event

    Returns:
        200: The updated event.
        400: Validation error.
        403: Forbidden.
        404: Event not found.
        409: Capacity lower than tickets already sold.
    """
    user_id, _, err, code = verify_token_from_request(Action.UPDATE_EVENT)
    if err:
        return err, code

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    if not data:
        return jsonify({"error": "No update data provided", "kind": ValidationError.kind}), 400

    event = inventory.update_event(event_id, user_id, data)
    return jsonify({"message": "Event updated successfully", "event": event}), 200


@events_bp.route("/<int:event_id>", methods=["DELETE"])
def delete_event(event_id: int) -> Tuple[Response, int]:
    """
    Delete an event. Only its creator may do this; every co-organizer
    of the event has their role re-derived.
    """
    user_id, _, err, code = verify_token_from_request(Action.DELETE_EVENT)
    if err:
        return err, code

    result = inventory.delete_event(event_id, user_id)
    return jsonify({
        "message": "Event deleted successfully and co-organizers released",
        **result,
    }), 200


# --- TICKETS ---
@events_bp.route("/<int:event_id>/tickets", methods=["POST"])
def purchase_ticket(event_id: int) -> Tuple[Response, int]:
    """
    Buy one ticket for the caller.

    Returns:
        201: The confirmed registration.
        404: Event not found.
        409: Sold out, or already registered.
    """
    user_id, _, err, code = verify_token_from_request(Action.PURCHASE_TICKETS)
    if err:
        return err, code

    registration = inventory.purchase_ticket(event_id, user_id)
    return jsonify({"message": "Ticket purchased successfully", "registration": registration}), 201


@events_bp.route("/<int:event_id>/tickets", methods=["DELETE"])
def cancel_ticket(event_id: int) -> Tuple[Response, int]:
    """
    Cancel the caller's ticket.

    Returns:
        200: The cancelled registration.
        404: Event not found.
        409: No active ticket to cancel.
    """
    user_id, _, err, code = verify_token_from_request(Action.CANCEL_TICKET)
    if err:
        return err, code

    registration = inventory.cancel_ticket(event_id, user_id)
    return jsonify({"message": "Ticket cancelled successfully", "registration": registration}), 200


@events_bp.route("/my-tickets", methods=["GET"])
def view_my_tickets() -> Tuple[Response, int]:
    user_id, _, err, code = verify_token_from_request(Action.VIEW_MY_TICKETS)
    if err:
        return err, code

    return jsonify(inventory.list_my_tickets(user_id)), 200


# --- REPORTS ---
@events_bp.route("/sales", methods=["GET"])
def view_sales() -> Tuple[Response, int]:
    """
    Tickets sold and revenue for every event the caller created.
    """
    user_id, _, err, code = verify_token_from_request(Action.VIEW_SALES)
    if err:
        return err, code

    return jsonify({"sales": inventory.sales_report(user_id)}), 200


@events_bp.route("/<int:event_id>/attendees", methods=["GET"])
def view_attendees(event_id: int) -> Tuple[Response, int]:
    """
    Confirmed attendees of an event.
    Restricted to the event's creator and co-organizers.
    """
    user_id, _, err, code = verify_token_from_request(Action.VIEW_ATTENDEES)
    if err:
        return err, code

    return jsonify(inventory.list_attendees(event_id, user_id)), 200


# --- CO-ORGANIZERS ---
@events_bp.route("/<int:event_id>/coorganizers", methods=["POST"])
def assign_coorganizer(event_id: int) -> Tuple[Response, int]:
    """
    Assign a co-organizer to an event.

    Expects JSON: { "user_id": int }

    Returns:
        200: The delegation and the target's new role.
        400: Missing user_id or target is the creator.
        403: Caller is neither creator nor co-organizer.
        404: Event or user not found.
        409: Already a co-organizer.
    """
    user_id, _, err, code = verify_token_from_request(Action.ASSIGN_COORGANIZER)
    if err:
        return err, code

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    target_id = data.get("user_id")
    if not isinstance(target_id, int) or isinstance(target_id, bool):
        raise ValidationError("user_id is required")

    result = delegation.assign_coorganizer(event_id, user_id, target_id)
    return jsonify({
        "message": "Co-organizer assigned successfully and role updated",
        **result,
    }), 200


@events_bp.route("/<int:event_id>/coorganizers/<int:target_id>", methods=["DELETE"])
def remove_coorganizer(event_id: int, target_id: int) -> Tuple[Response, int]:
    """
    Remove a co-organizer from an event. Same permission rule as assignment.

    Returns:
        200: The remaining delegation list and the target's new role.
        403: Caller is neither creator nor co-organizer.
        404: Event or user not found.
        409: Target is not a co-organizer.
    """
    user_id, _, err, code = verify_token_from_request(Action.REMOVE_COORGANIZER)
    if err:
        return err, code

    result = delegation.remove_coorganizer(event_id, user_id, target_id)
    return jsonify({
        "message": "Co-organizer removed successfully and role updated",
        **result,
    }), 200
