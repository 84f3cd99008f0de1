"""
Event inventory: events, ticket sales and participant registrations.

Ticket sales never go through a read-compare-write on tickets_sold. The
capacity check is part of the UPDATE itself, and the registration row is
written in the same transaction, so either both effects land or neither does.
"""

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ticketing.auth_service.permissions import Role, parse_role
from ticketing.database.db_connection import get_db
from ticketing.database.models import (
    Event,
    Registration,
    RegistrationStatus,
    User,
    as_utc,
    lock_event,
    utcnow,
)
from ticketing.errors import (
    AlreadyRegistered,
    AuthorizationError,
    CapacityBelowSold,
    NotFoundError,
    NotRegistered,
    SoldOut,
    ValidationError,
)
from ticketing.events_service import delegation

# --- CONSTANTS FOR VALIDATION ---
NAME_MIN_LENGTH = 5
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
UPDATABLE_FIELDS = ("name", "description", "date", "price", "capacity")


class Visibility(str, Enum):
    PUBLIC = "public"           # name, price and date only
    MANAGEMENT = "management"   # the full record


def visibility_for_role(role: Union[Role, str, None]) -> Visibility:
    if parse_role(role) in (Role.ORGANIZER, Role.CO_ORGANIZER):
        return Visibility.MANAGEMENT
    return Visibility.PUBLIC


def parse_dt(val: Any) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 string (or pass through a datetime).

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if isinstance(val, datetime):
        return val
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        return datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None


# --- FIELD VALIDATION ---
def _clean_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("name is required")
    value = value.strip()
    if not NAME_MIN_LENGTH <= len(value) <= NAME_MAX_LENGTH:
        raise ValidationError(f"name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters")
    return value


def _clean_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("description must be a string")
    if len(value) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"description must be {DESCRIPTION_MAX_LENGTH} characters or less")
    return value


def _clean_date(value: Any) -> datetime:
    parsed = parse_dt(value)
    if parsed is None:
        raise ValidationError("date is required and must be ISO-8601")
    # Stored as UTC; a date without an offset is read as UTC
    return as_utc(parsed)


def _clean_price(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("price must be a number")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError("price must be a number")
    if not math.isfinite(price) or price < 0:
        raise ValidationError("price must be zero or more")
    return round(price, 2)


def _clean_capacity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("capacity must be a whole number")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError("capacity must be a whole number")
    if value < 1:
        raise ValidationError("capacity must be at least 1")
    return value


_CLEANERS = {
    "name": _clean_name,
    "description": _clean_description,
    "date": _clean_date,
    "price": _clean_price,
    "capacity": _clean_capacity,
}


# --- PROJECTIONS ---
def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None


def event_to_dict(db: Session, event: Event, visibility: Visibility = Visibility.MANAGEMENT) -> Dict[str, Any]:
    projected = {
        "event_id": event.event_id,
        "name": event.name,
        "price": event.price,
        "date": _iso(event.date),
    }
    if visibility is Visibility.PUBLIC:
        return projected

    projected.update({
        "description": event.description,
        "capacity": event.capacity,
        "tickets_sold": event.tickets_sold,
        "created_by": event.created_by,
        "co_organizers": delegation.coorganizer_ids(db, event.event_id),
        "created_at": _iso(event.created_at),
        "updated_at": _iso(event.updated_at),
    })
    return projected


def registration_to_dict(registration: Registration) -> Dict[str, Any]:
    return {
        "registration_id": registration.registration_id,
        "event_id": registration.event_id,
        "user_id": registration.user_id,
        "status": registration.status,
        "confirmed_at": _iso(registration.confirmed_at),
        "cancelled_at": _iso(registration.cancelled_at),
    }


# --- EVENTS ---
def create_event(
    organizer_id: int,
    name: str,
    description: Optional[str],
    date: Union[str, datetime],
    price: Union[int, float, str],
    capacity: Union[int, str],
) -> Dict[str, Any]:
    """
    Create an event owned by `organizer_id` with no tickets sold.

    Raises:
        ValidationError: Any field out of range (price < 0, capacity < 1, bad date...).
    """
    fields = {
        "name": _clean_name(name),
        "description": _clean_description(description),
        "date": _clean_date(date),
        "price": _clean_price(price),
        "capacity": _clean_capacity(capacity),
    }

    with get_db(write=True) as db:
        now = utcnow()
        event = Event(**fields, tickets_sold=0, created_by=organizer_id, created_at=now, updated_at=now)
        db.add(event)
        db.flush()
        created = event_to_dict(db, event)

    logging.info(f"[Events] User {organizer_id} created event {created['event_id']}")
    return created


def list_events(visibility: Visibility = Visibility.PUBLIC) -> List[Dict[str, Any]]:
    with get_db() as db:
        events = db.scalars(select(Event).order_by(Event.date, Event.event_id)).all()
        return [event_to_dict(db, event, visibility) for event in events]


def get_event(event_id: int, visibility: Visibility = Visibility.PUBLIC) -> Dict[str, Any]:
    with get_db() as db:
        event = db.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event_to_dict(db, event, visibility)


def update_event(event_id: int, requester_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Change the supplied fields of an event; omitted fields keep their values.

    Args:
        event_id (int): Event to update.
        requester_id (int): Must be the creator or a co-organizer.
        fields (dict): Any of name, description, date, price, capacity.

    Returns:
        dict: The updated event (full record).

    Raises:
        ValidationError: No updatable field given, or a value is out of range.
        NotFoundError: Event does not exist.
        AuthorizationError: Requester does not manage the event.
        CapacityBelowSold: New capacity is lower than tickets already sold.
    """
    changes = {key: _CLEANERS[key](fields[key]) for key in UPDATABLE_FIELDS if key in fields}
    if not changes:
        raise ValidationError("No valid fields provided")

    with get_db(write=True) as db:
        event = lock_event(db, event_id)
        if not delegation.is_event_manager(db, event, requester_id):
            raise AuthorizationError("You are not authorized to update this event")

        if "capacity" in changes and changes["capacity"] < event.tickets_sold:
            raise CapacityBelowSold(
                f"Capacity cannot be lower than the {event.tickets_sold} ticket(s) already sold"
            )

        for key, value in changes.items():
            setattr(event, key, value)
        db.flush()
        updated = event_to_dict(db, event)

    logging.info(f"[Events] User {requester_id} updated event {event_id}: {sorted(changes)}")
    return updated


def delete_event(event_id: int, requester_id: int) -> Dict[str, Any]:
    """
    Delete an event together with its registrations and delegations.

    Every released co-organizer has their role re-derived in the same
    transaction, so no role grant outlives the event.

    Raises:
        NotFoundError: Event does not exist.
        AuthorizationError: Requester is not the event's creator.
    """
    with get_db(write=True) as db:
        event = lock_event(db, event_id)
        if event.created_by != requester_id:
            raise AuthorizationError("Only the event creator can delete this event")

        released = delegation.release_all(db, event_id)
        db.execute(
            delete(Registration)
            .where(Registration.event_id == event_id)
            .execution_options(synchronize_session=False)
        )
        db.delete(event)

    logging.info(
        f"[Events] User {requester_id} deleted event {event_id}; "
        f"released co-organizers {released}"
    )
    return {"event_id": event_id, "released_co_organizers": released}


# --- TICKETS ---
def purchase_ticket(event_id: int, user_id: int) -> Dict[str, Any]:
    """
    Claim one ticket for `user_id`.

    The increment only applies while tickets_sold < capacity, and the
    confirmed registration is inserted in the same transaction.

    Returns:
        dict: The confirmed registration.

    Raises:
        NotFoundError: Event does not exist.
        SoldOut: No capacity left.
        AlreadyRegistered: User already holds a confirmed ticket for the event.
    """
    with get_db(write=True) as db:
        claimed = db.execute(
            update(Event)
            .where(Event.event_id == event_id, Event.tickets_sold < Event.capacity)
            .values(tickets_sold=Event.tickets_sold + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount

        if not claimed:
            if db.get(Event, event_id) is None:
                raise NotFoundError("Event not found")
            raise SoldOut()

        existing = db.scalar(
            select(Registration.registration_id).where(
                Registration.event_id == event_id,
                Registration.user_id == user_id,
                Registration.status == RegistrationStatus.CONFIRMED.value,
            )
        )
        if existing is not None:
            raise AlreadyRegistered()

        registration = Registration(
            event_id=event_id,
            user_id=user_id,
            status=RegistrationStatus.CONFIRMED.value,
            confirmed_at=utcnow(),
        )
        db.add(registration)
        try:
            db.flush()
        except IntegrityError:
            raise AlreadyRegistered()

        result = registration_to_dict(registration)

    logging.info(f"[Events] User {user_id} purchased a ticket for event {event_id}")
    return result


def cancel_ticket(event_id: int, user_id: int) -> Dict[str, Any]:
    """
    Cancel `user_id`'s confirmed ticket and give the seat back.

    Returns:
        dict: The cancelled registration.

    Raises:
        NotFoundError: Event does not exist.
        NotRegistered: No confirmed registration for this user and event.
    """
    with get_db(write=True) as db:
        # A confirmed registration implies tickets_sold > 0
        released = db.execute(
            update(Event)
            .where(Event.event_id == event_id, Event.tickets_sold > 0)
            .values(tickets_sold=Event.tickets_sold - 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount

        registration = db.scalar(
            select(Registration).where(
                Registration.event_id == event_id,
                Registration.user_id == user_id,
                Registration.status == RegistrationStatus.CONFIRMED.value,
            )
        )

        if not released or registration is None:
            if db.get(Event, event_id) is None:
                raise NotFoundError("Event not found")
            raise NotRegistered()

        registration.status = RegistrationStatus.CANCELLED.value
        registration.cancelled_at = utcnow()
        db.flush()
        result = registration_to_dict(registration)

    logging.info(f"[Events] User {user_id} cancelled their ticket for event {event_id}")
    return result


# --- REPORTS ---
def list_my_tickets(user_id: int) -> List[Dict[str, Any]]:
    """Confirmed registrations of a user, with the event's public fields."""
    with get_db() as db:
        rows = db.execute(
            select(Registration, Event)
            .join(Event, Event.event_id == Registration.event_id)
            .where(
                Registration.user_id == user_id,
                Registration.status == RegistrationStatus.CONFIRMED.value,
            )
            .order_by(Event.date, Event.event_id)
        ).all()

        return [
            {
                "registration_id": registration.registration_id,
                "confirmed_at": _iso(registration.confirmed_at),
                "event": event_to_dict(db, event, Visibility.PUBLIC),
            }
            for registration, event in rows
        ]


def sales_report(organizer_id: int) -> List[Dict[str, Any]]:
    """Tickets sold and revenue for every event the organizer created."""
    with get_db() as db:
        events = db.scalars(
            select(Event).where(Event.created_by == organizer_id).order_by(Event.date, Event.event_id)
        ).all()

        return [
            {
                "event_id": event.event_id,
                "event": event.name,
                "tickets_sold": event.tickets_sold,
                "capacity": event.capacity,
                "revenue": round(event.tickets_sold * event.price, 2),
            }
            for event in events
        ]


def list_attendees(event_id: int, requester_id: int) -> List[Dict[str, Any]]:
    """
    Confirmed attendees of an event. Only its creator and co-organizers may look.

    Raises:
        NotFoundError: Event does not exist.
        AuthorizationError: Requester does not manage the event.
    """
    with get_db() as db:
        event = db.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        if not delegation.is_event_manager(db, event, requester_id):
            raise AuthorizationError("You are not authorized to view attendees for this event")

        rows = db.execute(
            select(Registration, User.username)
            .join(User, User.user_id == Registration.user_id)
            .where(
                Registration.event_id == event_id,
                Registration.status == RegistrationStatus.CONFIRMED.value,
            )
            .order_by(Registration.confirmed_at, Registration.registration_id)
        ).all()

        return [
            {
                "user_id": registration.user_id,
                "username": username,
                "confirmed_at": _iso(registration.confirmed_at),
            }
            for registration, username in rows
        ]
