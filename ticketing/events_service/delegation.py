"""
Co-organizer delegation.

Adding or removing a co-organizer changes two records: the event's
co-organizer set and the target user's role. Both happen inside the same
transaction, after the event row has been locked, so concurrent delegation
requests on one event run one after the other.

A user's role is derived from the delegations they hold rather than
overwritten: they stay co_organizer while at least one event still lists
them, and fall back to attendee when the last one goes away. Organizers
keep their own role throughout.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ticketing.auth_service.permissions import Role
from ticketing.database.db_connection import get_db
from ticketing.database.models import Event, EventCoOrganizer, User, lock_event, utcnow
from ticketing.errors import (
    AlreadyCoOrganizer,
    AuthorizationError,
    NotCoOrganizer,
    NotFoundError,
    ValidationError,
)

# Roles whose value follows the user's delegations
_DERIVED_ROLES = (Role.ATTENDEE.value, Role.CO_ORGANIZER.value)


def coorganizer_ids(db: Session, event_id: int) -> List[int]:
    return list(db.scalars(
        select(EventCoOrganizer.user_id)
        .where(EventCoOrganizer.event_id == event_id)
        .order_by(EventCoOrganizer.assigned_at, EventCoOrganizer.user_id)
    ))


def is_coorganizer(db: Session, event_id: int, user_id: int) -> bool:
    found = db.scalar(
        select(EventCoOrganizer.user_id).where(
            EventCoOrganizer.event_id == event_id,
            EventCoOrganizer.user_id == user_id,
        )
    )
    return found is not None


def is_event_manager(db: Session, event: Event, user_id: int) -> bool:
    """True for the event's creator and its co-organizers."""
    return event.created_by == user_id or is_coorganizer(db, event.event_id, user_id)


def settle_role(db: Session, user_id: int) -> str:
    """
    Recompute a user's role from the delegations they currently hold.

    Returns:
        str: The user's role after the update.
    """
    # Row lock on the user: concurrent delegation changes on different events
    # derive this user's role one after the other
    user = db.scalar(
        select(User)
        .where(User.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if user.role not in _DERIVED_ROLES:
        return user.role

    held = db.scalar(
        select(func.count()).select_from(EventCoOrganizer).where(EventCoOrganizer.user_id == user_id)
    )
    user.role = Role.CO_ORGANIZER.value if held else Role.ATTENDEE.value
    db.flush()
    return user.role


def release_all(db: Session, event_id: int) -> List[int]:
    """
    Drop every delegation on an event and re-derive the released users' roles.

    Runs inside the caller's transaction (event deletion).

    Returns:
        list: Ids of the users that were released.
    """
    released = coorganizer_ids(db, event_id)
    db.execute(
        delete(EventCoOrganizer)
        .where(EventCoOrganizer.event_id == event_id)
        .execution_options(synchronize_session=False)
    )
    # Ascending id order so concurrent deletes lock users in the same order
    for user_id in sorted(released):
        settle_role(db, user_id)
    return released


def _require_manager(db: Session, event: Event, requester_id: int, verb: str) -> None:
    if not is_event_manager(db, event, requester_id):
        raise AuthorizationError(f"You are not authorized to {verb} co-organizers for this event")


def _require_user(db: Session, user_id: Any) -> User:
    user = db.get(User, user_id) if isinstance(user_id, int) and not isinstance(user_id, bool) else None
    if user is None:
        raise NotFoundError("Co-organizer not found")
    return user


def _delegation_dict(db: Session, event_id: int, user: User) -> Dict[str, Any]:
    return {
        "event_id": event_id,
        "user_id": user.user_id,
        "role": user.role,
        "co_organizers": coorganizer_ids(db, event_id),
    }


def assign_coorganizer(event_id: int, requester_id: int, target_user_id: int) -> Dict[str, Any]:
    """
    Make `target_user_id` a co-organizer of the event.

    Args:
        event_id (int): Event to delegate.
        requester_id (int): Must be the creator or an existing co-organizer.
        target_user_id (int): User receiving the delegation.

    Returns:
        dict: event_id, user_id, the target's new role and the co-organizer list.

    Raises:
        NotFoundError: Event or target user does not exist.
        AuthorizationError: Requester does not manage the event.
        ValidationError: Target is the event's creator.
        AlreadyCoOrganizer: Target is already in the set.
    """
    with get_db(write=True) as db:
        event = lock_event(db, event_id)
        _require_manager(db, event, requester_id, "assign")

        target = _require_user(db, target_user_id)
        if target.user_id == event.created_by:
            raise ValidationError("The event creator cannot be a co-organizer of their own event")
        if is_coorganizer(db, event_id, target.user_id):
            raise AlreadyCoOrganizer()

        db.add(EventCoOrganizer(
            event_id=event_id,
            user_id=target.user_id,
            assigned_by=requester_id,
            assigned_at=utcnow(),
        ))
        try:
            db.flush()
        except IntegrityError:
            raise AlreadyCoOrganizer()

        settle_role(db, target.user_id)
        result = _delegation_dict(db, event_id, target)

    logging.info(
        f"[Delegation] User {requester_id} assigned user {target_user_id} "
        f"as co-organizer of event {event_id}"
    )
    return result


def remove_coorganizer(event_id: int, requester_id: int, target_user_id: int) -> Dict[str, Any]:
    """
    Withdraw `target_user_id`'s delegation on the event.

    Same authorization rule as assign_coorganizer().

    Raises:
        NotFoundError: Event or target user does not exist.
        AuthorizationError: Requester does not manage the event.
        NotCoOrganizer: Target is not in the set.
    """
    with get_db(write=True) as db:
        event = lock_event(db, event_id)
        _require_manager(db, event, requester_id, "remove")

        target = _require_user(db, target_user_id)
        removed = db.execute(
            delete(EventCoOrganizer)
            .where(
                EventCoOrganizer.event_id == event_id,
                EventCoOrganizer.user_id == target.user_id,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if not removed:
            raise NotCoOrganizer()

        settle_role(db, target.user_id)
        result = _delegation_dict(db, event_id, target)

    logging.info(
        f"[Delegation] User {requester_id} removed user {target_user_id} "
        f"as co-organizer of event {event_id}"
    )
    return result
