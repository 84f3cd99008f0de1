"""
Table definitions for users, events, co-organizer delegations,
registrations and revoked session tokens.

The invariants the services depend on are also enforced here:
- tickets_sold stays within [0, capacity] (check constraint)
- one confirmed registration per (event, user) (partial unique index)
- a user appears at most once in an event's co-organizer set (composite PK)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
    update,
)
from sqlalchemy.orm import Session

from ticketing.auth_service.permissions import Role
from ticketing.database.db_connection import Base
from ticketing.errors import NotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to UTC. Naive values are taken to be UTC already,
    which is how SQLite hands back the timestamps stored here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RegistrationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True)
    username = Column(String(30), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    hash_cost = Column(Integer, nullable=False)
    role = Column(String(20), nullable=False, default=Role.ATTENDEE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.user_id}, username={self.username}, role={self.role})>"


class Event(Base):
    __tablename__ = "events"

    event_id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    capacity = Column(Integer, nullable=False)
    tickets_sold = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="check_event_capacity_positive"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        CheckConstraint(
            "tickets_sold >= 0 AND tickets_sold <= capacity",
            name="check_event_tickets_sold_within_capacity",
        ),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.event_id}, name={self.name}, sold={self.tickets_sold}/{self.capacity})>"


class EventCoOrganizer(Base):
    __tablename__ = "event_coorganizers"

    event_id = Column(Integer, ForeignKey("events.event_id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), primary_key=True, index=True)
    assigned_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Registration(Base):
    __tablename__ = "registrations"

    registration_id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.CONFIRMED.value)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_registration_status"),
        # Cancelled rows may pile up; only one live claim per pair
        Index(
            "uq_registrations_confirmed_pair",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'confirmed'"),
            postgresql_where=text("status = 'confirmed'"),
        ),
    )


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    token = Column(Text, primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


def lock_event(db: Session, event_id: int) -> Event:
    """
    Take the write lock on an event row and return the event.

    The touch on updated_at is the first write of the transaction, so
    concurrent units of work on the same event queue behind it.

    Raises:
        NotFoundError: No event with that id.
    """
    touched = db.execute(
        update(Event)
        .where(Event.event_id == event_id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if not touched:
        raise NotFoundError("Event not found")
    return db.get(Event, event_id, populate_existing=True)
