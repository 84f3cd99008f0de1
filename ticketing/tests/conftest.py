import os

# Settings are read at import time, so they must be in place before any ticketing import
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH_MEMORY_KIB", "8192")

import pytest

from ticketing.auth_service import credentials
from ticketing.auth_service.permissions import Role
from ticketing.auth_service.tokens import create_token
from ticketing.database.db_connection import configure_engine, init_db
from ticketing.gateway.server import create_app


@pytest.fixture(autouse=True)
def database(tmp_path):
    """
    Fresh SQLite file per test. A file (not :memory:) so that every
    thread's connection sees the same data.
    """
    engine = configure_engine(f"sqlite:///{tmp_path / 'ticketing_test.db'}")
    init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def app(database):
    app = create_app({"TESTING": True})
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user():
    """
    Factory creating a user and returning it with a session token.
    """
    counter = {"n": 0}

    def _make(role=Role.ATTENDEE, username=None, password="password123"):
        counter["n"] += 1
        username = username or f"user{counter['n']:03d}"
        signup_role = Role.ORGANIZER if Role(role) is Role.ORGANIZER else Role.ATTENDEE
        user = credentials.create_user(username, password, signup_role)
        user["token"] = create_token(user["user_id"], user["username"], user["role"])
        user["password"] = password
        return user

    return _make


@pytest.fixture
def organizer(make_user):
    return make_user(Role.ORGANIZER, username="organizer")


@pytest.fixture
def attendee(make_user):
    return make_user(Role.ATTENDEE, username="attendee")


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


EVENT_PAYLOAD = {
    "name": "Spring Concert",
    "description": "Open-air concert on the main lawn",
    "date": "2030-05-01T19:00:00Z",
    "price": 25.0,
    "capacity": 100,
}
