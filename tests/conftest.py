import os

# must be set before any icebreakers module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_VERIFY_MODE"] = "hs256"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "INFO"

import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from icebreakers.core.db import get_db, get_session_factory
from icebreakers.core.init_db import init_db
from icebreakers.models.profile import Profile
from icebreakers.services.push_gateway import get_push_gateway


class RecordingGateway:
    """Stands in for Expo; remembers every send."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, tokens, title, body, data=None):
        self.sent.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        return [self.ok]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def client(session_factory, gateway):
    from icebreakers.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_push_gateway] = lambda: gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_token(user_id: str, secret: str = "test-secret") -> str:
    return jwt.encode(
        {"sub": user_id, "exp": int(time.time()) + 3600},
        secret,
        algorithm="HS256",
    )


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def make_profile(db, user_id: str, **fields) -> Profile:
    defaults = {
        "display_name": user_id.upper(),
        "field_of_study": "engineering",
        "hobbies": "coffee, music",
        "photo_ref": f"photos/{user_id}.jpg",
        "ice_breaker_one": "favorite food?",
        "ice_breaker_two": "favorite show?",
        "ice_breaker_three": "best study tip?",
        "sharing_enabled": True,
        "permission_status": "while_in_use",
    }
    defaults.update(fields)
    profile = Profile(user_id=user_id, **defaults)
    db.add(profile)
    db.commit()
    return profile
