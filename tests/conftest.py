import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from chatsync.core.auth import Identity
from chatsync.core.config import settings
from chatsync.core.http import get_client_factory
from chatsync.db import models  # noqa: F401
from chatsync.db.database import enforce_foreign_keys, get_session
from chatsync.services.mutators import run_mutator
from main import app

ALICE = Identity(user_id="alice")
BOB = Identity(user_id="bob")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enforce_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_token():
    def _make(**claims):
        return jwt.encode(claims, settings.AUTH_SECRET, algorithm=settings.AUTH_ALGORITHM)
    return _make


@pytest.fixture
def auth_header(make_token):
    def _header(user_id: str) -> dict:
        return {"Authorization": f"Bearer {make_token(sub=user_id)}"}
    return _header


class OutboundRecorder:
    """Stands in for every outbound HTTP service; records what was sent."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: httpx.Response(500, json={"error": "no handler"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def outbound():
    recorder = OutboundRecorder()

    def factory():
        return httpx.AsyncClient(transport=httpx.MockTransport(recorder))

    app.dependency_overrides[get_client_factory] = lambda: factory
    yield recorder
    app.dependency_overrides.pop(get_client_factory, None)


def message_args(message_id: str, **overrides) -> dict:
    args = {
        "id": message_id,
        "chat_id": "chat1",
        "room_id": "room1",
        "sender_id": "alice",
        "body": f"body of {message_id}",
        "timestamp": 1_700_000_000_000,
        "model": "",
        "parent_id": "",
        "attachment_id": "",
        "web_search_id": "",
        "image_id": "",
        "stream_state": "",
        "is_complete": True,
    }
    args.update(overrides)
    return args


@pytest.fixture
def room(session):
    """Room `room1` owned by alice, with alice as member and chat `chat1`."""
    run_mutator(session, "room.create", ALICE, {
        "id": "room1", "name": "General", "created_at": 1, "owner_id": "alice", "is_public": True,
    })
    run_mutator(session, "roomMember.join", ALICE, {"room_id": "room1", "user_id": "alice", "joined_at": 1})
    run_mutator(session, "chat.create", ALICE, {
        "id": "chat1", "title": "General", "room_id": "room1", "owner_id": "alice", "created_at": 1,
    })
    return "room1"
