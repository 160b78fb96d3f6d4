"""Shared fixtures: temporary SQLite store, on-disk queues and an in-memory session store."""
import uuid

import pytest
from fastapi.testclient import TestClient

from files_manager.core.config import settings
from files_manager.core.security import get_password_hash, token_key
from files_manager.db import models
from files_manager.db.database import Database
from files_manager.main import create_app
from files_manager.services.queue import FILE_QUEUE, USER_QUEUE, LocalQueue
from tests.utils import TEST_PASSWORD, MemorySessionStore


@pytest.fixture
def storage_root(tmp_path, monkeypatch):
    root = tmp_path / "files"
    monkeypatch.setattr(settings, "FOLDER_PATH", str(root))
    return root


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def file_queue(tmp_path):
    return LocalQueue(FILE_QUEUE, str(tmp_path / "queue"), attempts=2, backoff_seconds=0, poll_interval=0.01)


@pytest.fixture
def user_queue(tmp_path):
    return LocalQueue(USER_QUEUE, str(tmp_path / "queue"), attempts=2, backoff_seconds=0, poll_interval=0.01)


@pytest.fixture
def client(database, session_store, file_queue, user_queue, storage_root):
    app = create_app(
        database=database,
        session_store=session_store,
        file_queue=file_queue,
        user_queue=user_queue,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_user(database, session_store):
    """Insert a user and open a session for it; returns ``(user_id, headers)``."""

    def _create(email="bob@dylan.com"):
        db = database.session()
        try:
            user = models.User(email=email, hashed_password=get_password_hash(TEST_PASSWORD))
            db.add(user)
            db.commit()
            db.refresh(user)
            user_id = user.id
        finally:
            db.close()
        token = str(uuid.uuid4())
        session_store.set(token_key(token), user_id, settings.SESSION_TTL_SECONDS)
        return user_id, {"X-Token": token}

    return _create


@pytest.fixture
def owner(create_user):
    return create_user("owner@example.com")


@pytest.fixture
def stranger(create_user):
    return create_user("stranger@example.com")


@pytest.fixture
def upload(client):
    """POST /files with the given headers and body, returning the response."""

    def _upload(headers, **body):
        return client.post("/files", json=body, headers=headers)

    return _upload

