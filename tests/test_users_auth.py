import base64

from fastapi import status

from files_manager.core.security import token_key
from files_manager.db import models
from files_manager.services.queue import JobState
from tests.utils import TEST_PASSWORD, count_rows


def basic(email, password):
    return {"Authorization": "Basic " + base64.b64encode(f"{email}:{password}".encode()).decode()}


def test_create_user(client, database, user_queue):
    response = client.post("/users", json={"email": "bob@dylan.com", "password": "toto1234!"})

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["email"] == "bob@dylan.com"
    assert set(body) == {"id", "email"}
    assert count_rows(database, models.User) == 1

    job = user_queue.get(timeout=0)
    assert job.data == {"userId": body["id"]}


def test_create_user_missing_fields(client):
    missing_password = client.post("/users", json={"email": "bob@dylan.com"})
    missing_email = client.post("/users", json={"password": "toto1234!"})

    assert missing_password.status_code == status.HTTP_400_BAD_REQUEST
    assert missing_password.json() == {"error": "Missing password"}
    assert missing_email.json() == {"error": "Missing email"}


def test_create_user_twice(client, user_queue):
    client.post("/users", json={"email": "bob@dylan.com", "password": "toto1234!"})
    response = client.post("/users", json={"email": "bob@dylan.com", "password": "other"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Already exist"}
    assert user_queue.count(JobState.ENQUEUED) == 1


def test_connect_me_disconnect(client, owner, session_store):
    user_id, _ = owner

    connected = client.get("/connect", headers=basic("owner@example.com", TEST_PASSWORD))
    assert connected.status_code == status.HTTP_200_OK
    token = connected.json()["token"]
    assert session_store.get(token_key(token)) == user_id
    assert session_store.ttls[token_key(token)] == 86400

    me = client.get("/users/me", headers={"X-Token": token})
    assert me.json() == {"id": user_id, "email": "owner@example.com"}

    disconnected = client.get("/disconnect", headers={"X-Token": token})
    assert disconnected.status_code == status.HTTP_204_NO_CONTENT
    assert session_store.get(token_key(token)) is None

    assert client.get("/users/me", headers={"X-Token": token}).status_code == status.HTTP_401_UNAUTHORIZED


def test_connect_rejects_bad_credentials(client, owner):
    wrong_password = client.get("/connect", headers=basic("owner@example.com", "wrong"))
    unknown_user = client.get("/connect", headers=basic("nobody@example.com", TEST_PASSWORD))
    no_header = client.get("/connect")

    for response in (wrong_password, unknown_user, no_header):
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Unauthorized"}


def test_disconnect_unknown_token(client):
    response = client.get("/disconnect", headers={"X-Token": "nope"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_bearer_token_is_accepted(client, owner):
    user_id, headers = owner
    bearer = {"Authorization": f"Bearer {headers['X-Token']}"}

    assert client.get("/users/me", headers=bearer).json()["id"] == user_id


def test_session_for_deleted_user_is_unauthorized(client, session_store):
    session_store.set(token_key("ghost"), "f" * 32, 86400)

    response = client.get("/users/me", headers={"X-Token": "ghost"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Unauthorized"}


def test_status(client):
    assert client.get("/status").json() == {"redis": True, "db": True}


def test_stats(client, owner, upload):
    _, headers = owner
    upload(headers, name="F", type="folder")
    upload(headers, name="a.txt", type="file", data="aGVsbG8=")

    assert client.get("/stats").json() == {"users": 1, "files": 2}


def test_disconnect_requires_existing_user(client, session_store):
    session_store.set(token_key("ghost"), "f" * 32, 86400)

    response = client.get("/disconnect", headers={"X-Token": "ghost"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Unauthorized"}
    assert session_store.get(token_key("ghost")) == "f" * 32
