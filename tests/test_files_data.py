import io
import os

import pytest
from fastapi import status
from PIL import Image

from files_manager.services.queue import FILE_QUEUE
from files_manager.worker import Worker
from tests.utils import b64, get_row, png_bytes


@pytest.fixture
def private_file(owner, upload):
    _, headers = owner
    return upload(headers, name="notes.txt", type="file", data=b64(b"private notes")).json()


@pytest.fixture
def public_file(owner, upload):
    _, headers = owner
    return upload(headers, name="notes.txt", type="file", data=b64(b"public notes"), isPublic=True).json()


def test_owner_reads_private_file(client, owner, private_file):
    _, headers = owner
    response = client.get(f"/files/{private_file['id']}/data", headers=headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.content == b"private notes"
    assert response.headers["content-type"].startswith("text/plain")


def test_private_file_hidden_from_others(client, stranger, private_file):
    _, stranger_headers = stranger

    assert client.get(f"/files/{private_file['id']}/data", headers=stranger_headers).status_code == 404
    response = client.get(f"/files/{private_file['id']}/data")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Not found"}


def test_public_file_readable_by_anyone(client, stranger, public_file):
    _, stranger_headers = stranger

    assert client.get(f"/files/{public_file['id']}/data").content == b"public notes"
    assert client.get(f"/files/{public_file['id']}/data", headers=stranger_headers).content == b"public notes"


def test_unpublished_file_becomes_hidden(client, owner, public_file):
    _, headers = owner
    client.put(f"/files/{public_file['id']}/unpublish", headers=headers)

    assert client.get(f"/files/{public_file['id']}/data").status_code == 404


def test_folder_has_no_content(client, owner, upload):
    _, headers = owner
    folder = upload(headers, name="F", type="folder").json()

    response = client.get(f"/files/{folder['id']}/data", headers=headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "A folder doesn't have content"}


def test_unknown_and_invalid_ids(client, owner):
    _, headers = owner

    assert client.get("/files/zzz/data", headers=headers).status_code == 404
    assert client.get("/files/0123456789abcdef0123456789abcdef/data", headers=headers).status_code == 404


def test_missing_content_on_disk(client, owner, private_file, database):
    _, headers = owner
    os.remove(get_row(database, private_file["id"]).local_path)

    response = client.get(f"/files/{private_file['id']}/data", headers=headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_mime_type_falls_back_to_octet_stream(client, owner, upload):
    _, headers = owner
    created = upload(headers, name="blob", type="file", data=b64(b"\x00\x01")).json()

    response = client.get(f"/files/{created['id']}/data", headers=headers)

    assert response.headers["content-type"] == "application/octet-stream"


@pytest.mark.parametrize("size", ["12", "abc", "0"])
def test_unsupported_size(client, owner, private_file, size):
    _, headers = owner
    response = client.get(f"/files/{private_file['id']}/data", params={"size": size}, headers=headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid size"}


def test_thumbnail_available_after_worker_runs(client, owner, upload, database, file_queue):
    _, headers = owner
    image = upload(headers, name="photo.png", type="image", data=b64(png_bytes(800, 400))).json()
    url = f"/files/{image['id']}/data"

    assert client.get(url, params={"size": 100}, headers=headers).status_code == 404

    worker = Worker(database, {FILE_QUEUE: file_queue})
    assert worker.drain() == 1

    response = client.get(url, params={"size": 100}, headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"] == "image/png"
    with Image.open(io.BytesIO(response.content)) as thumbnail:
        assert thumbnail.size == (100, 50)

    original = client.get(url, headers=headers)
    with Image.open(io.BytesIO(original.content)) as full:
        assert full.size == (800, 400)
