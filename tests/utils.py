import base64
import io

from PIL import Image

from files_manager.db import models

TEST_PASSWORD = "toto1234!"


class MemorySessionStore:
    """Session store double; TTLs are recorded, not enforced."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.connected = False

    def connect(self):
        self.connected = True

    def is_alive(self):
        return self.connected

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, duration):
        self.values[key] = value
        self.ttls[key] = duration

    def delete(self, key):
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    def close(self):
        self.connected = False


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def png_bytes(width=800, height=600, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def count_rows(database, model):
    db = database.session()
    try:
        return db.query(model).count()
    finally:
        db.close()


def get_row(database, file_id):
    db = database.session()
    try:
        return db.query(models.FileEntry).filter_by(id=file_id).first()
    finally:
        db.close()
