import os
import uuid
from typing import Callable, Optional


def allocate_path(storage_root: str) -> str:
    # Never derived from the client supplied name
    return os.path.join(storage_root, str(uuid.uuid4()))


def variant_path(local_path: str, size: Optional[int] = None) -> str:
    if size:
        return f"{local_path}_{size}"
    return local_path


def write_file(storage_root: str, path: str, contents: bytes) -> None:
    os.makedirs(storage_root, exist_ok=True)
    write_file_atomic(path, contents)


def write_file_atomic(
    path: str,
    contents: bytes,
    publish: Optional[Callable[[str, str], bool]] = None,
) -> bool:
    """Write to a temporary sibling then rename, so readers never see a partial file.

    ``publish(tmp_path, path)`` replaces the plain rename when given; returning
    False discards the write. The temporary file never outlives the call.
    """
    tmp_path = f"{path}.{uuid.uuid4().hex}.tmp"
    try:
        with open(tmp_path, "wb") as f:
            f.write(contents)
        if publish is None:
            os.replace(tmp_path, path)
            return True
        return publish(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def delete_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
