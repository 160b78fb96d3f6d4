import logging
import mimetypes
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import DomainError, NotFoundError
from ..core.parents import is_valid_id
from ..db import models
from . import storage

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def can_read(item: models.FileEntry, user_id: Optional[str]) -> bool:
    """Public entries are readable by anyone, private ones only by their owner."""
    if item.is_public:
        return True
    return user_id is not None and item.user_id == user_id


def guess_mime_type(name: str) -> str:
    # From the name only; contents are never sniffed
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def read_content(item: models.FileEntry, size: Optional[int] = None) -> Tuple[bytes, str]:
    if item.type == "folder":
        raise DomainError("A folder doesn't have content")
    if not item.local_path:
        raise NotFoundError()
    path = storage.variant_path(item.local_path, size)
    try:
        data = storage.read_file(path)
    except OSError as e:
        # A variant not generated yet is reported like a missing file
        logger.debug("Content unavailable at %s: %s", path, e)
        raise NotFoundError()
    return data, guess_mime_type(item.name)


def get_file_data(
    db: Session,
    file_id: str,
    user_id: Optional[str],
    size: Optional[int] = None,
) -> Tuple[bytes, str]:
    if not is_valid_id(file_id):
        raise NotFoundError()
    item = db.query(models.FileEntry).filter_by(id=file_id).first()
    if item is None or not can_read(item, user_id):
        raise NotFoundError()
    return read_content(item, size)
