"""File hierarchy manager: creation, listing, lookup and visibility of entries.

Every hierarchy check is made against the store at write time; parent lookups
are never cached between requests.
"""
import base64
import binascii
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import AuthenticationError, NotFoundError, StorageError, ValidationError
from ..core.parents import Folder, ParentRef, is_valid_id, parent_to_column, parse_parent_ref
from ..db import models, schemas
from . import storage
from .queue import BaseQueue

logger = logging.getLogger(__name__)

PAGE_SIZE = 20


def _load_parent(db: Session, user_id: str, parent: Folder) -> Optional[models.FileEntry]:
    if not is_valid_id(parent.id):
        return None
    return db.query(models.FileEntry).filter_by(id=parent.id, user_id=user_id).first()


def validate_create(db: Session, user_id: str, params: schemas.FileCreate) -> ParentRef:
    """Checks run in order and stop at the first failure."""
    if not params.name:
        raise ValidationError("Missing name")
    if not params.type or params.type not in models.FILE_TYPES:
        raise ValidationError("Missing type")
    if not params.data and params.type != "folder":
        raise ValidationError("Missing data")

    parent = parse_parent_ref(params.parentId)
    if isinstance(parent, Folder):
        parent_entry = _load_parent(db, user_id, parent)
        if parent_entry is None:
            raise ValidationError("Parent not found")
        if parent_entry.type != "folder":
            raise ValidationError("Parent is not a folder")
    return parent


def _decode_payload(data: str) -> bytes:
    try:
        return base64.b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Invalid data") from e


def create(
    db: Session,
    user_id: str,
    params: schemas.FileCreate,
    storage_root: str,
    file_queue: Optional[BaseQueue] = None,
) -> schemas.FileEntry:
    parent = validate_create(db, user_id, params)

    item = models.FileEntry(
        user_id=user_id,
        name=params.name,
        type=params.type,
        is_public=bool(params.isPublic),
        parent_id=parent_to_column(parent),
    )

    # Step 1: content goes to disk before any metadata row exists
    if params.type != "folder":
        contents = _decode_payload(params.data)
        local_path = storage.allocate_path(storage_root)
        try:
            storage.write_file(storage_root, local_path, contents)
        except OSError as e:
            raise StorageError(str(e)) from e
        item.local_path = local_path

    # Step 2: persist the metadata row
    try:
        db.add(item)
        db.commit()
    except Exception:
        db.rollback()
        if item.local_path:
            storage.delete_file(item.local_path)
        raise
    db.refresh(item)
    logger.info("Created %s %s for user %s", item.type, item.id, user_id)

    # Step 3: thumbnails are only requested once the row is committed
    if item.type == "image" and file_queue is not None:
        enqueue_thumbnails(file_queue, item)

    return schemas.FileEntry.from_model(item)


def enqueue_thumbnails(file_queue: BaseQueue, item: models.FileEntry) -> None:
    # Fire and forget: the upload response never depends on the queue
    try:
        file_queue.add({"fileId": item.id, "userId": item.user_id})
    except Exception as e:
        logger.error("Failed to enqueue thumbnail job for %s: %s", item.id, e)


def coerce_page(page: Any) -> int:
    try:
        value = int(page)
    except (TypeError, ValueError):
        return 0
    return max(value, 0)


def list_by_parent(
    db: Session,
    user_id: str,
    parent_id: Any = None,
    page: Any = 0,
    page_size: int = PAGE_SIZE,
) -> List[schemas.FileEntry]:
    """Entries under a parent, one window of ``page_size`` per page.

    Ordering is whatever the store returns; no sort key is guaranteed.
    """
    parent = parse_parent_ref(parent_id)
    page = coerce_page(page)

    if isinstance(parent, Folder):
        if not is_valid_id(parent.id):
            raise AuthenticationError()
        folder = _load_parent(db, user_id, parent)
        if folder is None or folder.type != "folder":
            return []

    query = db.query(models.FileEntry).filter(models.FileEntry.user_id == user_id)
    if isinstance(parent, Folder):
        query = query.filter(models.FileEntry.parent_id == parent.id)
    else:
        query = query.filter(models.FileEntry.parent_id.is_(None))

    items = query.offset(page * page_size).limit(page_size).all()
    return [schemas.FileEntry.from_model(item) for item in items]


def fetch_one(db: Session, user_id: str, file_id: str) -> schemas.FileEntry:
    # Invalid id and someone else's file look the same to the caller
    if not is_valid_id(file_id) or not is_valid_id(user_id):
        raise NotFoundError()
    item = db.query(models.FileEntry).filter_by(id=file_id, user_id=user_id).first()
    if item is None:
        raise NotFoundError()
    return schemas.FileEntry.from_model(item)


def set_visibility(db: Session, user_id: Optional[str], file_id: str, is_public: bool) -> schemas.FileEntry:
    if not is_valid_id(file_id) or not is_valid_id(user_id):
        raise AuthenticationError()
    user = db.query(models.User).filter_by(id=user_id).first()
    if user is None:
        raise AuthenticationError()

    scope = {"id": file_id, "user_id": user_id}
    if db.query(models.FileEntry).filter_by(**scope).first() is None:
        raise NotFoundError()

    # Single update-by-filter; concurrent flips resolve last-write-wins
    updated = db.query(models.FileEntry).filter_by(**scope).update(
        {models.FileEntry.is_public: is_public}, synchronize_session=False
    )
    db.commit()
    if not updated:
        raise NotFoundError()

    item = db.query(models.FileEntry).filter_by(**scope).first()
    return schemas.FileEntry.from_model(item)


def count_files(db: Session) -> int:
    return db.query(models.FileEntry).count()

