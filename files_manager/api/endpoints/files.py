from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.exceptions import ValidationError
from ...core.security import get_current_user, get_optional_user_id
from ...db import models, schemas
from ...db.database import get_db
from ...services import access, file_service
from ...services.queue import BaseQueue, get_file_queue
from ...services.thumbnails import THUMBNAIL_WIDTHS

router = APIRouter()


@router.post("", response_model=schemas.FileEntry, status_code=201)
def upload_file(
    params: schemas.FileCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    file_queue: BaseQueue = Depends(get_file_queue),
):
    return file_service.create(db, current_user.id, params, settings.FOLDER_PATH, file_queue)


@router.get("", response_model=List[schemas.FileEntry])
def get_index(
    parentId: Optional[str] = None,
    page: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return file_service.list_by_parent(db, current_user.id, parentId, page, settings.PAGE_SIZE)


@router.get("/{file_id}", response_model=schemas.FileEntry)
def get_show(
    file_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return file_service.fetch_one(db, current_user.id, file_id)


@router.put("/{file_id}/publish", response_model=schemas.FileEntry)
def put_publish(
    file_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    return file_service.set_visibility(db, user_id, file_id, True)


@router.put("/{file_id}/unpublish", response_model=schemas.FileEntry)
def put_unpublish(
    file_id: str,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    return file_service.set_visibility(db, user_id, file_id, False)


@router.get("/{file_id}/data")
def get_file(
    file_id: str,
    size: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    width = None
    if size:
        if not size.isdigit() or int(size) not in THUMBNAIL_WIDTHS:
            raise ValidationError("Invalid size")
        width = int(size)

    data, mime_type = access.get_file_data(db, file_id, user_id, width)
    return Response(content=data, media_type=mime_type)
