import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.exceptions import ValidationError
from ...core.security import get_current_user, get_password_hash
from ...db import models, schemas
from ...db.database import get_db
from ...services.queue import BaseQueue, get_user_queue

logger = logging.getLogger(__name__)

router = APIRouter()


def get_user(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


@router.post("", response_model=schemas.User, status_code=201)
def post_new(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
    user_queue: BaseQueue = Depends(get_user_queue),
):
    if not user.email:
        raise ValidationError("Missing email")
    if not user.password:
        raise ValidationError("Missing password")
    if get_user(db, email=user.email):
        raise ValidationError("Already exist")

    db_user = models.User(email=user.email, hashed_password=get_password_hash(user.password))
    db.add(db_user)
    db.commit()
    db.refresh(db_user)

    try:
        user_queue.add({"userId": db_user.id})
    except Exception as e:
        logger.error("Failed to enqueue welcome job for %s: %s", db_user.id, e)
    return db_user


@router.get("/me", response_model=schemas.User)
def get_me(current_user: models.User = Depends(get_current_user)):
    return current_user
