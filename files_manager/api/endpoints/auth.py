import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.exceptions import AuthenticationError
from ...core.security import (
    get_current_user,
    get_session_store,
    get_token,
    parse_basic_credentials,
    token_key,
    verify_password,
)
from ...db import models, schemas
from ...db.database import get_db

router = APIRouter()


@router.get("/connect", response_model=schemas.Token)
def get_connect(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    session_store=Depends(get_session_store),
):
    credentials = parse_basic_credentials(authorization)
    if credentials is None:
        raise AuthenticationError()
    email, password = credentials

    user = db.query(models.User).filter(models.User.email == email).first()
    if not user or not verify_password(password, user.hashed_password):
        raise AuthenticationError()

    token = str(uuid.uuid4())
    session_store.set(token_key(token), user.id, settings.SESSION_TTL_SECONDS)
    return {"token": token}


@router.get("/disconnect", status_code=204)
def get_disconnect(
    token: Optional[str] = Depends(get_token),
    session_store=Depends(get_session_store),
    current_user: models.User = Depends(get_current_user),
):
    session_store.delete(token_key(token))
    return Response(status_code=204)
