import base64
import binascii
from typing import Optional, Tuple

from fastapi import Depends, Header, Request
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..db import models
from ..db.database import get_db
from .exceptions import AuthenticationError
from .parents import is_valid_id

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_KEY_PREFIX = "auth_"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def token_key(token: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{token}"


def parse_basic_credentials(authorization: Optional[str]) -> Optional[Tuple[str, str]]:
    """Decode ``Basic <base64(email:password)>`` into its two parts."""
    if not authorization or not authorization.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(authorization[len("Basic "):], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    email, sep, password = decoded.partition(":")
    if not sep:
        return None
    return email, password


class IdentityResolver:
    """Turns an opaque session token into a user id or a user row.

    Lookups never create sessions and never touch the TTL.
    """

    def __init__(self, session_store, db: Optional[Session] = None):
        self.session_store = session_store
        self.db = db

    def resolve_user_id(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        user_id = self.session_store.get(token_key(token))
        if not is_valid_id(user_id):
            return None
        return user_id

    def resolve_user(self, token: Optional[str]) -> Optional[models.User]:
        user_id = self.resolve_user_id(token)
        if user_id is None or self.db is None:
            return None
        return self.db.query(models.User).filter_by(id=user_id).first()


def get_session_store(request: Request):
    return request.app.state.session_store


def get_token(
    x_token: Optional[str] = Header(default=None, alias="X-Token"),
    authorization: Optional[str] = Header(default=None),
) -> Optional[str]:
    if x_token:
        return x_token
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


def get_identity_resolver(
    session_store=Depends(get_session_store),
    db: Session = Depends(get_db),
) -> IdentityResolver:
    return IdentityResolver(session_store, db)


def get_optional_user_id(
    token: Optional[str] = Depends(get_token),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[str]:
    return resolver.resolve_user_id(token)


def get_current_user(
    token: Optional[str] = Depends(get_token),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> models.User:
    user = resolver.resolve_user(token)
    if user is None:
        raise AuthenticationError()
    return user
