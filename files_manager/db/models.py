import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

FILE_TYPES = ("file", "image", "folder")


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"
    id = Column(String(32), primary_key=True, index=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    files = relationship("FileEntry", back_populates="owner")


class FileEntry(Base):
    __tablename__ = "files"
    id = Column(String(32), primary_key=True, index=True, default=new_id)
    name = Column(String, nullable=False)
    type = Column(Enum(*FILE_TYPES, name="file_type_enum"), nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    # Only set for file and image entries, never exposed to clients
    local_path = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    # NULL is the root
    parent_id = Column(String(32), ForeignKey("files.id"), nullable=True, index=True)

    owner = relationship("User", back_populates="files")
