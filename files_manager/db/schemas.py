from typing import Optional, Union

from pydantic import BaseModel, EmailStr

from ..core.parents import parent_from_column, parent_to_external


class UserCreate(BaseModel):
    # Presence is checked by the endpoint
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class User(BaseModel):
    id: str
    email: str

    class Config:
        from_attributes = True


class Token(BaseModel):
    token: str


class FileCreate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    parentId: Optional[Union[int, str]] = 0
    isPublic: Optional[bool] = False
    data: Optional[str] = None


class FileEntry(BaseModel):
    """External projection of a file entry. Never carries the storage path."""

    id: str
    userId: str
    name: str
    type: str
    isPublic: bool
    parentId: Union[int, str]

    @classmethod
    def from_model(cls, item) -> "FileEntry":
        return cls(
            id=item.id,
            userId=item.user_id,
            name=item.name,
            type=item.type,
            isPublic=bool(item.is_public),
            parentId=parent_to_external(parent_from_column(item.parent_id)),
        )


class Status(BaseModel):
    redis: bool
    db: bool


class Stats(BaseModel):
    users: int
    files: int
