import re
from dataclasses import dataclass
from typing import Any, Optional, Union

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def is_valid_id(value: Any) -> bool:
    """Ids are store-assigned uuid4 hex strings."""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


@dataclass(frozen=True)
class Root:
    def __str__(self):
        return "root"


@dataclass(frozen=True)
class Folder:
    id: str


ParentRef = Union[Root, Folder]

ROOT = Root()


def parse_parent_ref(value: Any) -> ParentRef:
    # 0, "0", empty and missing all mean root
    if value is None or value == "" or value == 0 or value == "0":
        return ROOT
    return Folder(str(value))


def parent_to_column(ref: ParentRef) -> Optional[str]:
    return ref.id if isinstance(ref, Folder) else None


def parent_from_column(value: Optional[str]) -> ParentRef:
    return Folder(value) if value else ROOT


def parent_to_external(ref: ParentRef) -> Union[int, str]:
    return ref.id if isinstance(ref, Folder) else 0
