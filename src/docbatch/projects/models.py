"""Domain models for projects, members and sheet field mappings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ProjectRole(str, Enum):
    """Member roles inside one project."""

    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


@dataclass(slots=True)
class ProjectView:
    """Readable project record."""

    project_id: str
    name: str
    owner_id: str
    sheet_path: str | None
    created_at: datetime


@dataclass(slots=True)
class FieldMapping:
    """Spreadsheet column mapped to a participant key."""

    sheet_column_letter: str
    internal_key: str
    display_name: str
    is_visible: bool = True


def column_letter_to_index(letter: str) -> int:
    """Zero-based column index for a spreadsheet column letter (A=0, Z=25, AA=26)."""

    normalized = letter.strip().upper()
    if not normalized or not normalized.isascii() or not normalized.isalpha():
        raise ValueError(f"Invalid column letter: {letter!r}")
    result = 0
    for char in normalized:
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result - 1


def index_to_column_letter(index: int) -> str:
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    result = ""
    number = index + 1
    while number > 0:
        number, remainder = divmod(number - 1, 26)
        result = chr(ord("A") + remainder) + result
    return result
