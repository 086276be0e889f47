"""Data models for the daybook server."""

import datetime
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, field_validator

from daybook_mcp.exceptions import InvalidIdentifierError

# Note identifiers are calendar dates: YYYYMMDD
NOTE_ID_PATTERN = re.compile(r"^\d{8}$")
NOTE_ID_FORMAT = "%Y%m%d"

# Previews are cut on code points, not bytes
PREVIEW_LENGTH = 80

SAVE_STATUS_SCHEDULED = "save scheduled"


def is_valid_note_id(value: Any) -> bool:
    """Return True if value is an 8-digit string naming a real calendar date."""
    if not isinstance(value, str) or not NOTE_ID_PATTERN.match(value):
        return False
    try:
        datetime.datetime.strptime(value, NOTE_ID_FORMAT)
    except ValueError:
        return False
    return True


def validate_note_id(value: Any) -> str:
    """Validate a note identifier.

    Args:
        value: Candidate identifier

    Returns:
        The identifier, unchanged

    Raises:
        InvalidIdentifierError: If the value is not a YYYYMMDD calendar date
    """
    if not is_valid_note_id(value):
        raise InvalidIdentifierError(value)
    return value


def today_id(now: Optional[Callable[[], datetime.datetime]] = None) -> str:
    """Identifier for the current local date."""
    current = now() if now else datetime.datetime.now()
    return current.strftime(NOTE_ID_FORMAT)


def make_preview(content: str) -> str:
    """Truncate content to the preview length."""
    return content[:PREVIEW_LENGTH]


@dataclass(frozen=True)
class CachedNote:
    """A note as held in the in-memory cache."""

    content: str
    preview: str
    attachment_count: int = 0

    @classmethod
    def from_content(cls, content: str, attachment_count: int = 0) -> "CachedNote":
        return cls(
            content=content,
            preview=make_preview(content),
            attachment_count=attachment_count,
        )

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(frozen=True)
class PullResult:
    """Outcome of pulling from the remote.

    Attributes:
        changed: True when the pull moved HEAD (remote content arrived)
        head_before: HEAD commit before the pull, if any
        head_after: HEAD commit after the pull, if any
    """

    changed: bool
    head_before: Optional[str] = None
    head_after: Optional[str] = None


class NoteSummary(BaseModel):
    """One row of a note listing."""

    note_id: str = Field(..., description="YYYYMMDD identifier")
    preview: str = Field(default="", description="First 80 characters of content")
    attachment_count: int = Field(default=0, ge=0)
    score: Optional[int] = Field(
        default=None, description="Match score for ranked listings (lower is better)"
    )


class NoteContent(BaseModel):
    """Full content of one note."""

    note_id: str = Field(..., description="YYYYMMDD identifier")
    content: str = Field(default="")
    attachment_count: int = Field(default=0, ge=0)

    @field_validator("note_id")
    @classmethod
    def _check_note_id(cls, v: str) -> str:
        if not is_valid_note_id(v):
            raise ValueError(f"Invalid note identifier '{v}'")
        return v


class SaveResult(BaseModel):
    """Acknowledgment of a locally durable save."""

    note_id: str
    status: str = Field(default=SAVE_STATUS_SCHEDULED)
    committed: bool = Field(
        default=True, description="False when the content was unchanged"
    )


class AttachmentRef(BaseModel):
    """Reference to a stored attachment (never the bytes themselves)."""

    note_id: str
    index: int = Field(..., ge=0)
    filename: str
    path: str = Field(..., description="Path relative to the note root")
    url: str = Field(..., description="Location clients should be redirected to")
