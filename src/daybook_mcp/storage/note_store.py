"""On-disk layout of the note tree.

Each note lives in its own directory named after its identifier::

    <root>/20240115/note.md
    <root>/20240115/attachments/1.png
    <root>/20240115/attachments/2.jpg

Anything in the root that is not a directory with a valid identifier
(``.git``, stray files, legacy ``YYYYMMDD.md`` files) is ignored.
"""

import logging
from pathlib import Path
from typing import List, Tuple

from daybook_mcp.exceptions import (
    AttachmentNotFoundError,
    StorageError,
    StorageUnavailableError,
    StorageWriteFailedError,
)
from daybook_mcp.models.schema import is_valid_note_id, validate_note_id

logger = logging.getLogger(__name__)

NOTE_FILENAME = "note.md"
ATTACHMENTS_DIRNAME = "attachments"


def order_attachments(names: List[str]) -> List[str]:
    """Order attachment filenames.

    Numeric stems sort numerically ("2.png" before "10.png") when every
    stem is numeric; otherwise plain lexical order.
    """
    stems = [Path(name).stem for name in names]
    if names and all(stem.isdigit() for stem in stems):
        return sorted(names, key=lambda name: (int(Path(name).stem), name))
    return sorted(names)


class NoteStore:
    """Reads and writes notes in a directory-per-note tree."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def note_dir(self, note_id: str) -> Path:
        return self.root / validate_note_id(note_id)

    def content_path(self, note_id: str) -> Path:
        return self.note_dir(note_id) / NOTE_FILENAME

    def list_note_ids(self) -> List[str]:
        """List identifiers present on disk, most recent first.

        Raises:
            StorageUnavailableError: If the root cannot be listed
        """
        try:
            entries = list(self.root.iterdir())
        except OSError as e:
            raise StorageUnavailableError(
                "Could not list note root",
                path=str(self.root),
                original_error=e,
            ) from e

        ids = [
            entry.name
            for entry in entries
            if is_valid_note_id(entry.name) and entry.is_dir()
        ]
        ids.sort(reverse=True)
        return ids

    def read_content(self, note_id: str) -> str:
        """Read a note's content; a missing note reads as empty.

        Raises:
            StorageError: If the file exists but cannot be read or decoded
        """
        path = self.content_path(note_id)
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                f"Failed to read note {note_id}",
                operation="read",
                path=str(path),
                original_error=e,
            ) from e

    def list_attachments(self, note_id: str) -> List[str]:
        """Attachment filenames for a note in index order (hidden files skipped)."""
        attach_dir = self.note_dir(note_id) / ATTACHMENTS_DIRNAME
        try:
            names = [
                p.name
                for p in attach_dir.iterdir()
                if p.is_file() and not p.name.startswith(".")
            ]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(
                f"Failed to list attachments of note {note_id}",
                operation="list_attachments",
                path=str(attach_dir),
                original_error=e,
            ) from e
        return order_attachments(names)

    def read_note(self, note_id: str) -> Tuple[str, int]:
        """Read content and attachment count for one note.

        Raises:
            StorageError: If either cannot be read
        """
        return self.read_content(note_id), len(self.list_attachments(note_id))

    def write_content(self, note_id: str, text: str) -> Path:
        """Write a note's content, creating its directory if needed.

        Returns:
            Path of the written content file

        Raises:
            StorageWriteFailedError: On any I/O error
        """
        note_dir = self.note_dir(note_id)
        try:
            note_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteFailedError(
                f"Could not create directory for note {note_id}",
                operation="mkdir",
                path=str(note_dir),
                original_error=e,
            ) from e

        path = note_dir / NOTE_FILENAME
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            raise StorageWriteFailedError(
                f"Could not write note {note_id}",
                path=str(path),
                original_error=e,
            ) from e
        return path

    def attachment_path(self, note_id: str, index: int) -> Path:
        """Path of the attachment at a zero-based index.

        Raises:
            AttachmentNotFoundError: If the index is out of range
        """
        names = self.list_attachments(note_id)
        if index < 0 or index >= len(names):
            raise AttachmentNotFoundError(note_id, index, len(names))
        return self.note_dir(note_id) / ATTACHMENTS_DIRNAME / names[index]
