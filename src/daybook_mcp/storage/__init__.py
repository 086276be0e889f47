"""Storage layer for the daybook server."""

from daybook_mcp.storage.git_wrapper import GitError, GitWrapper
from daybook_mcp.storage.note_store import NoteStore

__all__ = [
    "GitError",
    "GitWrapper",
    "NoteStore",
]
