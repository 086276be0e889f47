"""In-memory cache of note content.

The cache holds a dict of identifier -> CachedNote built from the note tree.
A rebuild builds a fresh dict and swaps it in; writes patch single entries.
Readers share a reader/writer lock so listings and lookups never wait on
each other. A rebuild reads the disk unlocked and holds the lock only for
the swap, so rebuilds and writes must be serialized by the caller (the
daybook service does this under its write lock).
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from daybook_mcp.exceptions import StorageError
from daybook_mcp.models.schema import CachedNote, NoteSummary, today_id
from daybook_mcp.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Reader/writer lock: many readers or one writer.

    Writers are preferred: once a writer is waiting, new readers block so
    a steady stream of listings cannot starve a rebuild.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class RebuildStats:
    """Summary of one cache rebuild."""

    admitted: int
    failed: int
    total_bytes: int
    budget_exhausted: bool


class NoteCache:
    """Process-wide snapshot of note content.

    Lifecycle: construct, call :meth:`rebuild` to load, :meth:`clear` on
    shutdown. ``get`` and ``list_all`` never touch the disk.

    Args:
        store: Note tree to rebuild from
        budget_bytes: Ceiling on the UTF-8 size of admitted content.
            The first note is admitted regardless of size unless the
            budget is 0, which admits nothing.
        today: Callable returning today's identifier (injectable for tests)
    """

    def __init__(
        self,
        store: NoteStore,
        budget_bytes: int,
        today: Callable[[], str] = today_id,
    ) -> None:
        self._store = store
        self._budget = budget_bytes
        self._today = today
        self._notes: Dict[str, CachedNote] = {}
        self._lock = ReadWriteLock()
        self._last_stats: Optional[RebuildStats] = None

    @property
    def budget_bytes(self) -> int:
        return self._budget

    @property
    def is_complete(self) -> bool:
        """True when the last rebuild admitted every note on disk."""
        last = self._last_stats
        return last is not None and not last.budget_exhausted and last.failed == 0

    def rebuild(self) -> RebuildStats:
        """Reload the cache from disk, most recent notes first.

        Raises:
            StorageUnavailableError: If the note root cannot be listed; the
                previous contents stay in place.
        """
        note_ids = self._store.list_note_ids()

        # Scan without the lock; readers keep the old snapshot meanwhile
        fresh: Dict[str, CachedNote] = {}
        total = 0
        failed = 0
        exhausted = False
        for note_id in note_ids:
            if self._budget <= 0:
                exhausted = True
                break
            try:
                content, attachments = self._store.read_note(note_id)
            except StorageError as e:
                logger.error("Skipping note %s during rebuild: %s", note_id, e)
                failed += 1
                continue

            entry = CachedNote.from_content(content, attachments)
            size = entry.size_bytes
            if fresh and total + size > self._budget:
                exhausted = True
                break
            fresh[note_id] = entry
            total += size

        stats = RebuildStats(
            admitted=len(fresh),
            failed=failed,
            total_bytes=total,
            budget_exhausted=exhausted,
        )
        with self._lock.write_locked():
            self._notes = fresh
            self._last_stats = stats

        logger.info(
            "Cache rebuilt: %d notes, %d bytes, %d failed%s",
            stats.admitted,
            stats.total_bytes,
            stats.failed,
            " (budget reached)" if stats.budget_exhausted else "",
        )
        return stats

    def get(self, note_id: str) -> Optional[CachedNote]:
        with self._lock.read_locked():
            return self._notes.get(note_id)

    def put(self, note_id: str, content: str) -> CachedNote:
        """Install new content for a note, keeping its attachment count."""
        with self._lock.write_locked():
            existing = self._notes.get(note_id)
            count = existing.attachment_count if existing else 0
            entry = CachedNote.from_content(content, count)
            self._notes[note_id] = entry
            return entry

    def list_all(self) -> List[NoteSummary]:
        """Summaries of every cached note plus a placeholder for today.

        Sorted most recent first.
        """
        today = self._today()
        with self._lock.read_locked():
            summaries = [
                NoteSummary(
                    note_id=note_id,
                    preview=entry.preview,
                    attachment_count=entry.attachment_count,
                )
                for note_id, entry in self._notes.items()
            ]
            has_today = today in self._notes
        if not has_today:
            summaries.append(NoteSummary(note_id=today, preview="", attachment_count=0))
        summaries.sort(key=lambda s: s.note_id, reverse=True)
        return summaries

    def snapshot(self) -> Dict[str, CachedNote]:
        """Shallow copy of the current mapping (entries are immutable)."""
        with self._lock.read_locked():
            return dict(self._notes)

    def stats(self) -> Dict[str, object]:
        with self._lock.read_locked():
            count = len(self._notes)
            size = sum(entry.size_bytes for entry in self._notes.values())
            last = self._last_stats
        return {
            "notes": count,
            "bytes": size,
            "budget_bytes": self._budget,
            "last_rebuild_failed": last.failed if last else None,
            "budget_exhausted": last.budget_exhausted if last else None,
        }

    def clear(self) -> None:
        with self._lock.write_locked():
            self._notes = {}
