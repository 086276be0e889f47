"""Service layer for daybook operations.

Owns the global write lock, the note cache and both sync schedulers.
Saves, debounced syncs and periodic reconciliation all run under the
write lock, one at a time; reads only touch the cache.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from daybook_mcp.config import config
from daybook_mcp.exceptions import (
    ConfigurationError,
    ErrorCode,
    StorageUnavailableError,
    SyncRemoteFailedError,
    SyncStageFailedError,
)
from daybook_mcp.models.schema import (
    AttachmentRef,
    NoteContent,
    NoteSummary,
    SaveResult,
    today_id,
    validate_note_id,
)
from daybook_mcp.observability import timed_operation
from daybook_mcp.services.note_cache import NoteCache
from daybook_mcp.services.query_service import QueryService
from daybook_mcp.services.ranking import Ranker, fuzzy_rank
from daybook_mcp.services.sync_scheduler import (
    DebouncedSyncScheduler,
    PeriodicReconciler,
    TimerFactory,
)
from daybook_mcp.storage.git_wrapper import GitError, GitWrapper
from daybook_mcp.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class DaybookService:
    """Service for reading, saving and synchronizing daybook notes."""

    def __init__(
        self,
        notes_dir: Optional[Path] = None,
        git: Optional[GitWrapper] = None,
        ranker: Ranker = fuzzy_rank,
        today: Callable[[], str] = today_id,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = threading.Timer,
    ):
        """Initialize the service.

        Args:
            notes_dir: Note root (top of a git work tree). Defaults to
                config.notes_dir.
            git: Remote sync adapter. Created for notes_dir if None.
            ranker: Scoring function for ranked listings.
            today: Callable returning today's identifier.
            clock: Monotonic clock for the debounce scheduler.
            timer_factory: Countdown factory for the debounce scheduler.
        """
        self.notes_dir = (
            config.get_absolute_path(notes_dir).resolve()
            if notes_dir
            else config.get_notes_dir()
        )
        self.store = NoteStore(self.notes_dir)
        self.git = git or GitWrapper(
            self.notes_dir,
            timeout=config.git_timeout,
            network_timeout=config.git_network_timeout,
        )
        self._today = today
        self.commit_message = config.commit_message

        self.cache = NoteCache(self.store, config.cache_budget_bytes, today=today)
        self.queries = QueryService(
            self.cache,
            self.store,
            ranker=ranker,
            asset_base_url=config.asset_base_url,
            today=today,
        )

        # Serializes saves, syncs and reconciliation
        self._write_lock = threading.Lock()

        self.scheduler = DebouncedSyncScheduler(
            config.sync_debounce_seconds,
            self.sync,
            clock=clock,
            timer_factory=timer_factory,
        )
        self.reconciler = PeriodicReconciler(
            config.reconcile_interval_seconds, self.reconcile
        )
        self._reconcile_enabled = config.reconcile_enabled

        self._initialized = False
        self._last_pull_time: Optional[datetime] = None
        self._last_push_time: Optional[datetime] = None
        self._last_rebuild_time: Optional[datetime] = None
        self._last_remote_error: Optional[str] = None
        self._last_remote_error_time: Optional[datetime] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Check the storage root, load the cache, start reconciliation.

        Raises:
            ConfigurationError: If the note root is not the top of a git
                work tree
            StorageUnavailableError: If the note root cannot be listed
        """
        if not self.git.repository_root_matches(self.notes_dir):
            raise ConfigurationError(
                f"Note root {self.notes_dir} does not exist or is not the top "
                "of a git work tree",
                config_key="notes_dir",
                code=ErrorCode.STORAGE_ROOT_INVALID,
            )

        self.rebuild_cache()
        if self._reconcile_enabled:
            self.reconciler.start()
        self._initialized = True
        logger.info("Daybook service initialized at %s", self.notes_dir)

    def shutdown(self, flush: bool = True) -> None:
        """Stop background work; push a pending debounced sync if asked."""
        self.reconciler.stop()
        self.scheduler.shutdown(flush=flush)
        self.cache.clear()
        self._initialized = False
        logger.info("Daybook service shut down")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def rebuild_cache(self) -> None:
        """Reload the cache from disk, serialized with saves and syncs."""
        with self._write_lock:
            self._rebuild_cache()

    def _rebuild_cache(self) -> None:
        # Caller holds the write lock
        with timed_operation("rebuild_cache"):
            self.cache.rebuild()
        self._last_rebuild_time = _utc_now()

    # =========================================================================
    # Reads
    # =========================================================================

    def list_notes(self, query: str = "") -> List[NoteSummary]:
        return self.queries.list_notes(query)

    def get_note(self, note_id: Optional[str] = None) -> NoteContent:
        return self.queries.get_note(note_id)

    def get_attachment(self, note_id: str, index: int) -> AttachmentRef:
        return self.queries.get_attachment(note_id, index)

    # =========================================================================
    # Write path
    # =========================================================================

    def save_note(self, text: str, note_id: Optional[str] = None) -> SaveResult:
        """Persist a note locally and schedule a remote sync.

        The content is on disk and in the cache before this returns; the
        remote push happens later.

        Args:
            text: Full note content
            note_id: YYYYMMDD identifier; defaults to today

        Returns:
            SaveResult acknowledging the local save

        Raises:
            InvalidIdentifierError: If note_id is malformed (nothing written)
            StorageWriteFailedError: If the note could not be written
            SyncStageFailedError: If the work tree commit failed; the
                content is on disk and in the cache, no sync is scheduled
        """
        note_id = validate_note_id(note_id if note_id is not None else self._today())

        with self._write_lock:
            self.store.write_content(note_id, text)

            stage_error: Optional[GitError] = None
            committed = False
            try:
                committed = self.git.stage_and_commit(self.commit_message)
            except GitError as e:
                stage_error = e

            # The cache follows the disk whatever the commit did
            self.cache.put(note_id, text)

            if stage_error is not None:
                logger.error("Commit of note %s failed: %s", note_id, stage_error)
                raise SyncStageFailedError(
                    f"Note {note_id} was written but could not be committed",
                    original_error=stage_error,
                ) from stage_error

            self.scheduler.arm()

        logger.info(
            "Saved note %s (%s)", note_id, "committed" if committed else "unchanged"
        )
        return SaveResult(note_id=note_id, committed=committed)

    # =========================================================================
    # Synchronization
    # =========================================================================

    def sync(self) -> bool:
        """Pull, rebuild the cache if the pull changed anything, then push.

        Runs under the write lock. Never raises for remote failures: they
        are logged and recorded in the status, and the next debounce or
        reconcile cycle tries again.

        Returns:
            True if both pull and push succeeded
        """
        with self._write_lock:
            with timed_operation("sync") as op:
                if not self._pull_and_rebuild():
                    op["pushed"] = False
                    return False
                try:
                    self.git.push()
                except GitError as e:
                    self._record_remote_failure("push", e)
                    op["pushed"] = False
                    return False
                self._last_push_time = _utc_now()
                op["pushed"] = True
                logger.info("Sync complete")
                return True

    def reconcile(self) -> bool:
        """Periodic pull: rebuild the cache if remote content arrived.

        Returns:
            True if the pull succeeded
        """
        with self._write_lock:
            with timed_operation("reconcile"):
                return self._pull_and_rebuild()

    def sync_now(self) -> bool:
        """Run a sync immediately, dropping any pending debounced one."""
        self.scheduler.cancel()
        return self.sync()

    def _pull_and_rebuild(self) -> bool:
        # Caller holds the write lock
        try:
            result = self.git.pull()
        except GitError as e:
            self._record_remote_failure("pull", e)
            return False
        self._last_pull_time = _utc_now()

        if result.changed:
            try:
                self._rebuild_cache()
            except StorageUnavailableError as e:
                # Keep serving the previous snapshot
                logger.error("Cache rebuild after pull failed: %s", e)
        return True

    def _record_remote_failure(self, operation: str, error: GitError) -> None:
        failure = SyncRemoteFailedError(
            f"git {operation} failed", operation=operation, original_error=error
        )
        self._last_remote_error = str(failure)
        self._last_remote_error_time = _utc_now()
        logger.error("%s: %s", failure, getattr(error, "output", None) or error)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Cache, scheduler and sync status."""
        due_in = self.scheduler.due_in()
        return {
            "notes_dir": str(self.notes_dir),
            "initialized": self._initialized,
            "cache": self.cache.stats(),
            "sync_pending": self.scheduler.is_armed,
            "sync_due_in_seconds": round(due_in, 1) if due_in is not None else None,
            "debounce_seconds": self.scheduler.delay,
            "reconcile_interval_seconds": self.reconciler.interval,
            "reconciler_running": self.reconciler.is_running,
            "last_pull_time": _iso(self._last_pull_time),
            "last_push_time": _iso(self._last_push_time),
            "last_rebuild_time": _iso(self._last_rebuild_time),
            "last_remote_error": self._last_remote_error,
            "last_remote_error_time": _iso(self._last_remote_error_time),
        }
