"""Read side of the daybook: listings, ranked search and lookups."""

import logging
from typing import Callable, List, Optional

from daybook_mcp.models.schema import (
    AttachmentRef,
    NoteContent,
    NoteSummary,
    today_id,
    validate_note_id,
)
from daybook_mcp.services.note_cache import NoteCache
from daybook_mcp.services.ranking import Ranker, fuzzy_rank
from daybook_mcp.storage.note_store import ATTACHMENTS_DIRNAME, NoteStore

logger = logging.getLogger(__name__)


class QueryService:
    """Answers list/get requests from the note cache.

    Args:
        cache: The shared note cache
        store: Note tree, used for attachments and for notes the cache
            left out because of its size budget
        ranker: Scoring function for ranked listings
        asset_base_url: Prefix of attachment references
        today: Callable returning today's identifier
    """

    def __init__(
        self,
        cache: NoteCache,
        store: NoteStore,
        ranker: Ranker = fuzzy_rank,
        asset_base_url: str = "/notes",
        today: Callable[[], str] = today_id,
    ) -> None:
        self.cache = cache
        self.store = store
        self.ranker = ranker
        self.asset_base_url = asset_base_url.rstrip("/")
        self._today = today

    def list_notes(self, query: str = "") -> List[NoteSummary]:
        """List notes, most recent first, or ranked by a query.

        An empty query lists every cached note plus today's placeholder.
        Any other query, whitespace included, ranks notes with content by score
        (ascending, ties most recent first) and drops non-matches.
        """
        if not query:
            return self.cache.list_all()

        ranked: List[NoteSummary] = []
        for note_id, entry in self.cache.snapshot().items():
            if not entry.content:
                continue
            score = self.ranker(query, entry.content)
            if score is None:
                continue
            ranked.append(
                NoteSummary(
                    note_id=note_id,
                    preview=entry.preview,
                    attachment_count=entry.attachment_count,
                    score=score,
                )
            )

        # Two stable sorts: recency first, then score
        ranked.sort(key=lambda s: s.note_id, reverse=True)
        ranked.sort(key=lambda s: s.score)
        logger.debug("Query %r matched %d notes", query[:40], len(ranked))
        return ranked

    def get_note(self, note_id: Optional[str] = None) -> NoteContent:
        """Fetch one note; defaults to today. A missing note has empty content.

        Raises:
            InvalidIdentifierError: If note_id is malformed
        """
        note_id = validate_note_id(note_id if note_id is not None else self._today())

        entry = self.cache.get(note_id)
        if entry is not None:
            return NoteContent(
                note_id=note_id,
                content=entry.content,
                attachment_count=entry.attachment_count,
            )

        if self.cache.is_complete:
            return NoteContent(note_id=note_id)

        # The budget kept this note out of memory; fall back to the tree
        logger.debug("Cache miss for %s, reading from disk", note_id)
        content, attachments = self.store.read_note(note_id)
        return NoteContent(
            note_id=note_id, content=content, attachment_count=attachments
        )

    def get_attachment(self, note_id: str, index: int) -> AttachmentRef:
        """Resolve the attachment at a zero-based index to a reference.

        Raises:
            InvalidIdentifierError: If note_id is malformed
            AttachmentNotFoundError: If the index is out of range
        """
        note_id = validate_note_id(note_id)
        path = self.store.attachment_path(note_id, index)
        rel = f"{note_id}/{ATTACHMENTS_DIRNAME}/{path.name}"
        return AttachmentRef(
            note_id=note_id,
            index=index,
            filename=path.name,
            path=rel,
            url=f"{self.asset_base_url}/{rel}",
        )
