"""MCP server implementation for the daybook."""

import atexit
import json
import logging
import uuid
from typing import Optional

from mcp.server.fastmcp import FastMCP

from daybook_mcp.config import config
from daybook_mcp.exceptions import DaybookError
from daybook_mcp.models.schema import NoteSummary
from daybook_mcp.observability import metrics, timed_operation
from daybook_mcp.services.daybook_service import DaybookService

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1_000_000  # 1 MB
MAX_QUERY_LENGTH = 500


def _format_summary(summary: NoteSummary) -> str:
    noun = "attachment" if summary.attachment_count == 1 else "attachments"
    line = f"* {summary.note_id} [{summary.attachment_count} {noun}]"
    if summary.score is not None:
        line += f" (score {summary.score})"
    preview = summary.preview.replace("\r", " ").replace("\n", " ").strip()
    if preview:
        line += f"\n  {preview}"
    return line


class DaybookMcpServer:
    """MCP server for the daybook."""

    def __init__(self, service: Optional[DaybookService] = None):
        """Initialize the MCP server.

        Args:
            service: Pre-built service. Created from the global config when
                None.
        """
        self.mcp = FastMCP(config.server_name)
        self.service = service or DaybookService()
        # Register shutdown hook so a pending sync is pushed on exit
        atexit.register(self._shutdown)
        self._register_tools()

    def initialize(self) -> None:
        """Check the storage root and load the cache (fatal on failure)."""
        self.service.initialize()
        logger.info("Daybook MCP server initialized")

    def _shutdown(self) -> None:
        """Clean up resources on server exit."""
        self.service.shutdown(flush=True)

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, DaybookError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            # File system errors - don't expose paths
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="daybook_list_notes")
        def daybook_list_notes(query: str = "") -> str:
            """List daybook entries, most recent first.

            Today's date is always listed, even before its first save.
            With a query, only entries whose text fuzzily matches are
            returned, best match first.

            Args:
                query: Optional search text (characters must appear in order)
            """
            with timed_operation("daybook_list_notes", query=query[:30]) as op:
                try:
                    if len(query) > MAX_QUERY_LENGTH:
                        raise ValueError(
                            f"Query exceeds maximum length of {MAX_QUERY_LENGTH}"
                        )
                    notes = self.service.list_notes(query)
                    op["result_count"] = len(notes)
                    if not notes:
                        return f"No notes match '{query}'."
                    header = (
                        f"Notes matching '{query}' ({len(notes)}):"
                        if query
                        else f"Notes ({len(notes)}):"
                    )
                    return header + "\n" + "\n".join(
                        _format_summary(n) for n in notes
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="daybook_get_note")
        def daybook_get_note(note_id: Optional[str] = None) -> str:
            """Get the full text of a daybook entry.

            Args:
                note_id: Date as YYYYMMDD; defaults to today. A date with no
                    entry returns empty content.
            """
            with timed_operation("daybook_get_note", note_id=note_id) as op:
                try:
                    note = self.service.get_note(note_id)
                    op["found"] = bool(note.content)
                    noun = "attachment" if note.attachment_count == 1 else "attachments"
                    return (
                        f"# {note.note_id} ({note.attachment_count} {noun})\n\n"
                        f"{note.content}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="daybook_save_note")
        def daybook_save_note(text: str, note_id: Optional[str] = None) -> str:
            """Save the full text of a daybook entry.

            The entry is written and committed locally before this returns;
            pushing to the remote happens a few seconds later.

            Args:
                text: Complete new content of the entry (replaces the old text)
                note_id: Date as YYYYMMDD; defaults to today
            """
            with timed_operation("daybook_save_note", note_id=note_id) as op:
                try:
                    if len(text) > MAX_CONTENT_LENGTH:
                        raise ValueError(
                            f"Content exceeds maximum length of "
                            f"{MAX_CONTENT_LENGTH} characters"
                        )
                    result = self.service.save_note(text, note_id=note_id)
                    op["committed"] = result.committed
                    return f"Note {result.note_id} saved ({result.status})."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="daybook_get_attachment")
        def daybook_get_attachment(note_id: str, index: int) -> str:
            """Get the location of one of an entry's attachments.

            Args:
                note_id: Date as YYYYMMDD
                index: Zero-based position in the entry's attachment list
            """
            with timed_operation(
                "daybook_get_attachment", note_id=note_id, index=index
            ):
                try:
                    ref = self.service.get_attachment(note_id, index)
                    return (
                        f"Attachment {ref.index} of {ref.note_id}: {ref.filename}\n"
                        f"URL: {ref.url}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="daybook_sync_now")
        def daybook_sync_now() -> str:
            """Pull from and push to the remote right away."""
            with timed_operation("daybook_sync_now") as op:
                try:
                    ok = self.service.sync_now()
                    op["ok"] = ok
                    if ok:
                        return "Sync complete."
                    status = self.service.get_status()
                    return f"Sync failed: {status.get('last_remote_error')}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="daybook_status")
        def daybook_status() -> str:
            """Show cache, sync and operation statistics."""
            with timed_operation("daybook_status"):
                try:
                    status = self.service.get_status()
                    status["metrics"] = metrics.get_summary()
                    return json.dumps(status, indent=2, default=str)
                except Exception as e:
                    return self.format_error_response(e)

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server."""
        self.mcp.run(transport=transport)
