# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
import json
from unittest.mock import MagicMock, patch

from daybook_mcp.exceptions import (
    AttachmentNotFoundError,
    InvalidIdentifierError,
    SyncStageFailedError,
)
from daybook_mcp.models.schema import (
    AttachmentRef,
    NoteContent,
    NoteSummary,
    SaveResult,
)
from daybook_mcp.server.mcp_server import MAX_QUERY_LENGTH, DaybookMcpServer


class TestMcpServer:
    """Tests for the DaybookMcpServer class."""

    def setup_method(self):
        """Set up test environment before each test."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}

        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func

            return tool_wrapper

        self.mock_mcp.tool = mock_tool_decorator
        self.mock_service = MagicMock()

        self.mcp_patcher = patch(
            "daybook_mcp.server.mcp_server.FastMCP", return_value=self.mock_mcp
        )
        self.atexit_patcher = patch("daybook_mcp.server.mcp_server.atexit")
        self.mcp_patcher.start()
        self.mock_atexit = self.atexit_patcher.start()

        self.server = DaybookMcpServer(service=self.mock_service)

    def teardown_method(self):
        """Clean up after each test."""
        self.mcp_patcher.stop()
        self.atexit_patcher.stop()

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "daybook_list_notes",
            "daybook_get_note",
            "daybook_save_note",
            "daybook_get_attachment",
            "daybook_sync_now",
            "daybook_status",
        }

    def test_shutdown_hook_registered(self):
        self.mock_atexit.register.assert_called_once()
        self.server._shutdown()
        self.mock_service.shutdown.assert_called_once_with(flush=True)

    def test_initialize_delegates(self):
        self.server.initialize()
        self.mock_service.initialize.assert_called_once()

    def test_list_notes(self):
        """Test the daybook_list_notes tool without a query."""
        self.mock_service.list_notes.return_value = [
            NoteSummary(note_id="20240315", preview="", attachment_count=0),
            NoteSummary(
                note_id="20240314", preview="Dentist at 3pm\nbring card", attachment_count=1
            ),
        ]

        result = self.registered_tools["daybook_list_notes"]()

        self.mock_service.list_notes.assert_called_once_with("")
        assert result.startswith("Notes (2):")
        assert "* 20240315 [0 attachments]" in result
        assert "* 20240314 [1 attachment]" in result
        assert "Dentist at 3pm bring card" in result

    def test_list_notes_with_query(self):
        """Test ranked listings show scores."""
        self.mock_service.list_notes.return_value = [
            NoteSummary(note_id="20240314", preview="dentist", score=0),
        ]

        result = self.registered_tools["daybook_list_notes"](query="dntst")

        assert result.startswith("Notes matching 'dntst' (1):")
        assert "(score 0)" in result

    def test_list_notes_no_match(self):
        self.mock_service.list_notes.return_value = []
        result = self.registered_tools["daybook_list_notes"](query="zzz")
        assert result == "No notes match 'zzz'."

    def test_list_notes_query_too_long(self):
        result = self.registered_tools["daybook_list_notes"](
            query="q" * (MAX_QUERY_LENGTH + 1)
        )
        assert result.startswith("Error: Invalid input")
        self.mock_service.list_notes.assert_not_called()

    def test_get_note(self):
        self.mock_service.get_note.return_value = NoteContent(
            note_id="20240314", content="Dentist at 3pm", attachment_count=2
        )

        result = self.registered_tools["daybook_get_note"](note_id="20240314")

        self.mock_service.get_note.assert_called_once_with("20240314")
        assert result == "# 20240314 (2 attachments)\n\nDentist at 3pm"

    def test_get_note_defaults_to_today(self):
        self.mock_service.get_note.return_value = NoteContent(note_id="20240315")
        result = self.registered_tools["daybook_get_note"]()
        self.mock_service.get_note.assert_called_once_with(None)
        assert result.startswith("# 20240315 (0 attachments)")

    def test_get_note_invalid_identifier(self):
        self.mock_service.get_note.side_effect = InvalidIdentifierError("2024")
        result = self.registered_tools["daybook_get_note"](note_id="2024")
        assert result == "Error: Invalid note identifier '2024'"

    def test_save_note(self):
        self.mock_service.save_note.return_value = SaveResult(note_id="20240314")

        result = self.registered_tools["daybook_save_note"](
            text="new text", note_id="20240314"
        )

        self.mock_service.save_note.assert_called_once_with(
            "new text", note_id="20240314"
        )
        assert result == "Note 20240314 saved (save scheduled)."

    def test_save_note_commit_failure(self):
        self.mock_service.save_note.side_effect = SyncStageFailedError(
            "Note 20240314 was written but could not be committed"
        )
        result = self.registered_tools["daybook_save_note"](text="x", note_id="20240314")
        assert result == "Error: Note 20240314 was written but could not be committed"

    def test_get_attachment(self):
        self.mock_service.get_attachment.return_value = AttachmentRef(
            note_id="20240314",
            index=0,
            filename="1.png",
            path="20240314/attachments/1.png",
            url="/notes/20240314/attachments/1.png",
        )

        result = self.registered_tools["daybook_get_attachment"](
            note_id="20240314", index=0
        )

        assert "Attachment 0 of 20240314: 1.png" in result
        assert "URL: /notes/20240314/attachments/1.png" in result

    def test_get_attachment_missing(self):
        self.mock_service.get_attachment.side_effect = AttachmentNotFoundError(
            "20240314", 3, 1
        )
        result = self.registered_tools["daybook_get_attachment"](
            note_id="20240314", index=3
        )
        assert result == "Error: Note '20240314' has no attachment at index 3"

    def test_sync_now(self):
        self.mock_service.sync_now.return_value = True
        assert self.registered_tools["daybook_sync_now"]() == "Sync complete."

    def test_sync_now_failure(self):
        self.mock_service.sync_now.return_value = False
        self.mock_service.get_status.return_value = {
            "last_remote_error": "[SYNC_PUSH_FAILED] git push failed"
        }
        result = self.registered_tools["daybook_sync_now"]()
        assert result == "Sync failed: [SYNC_PUSH_FAILED] git push failed"

    def test_status(self):
        self.mock_service.get_status.return_value = {"initialized": True}

        result = json.loads(self.registered_tools["daybook_status"]())

        assert result["initialized"] is True
        assert "total_operations" in result["metrics"]

    def test_unexpected_error_hides_details(self):
        self.mock_service.list_notes.side_effect = RuntimeError("/secret/path")
        result = self.registered_tools["daybook_list_notes"]()
        assert result.startswith("Error: An unexpected error occurred (ref: ")
        assert "/secret/path" not in result

    def test_os_error_hides_path(self):
        self.mock_service.get_note.side_effect = OSError("/home/me/notes")
        result = self.registered_tools["daybook_get_note"](note_id="20240314")
        assert result.startswith("Error: A file system error occurred")

    def test_run_uses_transport(self):
        self.server.run(transport="sse")
        self.mock_mcp.run.assert_called_once_with(transport="sse")


class TestMcpServerWithService:
    """Tools wired to a real DaybookService over a plain directory."""

    def test_save_then_get(self, daybook_service):
        registered = {}
        mock_mcp = MagicMock()

        def tool(*args, **kwargs):
            def wrapper(func):
                registered[kwargs["name"]] = func
                return func

            return wrapper

        mock_mcp.tool = tool
        with patch(
            "daybook_mcp.server.mcp_server.FastMCP", return_value=mock_mcp
        ), patch("daybook_mcp.server.mcp_server.atexit"):
            DaybookMcpServer(service=daybook_service)

        saved = registered["daybook_save_note"](text="walked the dog")
        fetched = registered["daybook_get_note"]()
        listing = registered["daybook_list_notes"](query="dog")

        assert saved == "Note 20240315 saved (save scheduled)."
        assert fetched == "# 20240315 (0 attachments)\n\nwalked the dog"
        assert "* 20240315" in listing
