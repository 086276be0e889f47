"""Custom exceptions for the daybook server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    ATTACHMENT_NOT_FOUND = 1002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_UNAVAILABLE = 4003

    # Sync errors (5xxx)
    SYNC_STAGE_FAILED = 5001
    SYNC_REMOTE_FAILED = 5002
    SYNC_PULL_FAILED = 5003
    SYNC_PUSH_FAILED = 5004

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002
    STORAGE_ROOT_INVALID = 6003

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_IDENTIFIER = 7002


class DaybookError(Exception):
    """Base exception for all daybook errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class InvalidIdentifierError(DaybookError):
    """Raised when a note identifier is not a YYYYMMDD calendar date."""

    def __init__(self, note_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"Invalid note identifier '{str(note_id)[:40]}'",
            code=ErrorCode.INVALID_IDENTIFIER,
            details={"note_id": str(note_id)[:40]},
        )
        self.note_id = note_id


class AttachmentNotFoundError(DaybookError):
    """Raised when an attachment index is out of range for a note."""

    def __init__(self, note_id: str, index: int, available: int):
        super().__init__(
            f"Note '{note_id}' has no attachment at index {index}",
            code=ErrorCode.ATTACHMENT_NOT_FOUND,
            details={"note_id": note_id, "index": index, "available": available},
        )
        self.note_id = note_id
        self.index = index
        self.available = available


class StorageError(DaybookError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class StorageUnavailableError(StorageError):
    """Raised when the note root directory cannot be listed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation="list",
            path=path,
            code=ErrorCode.STORAGE_UNAVAILABLE,
            original_error=original_error,
        )


class StorageWriteFailedError(StorageError):
    """Raised when a note directory or content file cannot be written."""

    def __init__(
        self,
        message: str,
        operation: str = "write",
        path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation=operation,
            path=path,
            code=ErrorCode.STORAGE_WRITE_FAILED,
            original_error=original_error,
        )


class SyncError(DaybookError):
    """Raised for version-control synchronization errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.SYNC_REMOTE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class SyncStageFailedError(SyncError):
    """Raised when staging or committing a saved note fails.

    The content is on disk but not recorded in the work tree history,
    so the save caller is told about it.
    """

    def __init__(
        self,
        message: str,
        operation: str = "commit",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            operation=operation,
            code=ErrorCode.SYNC_STAGE_FAILED,
            original_error=original_error,
        )


class SyncRemoteFailedError(SyncError):
    """Raised when a pull or push against the remote fails.

    Never reaches save callers; the sync routines log it and record it
    in the service status.
    """

    def __init__(
        self,
        message: str,
        operation: str = "pull",
        original_error: Optional[Exception] = None,
    ):
        code = (
            ErrorCode.SYNC_PUSH_FAILED
            if operation == "push"
            else ErrorCode.SYNC_PULL_FAILED
        )
        super().__init__(
            message, operation=operation, code=code, original_error=original_error
        )


class ConfigurationError(DaybookError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
