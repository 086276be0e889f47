"""Configuration module for the daybook server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from daybook_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls
_USER_ENV = Path.home() / ".daybook" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes")

# 64 MiB of note text is far more than a journal accumulates in years
DEFAULT_CACHE_BUDGET_BYTES = 64 * 1024 * 1024


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


class DaybookConfig(BaseModel):
    """Configuration for the daybook server."""

    # Base directory for resolving relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("DAYBOOK_BASE_DIR", "."))
    )
    # Note root: must be the top level of a git work tree
    notes_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("DAYBOOK_NOTES_DIR", "db"))
    )
    # Ceiling on the UTF-8 size of note content held in memory
    cache_budget_bytes: int = Field(
        default_factory=lambda: int(
            os.getenv("DAYBOOK_CACHE_BUDGET_BYTES", str(DEFAULT_CACHE_BUDGET_BYTES))
        )
    )
    # Quiet period after the last save before a remote sync runs
    sync_debounce_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("DAYBOOK_SYNC_DEBOUNCE_SECONDS", "10")
        )
    )
    # Interval between background pulls from the remote
    reconcile_interval_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("DAYBOOK_RECONCILE_INTERVAL_SECONDS", "300")
        )
    )
    reconcile_enabled: bool = Field(
        default_factory=lambda: _env_flag("DAYBOOK_RECONCILE_ENABLED", "true")
    )
    commit_message: str = Field(
        default_factory=lambda: os.getenv("DAYBOOK_COMMIT_MESSAGE", "automated-update")
    )
    # Timeouts (seconds) for local git commands and for pull/push
    git_timeout: int = Field(
        default_factory=lambda: int(os.getenv("DAYBOOK_GIT_TIMEOUT", "30"))
    )
    git_network_timeout: int = Field(
        default_factory=lambda: int(os.getenv("DAYBOOK_GIT_NETWORK_TIMEOUT", "300"))
    )
    # Prefix for attachment references handed back to clients
    asset_base_url: str = Field(
        default_factory=lambda: os.getenv("DAYBOOK_ASSET_BASE_URL", "/notes")
    )
    # Log directory override; None means ~/.daybook/logs
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("DAYBOOK_LOG_DIR")) if os.getenv("DAYBOOK_LOG_DIR") else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("DAYBOOK_SERVER_NAME", "daybook-mcp"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_sync_config(self) -> "DaybookConfig":
        """Reject schedules and budgets that cannot work."""
        if self.cache_budget_bytes < 0:
            raise ValueError("cache_budget_bytes must be >= 0")
        if self.sync_debounce_seconds <= 0:
            raise ValueError("sync_debounce_seconds must be > 0")
        if self.reconcile_interval_seconds <= 0:
            raise ValueError("reconcile_interval_seconds must be > 0")
        if self.git_timeout <= 0 or self.git_network_timeout <= 0:
            raise ValueError("git timeouts must be > 0")
        if self.cache_budget_bytes == 0:
            logger.warning(
                "cache_budget_bytes is 0: notes will be read from disk on every request"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_notes_dir(self) -> Path:
        """Absolute, resolved path of the note root."""
        return self.get_absolute_path(self.notes_dir).resolve()


# Create a global config instance
config = DaybookConfig()
