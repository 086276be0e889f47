"""Helpers shared by tests that build note trees and git repositories."""

import subprocess
from pathlib import Path

# Fixed "today" used by fixtures that inject a date
TODAY = "20240315"


def run_git(cwd: Path, *args: str) -> str:
    """Run git in cwd and return stdout; fail the test on error."""
    result = subprocess.run(
        ["git", "-C", str(cwd), *args],
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0, f"git {' '.join(args)} failed: {result.stderr}"
    return result.stdout


def write_note(root: Path, note_id: str, content: str, attachments=()) -> Path:
    """Lay out a note directory the way the server does."""
    note_dir = root / note_id
    note_dir.mkdir(parents=True, exist_ok=True)
    (note_dir / "note.md").write_text(content, encoding="utf-8")
    if attachments:
        attach_dir = note_dir / "attachments"
        attach_dir.mkdir(exist_ok=True)
        for name in attachments:
            (attach_dir / name).write_bytes(b"\x89PNG")
    return note_dir
