"""Git wrapper for the note work tree.

Provides subprocess-based pull, push and commit operations against the
work tree that holds the notes. Every command runs with ``git -C <root>``
and a timeout so a hung remote cannot block the process forever.
"""

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from daybook_mcp.models.schema import PullResult

logger = logging.getLogger(__name__)

NOTHING_TO_COMMIT = "nothing to commit"


class GitError(Exception):
    """Base exception for git operations.

    Attributes:
        message: Human-readable error message
        command: The git command that failed (if applicable)
        returncode: Exit code from git (if applicable)
        output: Combined stdout/stderr from git (if applicable)
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        output: Optional[str] = None,
    ):
        self.message = message
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.returncode is not None:
            parts.append(f"returncode: {self.returncode}")
        if self.output:
            parts.append(f"output: {self.output[:200]}")
        return " | ".join(parts)


def _combined_output(result: subprocess.CompletedProcess) -> str:
    parts = [result.stdout or "", result.stderr or ""]
    return "\n".join(p.strip() for p in parts if p and p.strip())


class GitWrapper:
    """Wrapper for git operations on the note work tree via subprocess.

    Unlike a sparse mirror, this wrapper never initializes a repository:
    the note root has to be an existing work tree (see
    :meth:`repository_root_matches`).
    """

    def __init__(
        self,
        repo_path: Path,
        timeout: int = 30,
        network_timeout: int = 300,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.timeout = timeout
        self.network_timeout = network_timeout

    def _run_git(
        self,
        args: List[str],
        check: bool = True,
        timeout: Optional[int] = None,
        retries: int = 3,
        retry_delay: float = 0.1,
    ) -> subprocess.CompletedProcess:
        """Run a git command via subprocess with retry for lock contention.

        Args:
            args: Git command arguments (without 'git' prefix)
            check: If True, raise GitError on non-zero exit
            timeout: Seconds before the command is killed (default: self.timeout)
            retries: Number of retries for index.lock contention
            retry_delay: Base delay between retries (multiplied by attempt number)

        Returns:
            CompletedProcess with command results

        Raises:
            GitError: If check=True and command fails after all retries
        """
        cmd = ["git", "-C", str(self.repo_path)] + args
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "GIT_MERGE_AUTOEDIT": "no"}
        limit = timeout or self.timeout
        last_error: Optional[GitError] = None

        for attempt in range(retries + 1):
            try:
                result = subprocess.run(
                    cmd,
                    check=False,
                    capture_output=True,
                    text=True,
                    timeout=limit,
                    env=env,
                )

                if result.returncode != 0 and result.stderr:
                    if "index.lock" in result.stderr and attempt < retries:
                        logger.debug(
                            "Git index.lock contention, retry %d/%d: %s",
                            attempt + 1,
                            retries,
                            args,
                        )
                        time.sleep(retry_delay * (attempt + 1))
                        continue

                if check and result.returncode != 0:
                    raise GitError(
                        message=f"Git command failed: {' '.join(args)}",
                        command=cmd,
                        returncode=result.returncode,
                        output=_combined_output(result),
                    )

                return result

            except subprocess.TimeoutExpired as e:
                last_error = GitError(
                    message=f"Git command timed out ({limit}s): {' '.join(args)}",
                    command=cmd,
                )
                if attempt < retries:
                    time.sleep(retry_delay * (attempt + 1))
                    continue
                raise last_error from e
            except FileNotFoundError as e:
                raise GitError(
                    message="Git is not installed or not in PATH", command=cmd
                ) from e

        if last_error:
            raise last_error
        raise GitError(f"Git command failed after {retries} retries: {args}")

    def toplevel(self) -> Optional[Path]:
        """Top level of the work tree containing repo_path, or None."""
        try:
            result = self._run_git(["rev-parse", "--show-toplevel"], check=False)
        except GitError as e:
            logger.warning("Could not locate work tree: %s", e)
            return None
        out = result.stdout.strip()
        if result.returncode != 0 or not out:
            return None
        return Path(out).resolve()

    def repository_root_matches(self, expected_path: Path) -> bool:
        """Check that expected_path is exactly the top of a git work tree.

        A note root nested inside some other repository does not match.
        """
        top = self.toplevel()
        return top is not None and top == Path(expected_path).resolve()

    def head(self) -> Optional[str]:
        """Current HEAD commit hash, or None for an unborn branch."""
        result = self._run_git(["rev-parse", "--verify", "-q", "HEAD"], check=False)
        out = result.stdout.strip()
        if result.returncode != 0 or not out:
            return None
        return out

    def stage_and_commit(self, message: str) -> bool:
        """Stage every change in the work tree and commit it.

        Args:
            message: Commit message

        Returns:
            True if a commit was created, False if there was nothing to commit

        Raises:
            GitError: If staging fails or the commit fails for any other reason
        """
        self._run_git(["add", "-A"])

        result = self._run_git(["commit", "-m", message], check=False)
        if result.returncode == 0:
            logger.debug("Committed work tree: %s", message)
            return True

        output = _combined_output(result)
        if NOTHING_TO_COMMIT in output:
            logger.debug("Nothing to commit")
            return False

        raise GitError(
            message="Git commit failed",
            command=["commit", "-m", message],
            returncode=result.returncode,
            output=output,
        )

    def pull(self) -> PullResult:
        """Pull from the configured upstream.

        A dry-run fetch runs first; when it reports nothing the pull is
        skipped entirely.

        Returns:
            PullResult whose ``changed`` flag says whether HEAD moved

        Raises:
            GitError: If the fetch or the pull fails
        """
        probe = self._run_git(
            ["fetch", "--dry-run"], timeout=self.network_timeout, retries=0
        )
        if not _combined_output(probe):
            return PullResult(changed=False)

        before = self.head()
        self._run_git(
            ["pull", "--no-rebase", "--no-edit"],
            timeout=self.network_timeout,
            retries=0,
        )
        after = self.head()
        changed = before != after
        if changed:
            logger.info(
                "Pulled remote changes: %s -> %s",
                before[:7] if before else "(none)",
                after[:7] if after else "(none)",
            )
        return PullResult(changed=changed, head_before=before, head_after=after)

    def push(self) -> None:
        """Push local commits to the configured upstream.

        Raises:
            GitError: If the push fails
        """
        self._run_git(["push"], timeout=self.network_timeout, retries=0)
        logger.debug("Pushed %s", self.repo_path)
