"""
Git client implementation for aicommit.

This module wraps the two Git operations the tool needs: reading the staged
diff and committing with a message. All subprocess calls go through
:meth:`GitClient._run` so that unit tests can mock them easily.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs will propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


class NoStagedChanges(GitError):
    """Raised when the index holds no changes to commit."""

    def __init__(self) -> None:
        super().__init__("No staged changes found. Please run 'git add' first.")


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` entry is found or the filesystem
        root is reached. ``.git`` may be a file for worktrees and submodules.
        """
        current = start.resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If Git is missing, or the command exits with a non-zero status
            when ``check`` is True.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd[:3]))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",  # Replace invalid characters instead of failing
            )
        except FileNotFoundError as exc:
            logger.error("Git executable not found: %s", exc)
            raise GitError("Git is not installed or not on PATH") from exc

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd[:3]),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip())
        return result

    # ------------------------------------------------------------------
    # Staged changes and committing
    # ------------------------------------------------------------------
    def get_staged_diff(self) -> str:
        """Return the textual diff of the index.

        Returns
        -------
        str
            Output of ``git diff --cached``.

        Raises
        ------
        NoStagedChanges
            If nothing is staged.
        GitError
            If the diff command fails.
        """
        result = self._run(["diff", "--cached"], check=True)
        if not result.stdout.strip():
            raise NoStagedChanges()
        logger.debug("Staged diff has %d lines", len(result.stdout.splitlines()))
        return result.stdout

    def commit(self, message: str) -> None:
        """Create a commit with the given message as its sole text.

        If the commit fails, a GitError is raised.
        """
        self._run(["commit", "-m", message], check=True)
