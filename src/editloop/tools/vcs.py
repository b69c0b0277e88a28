"""Git operations used by the workflow.

Three things are needed from version control: the files the editor's last
commit introduced, a commit of every tracked change, and the tracked file
list that generative calls are grounded on.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

LOGGER = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class GitRepository:
    """Run ``git`` from a directory inside a repository.

    ``root`` is the top level holding ``.git``. ``workdir`` is where commands
    run, so path listings come back relative to it; for a project in a
    subfolder that is the project's base directory.
    """

    def __init__(self, root: Path | str, *, workdir: Path | str | None = None) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")
        self.workdir = self.root if workdir is None else Path(workdir).resolve()

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Find the repository enclosing ``start`` and run commands from ``start``."""
        start_path = Path(start or Path.cwd()).resolve()
        root = next((path for path in (start_path, *start_path.parents) if (path / ".git").exists()), None)
        if root is None:
            raise GitError(f"Unable to locate a git repository from {start_path}")
        return cls(root, workdir=start_path)

    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        LOGGER.debug("git %s (in %s)", " ".join(args), self.workdir)
        result = subprocess.run(
            ["git", *args],
            cwd=self.workdir,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
        if check and result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {detail}")
        return result

    def list_tracked_paths(self) -> List[str]:
        """Tracked files under ``workdir``, relative to it."""
        output = self._run_git(["ls-files", "-z"]).stdout
        return [entry for entry in output.split("\0") if entry]

    def _head(self) -> str | None:
        result = self._run_git(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def files_added_in_head_commit(self) -> List[str]:
        """Paths the ``HEAD`` commit added under ``workdir``, relative to it."""
        if self._head() is None:
            return []
        output = self._run_git(
            ["diff-tree", "-r", "--root", "--relative", "--no-commit-id", "--name-only", "--diff-filter=A", "HEAD"]
        ).stdout
        return [line.strip() for line in output.splitlines() if line.strip()]

    def commit_all_tracked(self, message: str) -> str | None:
        """Stage every tracked change in the repository and commit it.

        Untracked files are never added. Returns the new ``HEAD``, or ``None``
        when there was nothing to commit.
        """
        self._run_git(["add", "--update", "--", ":/"])
        if self._head() is not None and self._run_git(["diff", "--cached", "--quiet"], check=False).returncode == 0:
            return None
        result = self._run_git(["commit", "-m", message], check=False)
        if result.returncode != 0:
            detail = (result.stdout or result.stderr).strip()
            if "nothing to commit" in detail.lower() or "nothing added to commit" in detail.lower():
                return None
            raise GitError(f"git commit failed: {detail}")
        return self._head()


__all__ = ["GitError", "GitRepository"]
