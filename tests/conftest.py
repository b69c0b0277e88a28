from __future__ import annotations

import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def run_git(repo_root: Path, *cmd: str) -> str:
    result = subprocess.run(
        ["git", *cmd],
        cwd=repo_root,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Create a tiny committed Python project inside a git repository."""

    repo_root = tmp_path / "tiny-repo"
    repo_root.mkdir()

    run_git(repo_root, "init")
    run_git(repo_root, "config", "user.email", "editloop@example.com")
    run_git(repo_root, "config", "user.name", "Edit Loop")
    run_git(repo_root, "config", "commit.gpgsign", "false")

    src_dir = repo_root / "tiny_app"
    src_dir.mkdir()
    (src_dir / "__init__.py").write_text("from .calculator import add\n", encoding="utf-8")
    (src_dir / "calculator.py").write_text(
        textwrap.dedent(
            """
            from __future__ import annotations


            def add(left: int, right: int) -> int:
                return left + right
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (repo_root / "pyproject.toml").write_text(
        textwrap.dedent(
            """
            [project]
            name = "tiny-app"
            version = "0.0.1"
            """
        ).lstrip(),
        encoding="utf-8",
    )

    run_git(repo_root, "add", ".")
    run_git(repo_root, "commit", "-m", "Initial tiny repo state")
    return repo_root
