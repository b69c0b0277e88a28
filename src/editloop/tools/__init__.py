"""Tool integrations used by the verify-and-repair workflow."""

from .editor import AiderCodeEditor, CodeEditor, EditorError
from .runner import CommandFailedError, CommandResult, CommandRunner
from .vcs import GitError, GitRepository

__all__ = [
    "AiderCodeEditor",
    "CodeEditor",
    "CommandFailedError",
    "CommandResult",
    "CommandRunner",
    "EditorError",
    "GitError",
    "GitRepository",
]
