"""Process execution for build, lint and test commands."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Sequence

LOGGER = logging.getLogger(__name__)

Command = str | Sequence[str]


class CommandFailedError(RuntimeError):
    """Raised when a build, lint or test command exits with a non-zero status.

    The message is the tagged output block, so callers can feed ``str(error)``
    straight back into a prompt as diagnostic text.
    """

    def __init__(self, message: str, result: "CommandResult") -> None:
        super().__init__(message)
        self.result = result


@dataclass(slots=True)
class CommandResult:
    """Exit status plus separately captured output streams."""

    command: str
    cwd: Path
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def combined_output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def format_output(self, tag: str) -> str:
        """Render the result as a ``<tag>`` block suitable for prompts."""
        return (
            f"<{tag}>\n"
            f"<command>{self.command}</command>\n"
            f"<stdout>\n{self.stdout}\n</stdout>\n"
            f"<stderr>\n{self.stderr}\n</stderr>\n"
            f"</{tag}>"
        )

    def check(self, tag: str) -> "CommandResult":
        """Raise :class:`CommandFailedError` unless the command succeeded."""
        if not self.ok:
            raise CommandFailedError(self.format_output(tag), self)
        return self


def _merge_env(extra: Mapping[str, str] | None, unset: Sequence[str] = ()) -> Dict[str, str]:
    """Merge provided environment overrides with the current process state.

    Names in ``unset`` are removed from the inherited environment before the
    overrides are applied.
    """
    env: Dict[str, str] = os.environ.copy()
    for name in unset:
        env.pop(name, None)
    if extra:
        env.update({str(key): str(value) for key, value in extra.items()})
    return env


class CommandRunner:
    """Run commands to completion and capture their output.

    String commands go through the shell because project commands are
    configured as shell lines (``npm run build && npm run lint``).
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    def run(
        self,
        command: Command,
        cwd: Path | str,
        *,
        env: Mapping[str, str] | None = None,
        unset: Sequence[str] = (),
    ) -> CommandResult:
        workdir = Path(cwd)
        display = command if isinstance(command, str) else " ".join(command)
        LOGGER.debug("Running `%s` in %s", display, workdir)
        try:
            process = subprocess.run(  # noqa: S602,S603 - commands come from project configuration
                command if isinstance(command, str) else list(command),
                cwd=workdir,
                env=_merge_env(env, unset),
                shell=isinstance(command, str),
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as error:
            stdout = error.stdout.decode("utf-8", errors="replace") if isinstance(error.stdout, bytes) else error.stdout
            return CommandResult(
                command=display,
                cwd=workdir,
                exit_code=124,
                stdout=stdout or "",
                stderr=f"Command timed out after {self._timeout} seconds",
            )
        except OSError as error:
            return CommandResult(command=display, cwd=workdir, exit_code=127, stdout="", stderr=str(error))

        return CommandResult(
            command=display,
            cwd=workdir,
            exit_code=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )


__all__ = ["Command", "CommandFailedError", "CommandResult", "CommandRunner"]
