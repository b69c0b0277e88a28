"""Code editor adapter that delegates file edits to the ``aider`` CLI."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from ..context import AgentContext
from .runner import CommandRunner

LOGGER = logging.getLogger(__name__)

_INPUT_PREFIX_RE = re.compile(r"^(SYSTEM|USER)\s")
_OUTPUT_PREFIX_RE = re.compile(r"^ASSISTANT\s")


class EditorError(RuntimeError):
    """Opaque failure from the editing capability; the message is its output."""


class CodeEditor(Protocol):
    """Anything that can modify ``file_paths`` to satisfy ``requirements``."""

    def edit(self, requirements: str, file_paths: Sequence[str]) -> None: ...


@dataclass(frozen=True, slots=True)
class EditorModel:
    """Model selection for the editor, priced per million estimated tokens."""

    name: str
    args: tuple[str, ...]
    env_var: str
    input_price: float
    output_price: float

    def estimate_cost(self, input_text: str, output_text: str) -> float:
        # Roughly four characters per token.
        input_tokens = len(input_text) / 4
        output_tokens = len(output_text) / 4
        return (input_tokens * self.input_price + output_tokens * self.output_price) / 1_000_000


SONNET = EditorModel("sonnet", ("--sonnet",), "ANTHROPIC_API_KEY", 3.0, 15.0)
DEEPSEEK = EditorModel("deepseek", ("--model", "deepseek/deepseek-coder"), "DEEPSEEK_API_KEY", 0.14, 0.28)
OPENAI = EditorModel("openai", (), "OPENAI_API_KEY", 2.5, 10.0)

PROVIDER_MODELS = (SONNET, DEEPSEEK, OPENAI)


def parse_history_input(history: str) -> str:
    """Return the system and user messages recorded in an aider history file."""
    return "\n".join(
        _INPUT_PREFIX_RE.sub("", line) for line in history.splitlines() if _INPUT_PREFIX_RE.match(line)
    )


def parse_history_output(history: str) -> str:
    """Return the assistant messages recorded in an aider history file."""
    return "\n".join(
        _OUTPUT_PREFIX_RE.sub("", line) for line in history.splitlines() if _OUTPUT_PREFIX_RE.match(line)
    )


class AiderCodeEditor:
    """Run ``aider`` non-interactively over a set of files.

    The requirement text is written to ``message_file`` and the model is picked
    from the first available credential (Anthropic, then DeepSeek, then
    OpenAI). Only the chosen provider's key is forwarded to the process.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        context: AgentContext,
        runner: CommandRunner | None = None,
        command: str = "aider",
        message_file: str = ".aider-requirements",
        history_dir: str = ".editloop/aider/llm-history",
        extra_args: Sequence[str] = (),
    ) -> None:
        self.root = Path(root)
        self._context = context
        self._runner = runner or CommandRunner()
        self._command = command
        self._message_file = message_file
        self._history_dir = history_dir
        self._extra_args = tuple(extra_args)

    def _select_model(self) -> tuple[EditorModel, str]:
        credentials = self._context.credentials
        for model, key in (
            (SONNET, credentials.anthropic_key),
            (DEEPSEEK, credentials.deepseek_key),
            (OPENAI, credentials.openai_key),
        ):
            if key:
                return model, key
        raise EditorError("Aider code editing requires a key for Anthropic, Deepseek or OpenAI")

    def edit(self, requirements: str, file_paths: Sequence[str]) -> None:
        LOGGER.debug("Editor requirements:\n%s", requirements)
        files = [path for path in file_paths if path and path.strip()]
        LOGGER.debug("Editor files: %s", files)

        model, key = self._select_model()
        self._context.span.set_attribute("model", model.name)

        (self.root / self._message_file).write_text(requirements, encoding="utf-8")

        history_root = self.root / self._history_dir
        history_path = history_root / f"{self._context.agent_id}-{int(time.time() * 1000)}"
        try:
            history_root.mkdir(parents=True, exist_ok=True)
            history_path.write_text("", encoding="utf-8")
        except OSError as error:
            LOGGER.error("Unable to prepare aider history file %s: %s", history_path, error)
            raise EditorError(f"Fatal error reading/writing aider history file: {error}") from error

        command = [
            self._command,
            "--no-check-update",
            "--yes",
            *model.args,
            *self._extra_args,
            f"--llm-history-file={history_path}",
            f"--message-file={self._message_file}",
            *files,
        ]
        others = [item.env_var for item in PROVIDER_MODELS if item.env_var != model.env_var]
        result = self._runner.run(command, self.root, env={model.env_var: key}, unset=others)
        LOGGER.debug("Editor output:\n%s", result.combined_output)

        self._record_usage(model, history_path)

        if not result.ok:
            raise EditorError(f"{result.stdout} {result.stderr}")

    def _record_usage(self, model: EditorModel, history_path: Path) -> None:
        try:
            history = history_path.read_text(encoding="utf-8")
        except OSError as error:
            LOGGER.error("Unable to read aider history file %s: %s", history_path, error)
            return

        input_text = parse_history_input(history)
        output_text = parse_history_output(history)
        cost = model.estimate_cost(input_text, output_text)
        self._context.add_cost(cost)
        self._context.span.set_attributes(
            {
                "inputChars": len(input_text),
                "outputChars": len(output_text),
                "cost": cost,
            }
        )
        LOGGER.debug("Aider cost %.4f", cost)
        history_path.unlink(missing_ok=True)


__all__ = [
    "AiderCodeEditor",
    "CodeEditor",
    "EditorError",
    "EditorModel",
    "parse_history_input",
    "parse_history_output",
]
