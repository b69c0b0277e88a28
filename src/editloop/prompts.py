"""Prompt templates shared by the workflow and its generative collaborators."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

LOGGER = logging.getLogger(__name__)

BASE_PROMPT = (
    "You are an experienced software engineer working on an existing code base. "
    "Follow the conventions already present in the repository and keep changes focused."
)

JSON_FILES_INSTRUCTION = (
    "You will respond ONLY in JSON. From the requirements quietly consider which the files may be required "
    "to complete the task. You MUST output your answer ONLY as JSON in the format of this example:\n"
    "<example>\n{\n  \"files\": [\"file1\", \"file2\", \"file3\"]\n}\n</example>"
)

COMPILE_FIX_HEADER = "Immediate task: Fix the following compile errors:"
TEST_FIX_HEADER = "Immediate task: Fix the following test failures:"


def build_prompt(*, information: str, requirements: str, action: str) -> str:
    """Assemble a prompt from background information, requirements and an action."""
    return (
        f"{BASE_PROMPT}\n{information}\n\n"
        "The requirements of the task are as follows:\n"
        f"<requirements>\n{requirements}\n</requirements>\n\n"
        "The action to be performed is as follows:\n"
        f"<action>\n{action}\n</action>\n"
    )


def render_file_contents(root: Path, paths: Sequence[str]) -> str:
    """Render the contents of ``paths`` as a ``<file_contents>`` XML block."""
    parts = ["<file_contents>"]
    for relative in paths:
        target = root / relative
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.debug("Skipping unreadable file %s: %s", target, error)
            continue
        parts.append(f'<file path="{relative}">\n{content}\n</file>')
    parts.append("</file_contents>")
    return "\n".join(parts)


def implementation_spec_prompt(file_contents: str, requirements: str) -> str:
    return (
        f"{file_contents}\n"
        f"<requirements>{requirements}</requirements>\n"
        "You are a senior software engineer. Your job is to review the provided user requirements against the code "
        "provided and produce an implementation design specification to give to a junior developer to implement "
        "the changes in the provided files.\n"
        "Do not provide any details of verification commands etc as the CI/CD build will run integration tests. "
        "Only detail the changes required in the files for the pull request.\n"
        "Check if any of the requirements have already been correctly implemented in the code as to not duplicate "
        "work.\n"
        "Look at the existing style of the code when producing the requirements.\n"
    )


def compile_fix_requirements(specification: str, diagnostic: str | None) -> str:
    if not diagnostic:
        return specification
    return f"{specification}\n{COMPILE_FIX_HEADER}\n{diagnostic}"


def static_analysis_fix_requirements(command: str, diagnostic: str) -> str:
    return f"Static analysis command: {command}\n{diagnostic}\nFix these static analysis errors"


def add_tests_requirements(requirements: str, diagnostic: str | None = None) -> str:
    text = (
        f"{requirements}\n"
        "Some of the requirements may have already been implemented, so don't duplicate any existing "
        "implementation meeting the requirements.\n"
        "Write any additional tests that would be of value."
    )
    if diagnostic:
        text = f"{text}\n{TEST_FIX_HEADER}\n{diagnostic}"
    return text


def project_files_information(paths: Sequence[str]) -> str:
    listing = "\n".join(paths)
    return f"<project_files>\n{listing}\n</project_files>"


__all__ = [
    "BASE_PROMPT",
    "COMPILE_FIX_HEADER",
    "JSON_FILES_INSTRUCTION",
    "TEST_FIX_HEADER",
    "build_prompt",
    "compile_fix_requirements",
    "implementation_spec_prompt",
    "project_files_information",
    "render_file_contents",
    "static_analysis_fix_requirements",
    "add_tests_requirements",
]
