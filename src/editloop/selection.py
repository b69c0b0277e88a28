"""Generative helpers that choose which project files a request concerns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence

from .cache import CacheRetry
from .models.llm_client import LLMClient
from .project import ProjectInfo
from .prompts import JSON_FILES_INSTRUCTION, build_prompt, project_files_information
from .tools.vcs import GitRepository

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SelectedFile:
    """A file chosen for editing together with the model's reason."""

    path: str
    reason: str = ""


@dataclass(slots=True)
class SelectFilesResponse:
    """Files to edit (primary) and files useful as context (secondary)."""

    primary_files: list[SelectedFile] = field(default_factory=list)
    secondary_files: list[SelectedFile] = field(default_factory=list)

    def paths(self) -> list[str]:
        return [item.path for item in [*self.primary_files, *self.secondary_files]]


@dataclass(slots=True)
class FilenamesResponse:
    files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SummaryResponse:
    summary: str


class FileSelector(Protocol):
    def select(self, requirements: str, project: ProjectInfo) -> SelectFilesResponse: ...


class FilenameExtractor(Protocol):
    def extract(self, text: str) -> List[str]: ...


_SELECT_ACTION = (
    "You will respond ONLY in JSON. Select the files that must be modified to implement the requirements as "
    "primary_files, and the files that are useful to read for context (interfaces, related tests, helpers) as "
    "secondary_files. Every path must come from the project files listed above. Give a short reason for each."
)


def _known_paths(candidates: Sequence[str], known: set[str]) -> List[str]:
    kept: List[str] = []
    for candidate in candidates:
        cleaned = candidate.strip().replace("\\", "/")
        while cleaned.startswith("./"):
            cleaned = cleaned[2:]
        if cleaned in known:
            kept.append(cleaned)
        elif cleaned:
            LOGGER.debug("Dropping unknown path suggested by the model: %s", cleaned)
    return kept


class LLMFileSelector:
    """Pick files from the project's tracked file list with a single JSON call."""

    def __init__(self, client: LLMClient, repo: GitRepository, *, cache_retry: CacheRetry | None = None) -> None:
        self._client = client
        self._repo = repo
        self._cache_retry = cache_retry or CacheRetry()

    def select(self, requirements: str, project: ProjectInfo) -> SelectFilesResponse:
        project_files = self._repo.list_tracked_paths()
        prompt = build_prompt(
            information=project_files_information(project_files),
            requirements=requirements,
            action=_SELECT_ACTION,
        )
        response = self._cache_retry.call(
            "selectFilesToEdit",
            [requirements, project.base_dir, project.language, project_files],
            lambda: self._client.generate_json(prompt, SelectFilesResponse, operation="selectFilesToEdit"),
            result_type=SelectFilesResponse,
        )
        known = set(project_files)
        return SelectFilesResponse(
            primary_files=[
                SelectedFile(path=path, reason=item.reason)
                for item in response.primary_files
                for path in _known_paths([item.path], known)
            ],
            secondary_files=[
                SelectedFile(path=path, reason=item.reason)
                for item in response.secondary_files
                for path in _known_paths([item.path], known)
            ],
        )


class LLMFilenameExtractor:
    """Extract project filenames mentioned in diagnostic output."""

    def __init__(self, client: LLMClient, repo: GitRepository, *, cache_retry: CacheRetry | None = None) -> None:
        self._client = client
        self._repo = repo
        self._cache_retry = cache_retry or CacheRetry()

    def extract(self, text: str) -> List[str]:
        project_files = self._repo.list_tracked_paths()
        summary = f"{text}\n\nExtract the filenames from the compile errors."
        prompt = build_prompt(
            information=project_files_information(project_files),
            requirements=summary,
            action=JSON_FILES_INSTRUCTION,
        )
        response = self._cache_retry.call(
            "extractFilenames",
            [summary, project_files],
            lambda: self._client.generate_json(prompt, FilenamesResponse, operation="extractFilenames"),
            result_type=FilenamesResponse,
        )
        return _known_paths(response.files, set(project_files))


def summarise_requirements(client: LLMClient, requirements: str, *, cache_retry: CacheRetry | None = None) -> str:
    """Return a one-paragraph summary of ``requirements``."""
    prompt = build_prompt(
        information="",
        requirements=requirements,
        action="Summarise the requirements in a single short paragraph that a reviewer can scan quickly.",
    )
    retry = cache_retry or CacheRetry()
    response = retry.call(
        "summariseRequirements",
        [requirements],
        lambda: client.generate_json(prompt, SummaryResponse, operation="summariseRequirements"),
        result_type=SummaryResponse,
    )
    return response.summary


__all__ = [
    "FileSelector",
    "FilenameExtractor",
    "FilenamesResponse",
    "LLMFileSelector",
    "LLMFilenameExtractor",
    "SelectFilesResponse",
    "SelectedFile",
    "summarise_requirements",
]
