"""Turn raw build/test output into a structured remediation hint."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence

from .models.llm_client import LLMClient, LLMClientError
from .prompts import build_prompt, project_files_information
from .tools.vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)

_PATH_TOKEN_SPLIT_RE = re.compile(r"[^\w./\\@-]+")
_PY_MISSING_MODULE_RE = re.compile(r"No module named ['\"]([\w.]+)['\"]")
_JS_MISSING_MODULE_RE = re.compile(r"Cannot find module ['\"]([^'\"]+)['\"]")


@dataclass(slots=True)
class Diagnosis:
    """Extra files to include and packages to install before the next attempt."""

    additional_files: list[str] = field(default_factory=list)
    install_packages: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.additional_files and not self.install_packages


@dataclass(slots=True)
class CompileErrorAnalysis:
    """Structured answer requested from the model."""

    reasoning: str = ""
    additional_files: list[str] = field(default_factory=list)
    install_packages: list[str] = field(default_factory=list)


class ErrorAnalyzer(Protocol):
    def analyze(self, diagnostic: str, candidate_files: Sequence[str]) -> Diagnosis: ...


def _npm_package_name(specifier: str) -> str | None:
    if specifier.startswith((".", "/")):
        return None
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


class HeuristicErrorAnalyzer:
    """Pattern-based analysis used when the model is unavailable.

    Files are proposed when the diagnostic mentions a tracked path that is not
    already a candidate; packages are proposed from missing-module messages.
    """

    def __init__(self, repo: GitRepository | None = None) -> None:
        self._repo = repo

    def analyze(self, diagnostic: str, candidate_files: Sequence[str]) -> Diagnosis:
        tracked: set[str] = set()
        if self._repo is not None:
            try:
                tracked = set(self._repo.list_tracked_paths())
            except GitError as error:
                LOGGER.debug("Unable to list tracked files: %s", error)

        existing = set(candidate_files)
        files: List[str] = []
        for token in _PATH_TOKEN_SPLIT_RE.split(diagnostic):
            candidate = token.strip().replace("\\", "/").rstrip(".:,")
            while candidate.startswith("./"):
                candidate = candidate[2:]
            if candidate in tracked and candidate not in existing and candidate not in files:
                files.append(candidate)

        packages: List[str] = []
        for match in _PY_MISSING_MODULE_RE.finditer(diagnostic):
            name = match.group(1).split(".")[0]
            if name not in packages:
                packages.append(name)
        for match in _JS_MISSING_MODULE_RE.finditer(diagnostic):
            name = _npm_package_name(match.group(1))
            if name and name not in packages:
                packages.append(name)

        return Diagnosis(additional_files=files, install_packages=packages)


_ANALYZE_ACTION = (
    "You will respond ONLY in JSON. Analyse the error output in the requirements. Decide which project files, "
    "beyond the files already being edited, must be included to fix the errors (additional_files), and which "
    "packages must be installed because they are missing (install_packages). Leave a list empty when nothing is "
    "needed. Only name files from the project files listed above."
)


class LLMErrorAnalyzer:
    """Ask the model for a remediation hint, falling back to heuristics on failure."""

    def __init__(
        self,
        client: LLMClient,
        repo: GitRepository,
        *,
        fallback: ErrorAnalyzer | None = None,
    ) -> None:
        self._client = client
        self._repo = repo
        self._fallback = fallback or HeuristicErrorAnalyzer(repo)

    def analyze(self, diagnostic: str, candidate_files: Sequence[str]) -> Diagnosis:
        try:
            project_files = self._repo.list_tracked_paths()
        except GitError as error:
            LOGGER.warning("Unable to list tracked files, using heuristics: %s", error)
            return self._fallback.analyze(diagnostic, candidate_files)
        information = "\n".join(
            [
                project_files_information(project_files),
                "<files_being_edited>",
                *candidate_files,
                "</files_being_edited>",
            ]
        )
        prompt = build_prompt(information=information, requirements=diagnostic, action=_ANALYZE_ACTION)
        try:
            analysis = self._client.generate_json(prompt, CompileErrorAnalysis, operation="analyzeCompileErrors")
        except LLMClientError as error:
            LOGGER.warning("Error analysis request failed, using heuristics: %s", error)
            return self._fallback.analyze(diagnostic, candidate_files)

        known = set(project_files)
        existing = set(candidate_files)
        files = [path for path in analysis.additional_files if path in known and path not in existing]
        return Diagnosis(
            additional_files=list(dict.fromkeys(files)),
            install_packages=[name.strip() for name in analysis.install_packages if name.strip()],
        )


__all__ = [
    "CompileErrorAnalysis",
    "Diagnosis",
    "ErrorAnalyzer",
    "HeuristicErrorAnalyzer",
    "LLMErrorAnalyzer",
]
