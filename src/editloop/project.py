"""Project descriptors and detection of buildable projects in a repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Protocol, Sequence

from .config import ProjectEntry
from .tools.runner import CommandRunner

LOGGER = logging.getLogger(__name__)


class ProjectDetectionError(RuntimeError):
    """Raised when the repository's projects cannot be determined."""


class DetectionAmbiguityError(ProjectDetectionError):
    """Raised when detection does not yield exactly one project."""

    def __init__(self, candidates: Sequence["ProjectInfo"], *, base_dir: str | None = None) -> None:
        self.candidates = list(candidates)
        self.base_dir = base_dir
        listing = ", ".join(f"{item.base_dir} ({item.language or 'unknown'})" for item in self.candidates)
        if base_dir is not None:
            message = f"No detected project has base dir {base_dir!r}; candidates: {listing or 'none'}"
        elif not self.candidates:
            message = "No project detected; configure one under `projects`."
        else:
            message = f"Expected exactly one project, detected {len(self.candidates)}: {listing}"
        super().__init__(message)


class LanguageTools(Protocol):
    """Language specific helpers used while repairing a project."""

    def install_package(self, name: str) -> None: ...


class _InstallerTools:
    """Best-effort package installer; failures are logged, never raised."""

    def __init__(self, root: Path, command: Callable[[str], List[str]], *, runner: CommandRunner | None = None) -> None:
        self.root = root
        self._command = command
        self._runner = runner or CommandRunner()

    def install_package(self, name: str) -> None:
        command = self._command(name)
        LOGGER.info("Installing package %s", name)
        result = self._runner.run(command, self.root)
        if not result.ok:
            LOGGER.warning("Failed to install %s: %s", name, result.stderr.strip() or result.stdout.strip())


class PythonTools(_InstallerTools):
    """Installs with the ``python`` on PATH, the interpreter the project commands use."""

    def __init__(self, root: Path, *, runner: CommandRunner | None = None) -> None:
        super().__init__(root, lambda name: ["python", "-m", "pip", "install", name], runner=runner)


class NodeTools(_InstallerTools):
    def __init__(self, root: Path, *, runner: CommandRunner | None = None) -> None:
        super().__init__(root, lambda name: ["npm", "install", name], runner=runner)


@dataclass(frozen=True, slots=True)
class ProjectInfo:
    """Immutable descriptor of one buildable project."""

    base_dir: str
    compile: str
    test: str | None = None
    static_analysis: str | None = None
    language: str | None = None
    language_tools: LanguageTools | None = None

    def resolve(self, repo_root: Path) -> Path:
        return (repo_root / self.base_dir).resolve()


@dataclass(frozen=True, slots=True)
class LanguageProfile:
    """Marker files and default commands for a supported language."""

    language: str
    markers: tuple[str, ...]
    compile: str
    test: str | None
    static_analysis: str | None
    tools: Callable[..., LanguageTools]


LANGUAGE_PROFILES: Dict[str, LanguageProfile] = {
    "python": LanguageProfile(
        language="python",
        markers=("pyproject.toml", "setup.py", "setup.cfg"),
        compile="python -m compileall -q .",
        test="pytest -q",
        static_analysis=None,
        tools=PythonTools,
    ),
    "node": LanguageProfile(
        language="node",
        markers=("package.json",),
        compile="npm run build",
        test="npm test",
        static_analysis="npm run lint",
        tools=NodeTools,
    ),
}

_SKIPPED_DIRECTORIES = {"node_modules", "__pycache__", "venv", "build", "dist"}


class ProjectDetector:
    """Return project candidates from configuration or marker files."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        entries: Sequence[ProjectEntry] = (),
        runner: CommandRunner | None = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self._entries = list(entries)
        self._runner = runner

    def detect(self) -> List[ProjectInfo]:
        if self._entries:
            return [self._from_entry(entry) for entry in self._entries]

        candidates = self._scan(self.repo_root)
        if candidates:
            return candidates

        for child in sorted(self.repo_root.iterdir()):
            if not child.is_dir() or child.name.startswith(".") or child.name in _SKIPPED_DIRECTORIES:
                continue
            candidates.extend(self._scan(child))
        return candidates

    def _scan(self, directory: Path) -> List[ProjectInfo]:
        found: List[ProjectInfo] = []
        for profile in LANGUAGE_PROFILES.values():
            if not any((directory / marker).is_file() for marker in profile.markers):
                continue
            base_dir = directory.relative_to(self.repo_root).as_posix() or "."
            found.append(
                ProjectInfo(
                    base_dir=base_dir,
                    compile=profile.compile,
                    test=profile.test,
                    static_analysis=profile.static_analysis,
                    language=profile.language,
                    language_tools=profile.tools(directory, runner=self._runner),
                )
            )
        return found

    def _from_entry(self, entry: ProjectEntry) -> ProjectInfo:
        profile = LANGUAGE_PROFILES.get((entry.language or "").lower())
        tools = None
        if profile is not None:
            tools = profile.tools((self.repo_root / entry.base_dir).resolve(), runner=self._runner)
        return ProjectInfo(
            base_dir=entry.base_dir,
            compile=entry.compile,
            test=entry.test,
            static_analysis=entry.static_analysis,
            language=entry.language,
            language_tools=tools,
        )


def resolve_single_project(detector: ProjectDetector) -> ProjectInfo:
    """Return the only detected project or raise :class:`DetectionAmbiguityError`."""
    candidates = detector.detect()
    if len(candidates) != 1:
        raise DetectionAmbiguityError(candidates)
    return candidates[0]


__all__ = [
    "DetectionAmbiguityError",
    "LANGUAGE_PROFILES",
    "LanguageTools",
    "NodeTools",
    "ProjectDetectionError",
    "ProjectDetector",
    "ProjectInfo",
    "PythonTools",
    "resolve_single_project",
]
