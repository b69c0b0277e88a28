"""Verify-and-repair workflow driving edit, compile, lint and test cycles.

The workflow runs three bounded-retry loops in sequence:

1. edit then compile. This loop is a gate: if the project never compiles, nothing
   else runs and the repository is left in its last attempted state.
2. static analysis. Best effort; every round is committed so fixes applied by
   the analysis tool itself survive even when the round fails.
3. tests. Best effort; the final diagnosis is reported but never raised.

Failures from the editor, the build and version control are all folded into
diagnostic text that seeds the next round.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Protocol, Sequence

from .analysis import Diagnosis, ErrorAnalyzer, LLMErrorAnalyzer
from .cache import CacheRetry, CallCache
from .config import EditLoopConfig
from .context import AgentContext
from .models.llm_client import LLMClient, LLMClientError
from .project import ProjectDetector, ProjectInfo, resolve_single_project
from .prompts import (
    add_tests_requirements,
    compile_fix_requirements,
    implementation_spec_prompt,
    render_file_contents,
    static_analysis_fix_requirements,
)
from .selection import FileSelector, FilenameExtractor, LLMFileSelector, LLMFilenameExtractor
from .tools.editor import AiderCodeEditor, CodeEditor, EditorError
from .tools.runner import CommandFailedError, CommandResult, CommandRunner
from .tools.vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)

STATIC_ANALYSIS_COMMIT_MESSAGE = "Fix static analysis errors"

_REPAIRABLE_ERRORS = (CommandFailedError, EditorError, GitError)


class StageOutcome(str, Enum):
    """Result of one workflow stage."""

    PASSED = "passed"
    ABORTED = "exhausted-and-aborted"
    TOLERATED = "exhausted-but-tolerated"


class VersionControl(Protocol):
    def files_added_in_head_commit(self) -> List[str]: ...

    def commit_all_tracked(self, message: str) -> str | None: ...


class WorkingFileSet:
    """Ordered, append-only collection of paths under consideration.

    Duplicates are kept: the same path may be merged in more than once over a
    run and nothing is ever removed.
    """

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths: List[str] = list(paths)

    def append(self, path: str) -> None:
        self._paths.append(path)

    def extend(self, paths: Iterable[str]) -> None:
        self._paths.extend(paths)

    def to_list(self) -> List[str]:
        return list(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __repr__(self) -> str:
        return f"WorkingFileSet({self._paths!r})"


@dataclass(slots=True)
class ProjectToolkit:
    """Collaborators bound to a single project directory."""

    editor: CodeEditor
    vcs: VersionControl
    selector: FileSelector
    analyzer: ErrorAnalyzer
    filename_extractor: FilenameExtractor


ToolkitFactory = Callable[[Path], ProjectToolkit]


@dataclass(slots=True)
class WorkflowSettings:
    """Attempt limits for each loop."""

    max_compile_attempts: int = 2
    max_static_analysis_attempts: int = 2
    max_test_attempts: int = 2


@dataclass(slots=True)
class WorkflowReport:
    """What happened during a run.

    ``test_diagnosis`` is informational only; a failing test stage does not
    turn the run into a failure.
    """

    project: ProjectInfo
    files: WorkingFileSet
    specification: str = ""
    compile: StageOutcome | None = None
    static_analysis: StageOutcome | None = None
    tests: StageOutcome | None = None
    test_diagnosis: Diagnosis | None = None

    @property
    def compiled(self) -> bool:
        return self.compile is StageOutcome.PASSED


class CodeEditingWorkflow:
    """Edit a repository to meet a requirement, then verify and repair it."""

    def __init__(
        self,
        *,
        repo_root: Path | str,
        detector: ProjectDetector,
        client: LLMClient,
        runner: CommandRunner,
        toolkit_factory: ToolkitFactory,
        settings: WorkflowSettings | None = None,
    ) -> None:
        self._repo_root = Path(repo_root).resolve()
        self._detector = detector
        self._client = client
        self._runner = runner
        self._toolkit_factory = toolkit_factory
        self._settings = settings or WorkflowSettings()

    @classmethod
    def from_config(
        cls,
        config: EditLoopConfig,
        repo_root: Path | str,
        *,
        client: LLMClient,
        context: AgentContext | None = None,
        cache: CallCache | None = None,
    ) -> "CodeEditingWorkflow":
        """Wire the production collaborators described by ``config``."""
        root = Path(repo_root).resolve()
        runner = CommandRunner(timeout=config.workflow.command_timeout)
        cache_retry = CacheRetry(
            cache,
            max_attempts=config.cache.max_attempts,
            retry_delay=config.cache.retry_delay,
        )
        agent_context = context or AgentContext()
        editor_cfg = config.editor

        def _toolkit(project_root: Path) -> ProjectToolkit:
            repo = GitRepository.discover(project_root)
            return ProjectToolkit(
                editor=AiderCodeEditor(
                    project_root,
                    context=agent_context,
                    runner=runner,
                    command=editor_cfg.command,
                    message_file=editor_cfg.message_file,
                    history_dir=editor_cfg.history_dir,
                    extra_args=editor_cfg.extra_args,
                ),
                vcs=repo,
                selector=LLMFileSelector(client, repo, cache_retry=cache_retry),
                analyzer=LLMErrorAnalyzer(client, repo),
                filename_extractor=LLMFilenameExtractor(client, repo, cache_retry=cache_retry),
            )

        settings = WorkflowSettings(
            max_compile_attempts=config.workflow.max_compile_attempts,
            max_static_analysis_attempts=config.workflow.max_static_analysis_attempts,
            max_test_attempts=config.workflow.max_test_attempts,
        )
        return cls(
            repo_root=root,
            detector=ProjectDetector(root, entries=config.projects, runner=runner),
            client=client,
            runner=runner,
            toolkit_factory=_toolkit,
            settings=settings,
        )

    # ---------------------------------------------------------------- entry
    def run_code_edit_workflow(self, requirements: str, project: ProjectInfo | None = None) -> WorkflowReport:
        """Implement ``requirements`` in the project, then lint and test it.

        Raises :class:`~editloop.project.DetectionAmbiguityError` when no
        project is given and detection does not find exactly one. Every other
        failure is absorbed by the loops and reflected in the report.
        """
        if project is None:
            project = resolve_single_project(self._detector)

        project_root = project.resolve(self._repo_root)
        tools = self._toolkit_factory(project_root)
        LOGGER.info("Project path %s", project_root)

        selection = tools.selector.select(requirements, project)
        files = WorkingFileSet(selection.paths())
        LOGGER.info("Initial selected files: %s", files.to_list())

        specification = self._client.generate_text(
            implementation_spec_prompt(render_file_contents(project_root, files.to_list()), requirements),
            operation="implementationSpecification",
        )

        report = WorkflowReport(project=project, files=files, specification=specification)
        report.compile = self.edit_compile_loop(specification, project, project_root, files, tools)
        if report.compile is StageOutcome.ABORTED:
            LOGGER.error("Unable to get the project to compile; skipping static analysis and tests")
            return report

        if project.static_analysis:
            report.static_analysis = self.static_analysis_loop(project, project_root, tools)

        if project.test:
            report.test_diagnosis = self.test_loop(requirements, project, project_root, files, tools)
            report.tests = StageOutcome.PASSED if report.test_diagnosis is None else StageOutcome.TOLERATED
            if report.test_diagnosis is not None:
                LOGGER.warning("Tests still failing after %d attempt(s)", self._settings.max_test_attempts)
        return report

    # ---------------------------------------------------------------- loops
    def edit_compile_loop(
        self,
        specification: str,
        project: ProjectInfo,
        project_root: Path,
        files: WorkingFileSet,
        tools: ProjectToolkit,
    ) -> StageOutcome:
        """Edit and compile until the build passes or attempts run out."""
        diagnosis: Diagnosis | None = None
        diagnostic: str | None = None

        for attempt in range(self._settings.max_compile_attempts):
            try:
                if diagnosis is not None:
                    files.extend(diagnosis.additional_files)
                    self._install_packages(project, diagnosis)
                requirements = compile_fix_requirements(specification, diagnostic)

                if attempt == 0:
                    # Baseline: surface pre-existing breakage before editing.
                    self._compile(project, project_root)

                tools.editor.edit(requirements, files.to_list())
                files.extend(tools.vcs.files_added_in_head_commit())
                self._compile(project, project_root)
                return StageOutcome.PASSED
            except _REPAIRABLE_ERRORS as error:
                diagnostic = str(error)
                LOGGER.error("Compile error output: %s", diagnostic)
                diagnosis = tools.analyzer.analyze(diagnostic, files.to_list())

        return StageOutcome.ABORTED

    def static_analysis_loop(
        self,
        project: ProjectInfo,
        project_root: Path,
        tools: ProjectToolkit,
    ) -> StageOutcome:
        """Run static analysis, committing after every round; never raises."""
        if not project.static_analysis:
            return StageOutcome.PASSED

        attempts = self._settings.max_static_analysis_attempts
        diagnostic = ""
        for attempt in range(1, attempts + 1):
            result = self._runner.run(project.static_analysis, project_root)
            # Commit whatever the analyser auto-fixed, pass or fail.
            self._commit(tools.vcs, STATIC_ANALYSIS_COMMIT_MESSAGE)
            if result.ok:
                return StageOutcome.PASSED

            diagnostic = result.format_output("static_analysis_output")
            if attempt < attempts:
                self._repair_static_analysis(project.static_analysis, diagnostic, tools)

        LOGGER.warning("Unable to fix static analysis errors: %s", diagnostic)
        return StageOutcome.TOLERATED

    def test_loop(
        self,
        requirements: str,
        project: ProjectInfo,
        project_root: Path,
        files: WorkingFileSet,
        tools: ProjectToolkit,
    ) -> Diagnosis | None:
        """Add tests and repair failures; returns the last diagnosis or ``None``."""
        if not project.test:
            return None

        diagnosis: Diagnosis | None = None
        diagnostic: str | None = None
        for _ in range(self._settings.max_test_attempts):
            try:
                if diagnosis is not None:
                    files.extend(diagnosis.additional_files)
                    self._install_packages(project, diagnosis)
                tools.editor.edit(add_tests_requirements(requirements, diagnostic), files.to_list())
                files.extend(tools.vcs.files_added_in_head_commit())
                # Writing tests can break the build, so the compile gate is re-checked.
                self._compile(project, project_root)
                self._run_tests(project, project_root)
                return None
            except _REPAIRABLE_ERRORS as error:
                diagnostic = str(error)
                LOGGER.info("Test error output: %s", diagnostic)
                diagnosis = tools.analyzer.analyze(diagnostic, files.to_list())

        return diagnosis

    # -------------------------------------------------------------- helpers
    def _compile(self, project: ProjectInfo, project_root: Path) -> CommandResult:
        LOGGER.debug("Compiling in %s with `%s`", project_root, project.compile)
        result = self._runner.run(project.compile, project_root)
        if not result.ok:
            LOGGER.info(result.stdout)
            LOGGER.error(result.stderr)
        return result.check("compile_output")

    def _run_tests(self, project: ProjectInfo, project_root: Path) -> CommandResult:
        assert project.test is not None
        return self._runner.run(project.test, project_root).check("test_output")

    def _install_packages(self, project: ProjectInfo, diagnosis: Diagnosis) -> None:
        if not diagnosis.install_packages:
            return
        if project.language_tools is None:
            LOGGER.warning(
                "No package installer for %s; cannot install %s",
                project.base_dir,
                ", ".join(diagnosis.install_packages),
            )
            return
        for name in diagnosis.install_packages:
            project.language_tools.install_package(name)

    def _repair_static_analysis(self, command: str, diagnostic: str, tools: ProjectToolkit) -> None:
        try:
            error_files: Sequence[str] = tools.filename_extractor.extract(diagnostic)
            tools.editor.edit(static_analysis_fix_requirements(command, diagnostic), list(error_files))
        except (EditorError, LLMClientError, GitError) as error:
            LOGGER.warning("Static analysis repair attempt failed: %s", error)

    @staticmethod
    def _commit(vcs: VersionControl, message: str) -> None:
        try:
            sha = vcs.commit_all_tracked(message)
        except GitError as error:
            LOGGER.warning("Unable to commit static analysis changes: %s", error)
            return
        if sha:
            LOGGER.info("Committed %s: %s", sha[:7], message)


__all__ = [
    "CodeEditingWorkflow",
    "ProjectToolkit",
    "StageOutcome",
    "VersionControl",
    "WorkflowReport",
    "WorkflowSettings",
    "WorkingFileSet",
]
