"""CLI commands for running the edit/compile/test workflow."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .cache import CacheRetry, CallCache
from .config import DEFAULT_CONFIG_NAME, ConfigError, EditLoopConfig, load_config, write_default_config
from .models import CallLog, LLMClient, LLMClientError, ResponsesClient
from .project import DetectionAmbiguityError, ProjectDetector, ProjectInfo, resolve_single_project
from .selection import summarise_requirements
from .tools.runner import CommandRunner
from .tools.vcs import GitError
from .workflow import CodeEditingWorkflow, StageOutcome, WorkflowReport

APP_HELP = "Implement a requirement in a repository, then compile, lint and test it."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("editloop").setLevel(level)


def _load(config_path: Path) -> EditLoopConfig:
    try:
        return load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _build_client(config: EditLoopConfig, repo_root: Path) -> LLMClient:
    """Create the Responses API client described by the ``models`` section."""
    models_cfg = config.models
    kwargs = {
        "model": models_cfg.default,
        "timeout": models_cfg.timeout,
        "max_attempts": models_cfg.max_attempts,
        "retry_delay": models_cfg.retry_delay,
        "call_log": CallLog(config.resolve_path(repo_root, config.paths.logs) / "llm"),
    }
    if models_cfg.base_url:
        kwargs["base_url"] = models_cfg.base_url
    if models_cfg.api_key:
        kwargs["api_key"] = models_cfg.api_key
    try:
        return ResponsesClient(**kwargs)
    except ValueError as error:
        typer.echo("No API key given. Set EDITLOOP_API_KEY or OPENAI_API_KEY, or configure models.api_key.")
        raise typer.Exit(code=1) from error


def _read_requirements(requirements: Optional[str], requirements_file: Optional[Path]) -> str:
    if requirements_file is not None:
        try:
            text = requirements_file.read_text(encoding="utf-8")
        except OSError as error:
            raise typer.BadParameter(f"Cannot read requirements file: {error}") from error
    else:
        text = requirements or ""
    if not text.strip():
        raise typer.BadParameter("Provide REQUIREMENTS or --requirements-file.")
    return text


def _select_project(detector: ProjectDetector, base_dir: Optional[str]) -> ProjectInfo:
    if base_dir is None:
        return resolve_single_project(detector)
    wanted = Path(base_dir).as_posix().strip("/") or "."
    candidates = detector.detect()
    matches = [item for item in candidates if (Path(item.base_dir).as_posix().strip("/") or ".") == wanted]
    if not matches:
        raise DetectionAmbiguityError(candidates, base_dir=base_dir)
    if len(matches) > 1:
        raise DetectionAmbiguityError(matches)
    return matches[0]


def _print_report(report: WorkflowReport) -> None:
    def _label(outcome: StageOutcome | None) -> str:
        return outcome.value if outcome is not None else "skipped"

    typer.echo("Workflow summary:")
    typer.echo(f"- Project: {report.project.base_dir} ({report.project.language or 'unknown'})")
    typer.echo(f"- Files: {', '.join(dict.fromkeys(report.files)) or 'none'}")
    typer.echo(f"- Compile: {_label(report.compile)}")
    typer.echo(f"- Static analysis: {_label(report.static_analysis)}")
    typer.echo(f"- Tests: {_label(report.tests)}")
    diagnosis = report.test_diagnosis
    if diagnosis is not None and not diagnosis.empty:
        if diagnosis.additional_files:
            typer.echo(f"  Suggested files: {', '.join(diagnosis.additional_files)}")
        if diagnosis.install_packages:
            typer.echo(f"  Suggested packages: {', '.join(diagnosis.install_packages)}")


@app.command()
def run(
    requirements: Optional[str] = typer.Argument(None, help="Requirement text to implement."),
    requirements_file: Optional[Path] = typer.Option(
        None,
        "--requirements-file",
        "-r",
        help="Read the requirement text from a file instead.",
    ),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    base_dir: Optional[str] = typer.Option(
        None,
        "--base-dir",
        help="Project directory (relative to the repo root) when several are detected.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Implement REQUIREMENTS, then compile, lint and test the project."""
    _configure_logging(verbose)
    text = _read_requirements(requirements, requirements_file)
    config_path = Path(config)
    config_data = _load(config_path)
    repo_root = config_data.resolve_repo_root(config_path)

    runner = CommandRunner(timeout=config_data.workflow.command_timeout)
    detector = ProjectDetector(repo_root, entries=config_data.projects, runner=runner)
    try:
        project = _select_project(detector, base_dir)
    except DetectionAmbiguityError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error

    client = _build_client(config_data, repo_root)
    cache: CallCache | None = None
    if config_data.cache.enabled:
        cache = CallCache(config_data.resolve_path(repo_root, config_data.cache.path))

    try:
        cache_retry = CacheRetry(
            cache,
            max_attempts=config_data.cache.max_attempts,
            retry_delay=config_data.cache.retry_delay,
        )
        try:
            typer.echo(f"Requirements: {summarise_requirements(client, text, cache_retry=cache_retry)}")
        except LLMClientError as error:
            typer.echo(f"Warning: unable to summarise requirements: {error}")

        workflow = CodeEditingWorkflow.from_config(config_data, repo_root, client=client, cache=cache)
        try:
            report = workflow.run_code_edit_workflow(text, project)
        except (GitError, LLMClientError) as error:
            typer.echo(f"Workflow failed: {error}")
            raise typer.Exit(code=1) from error
    finally:
        if cache is not None:
            cache.close()

    _print_report(report)
    if not report.compiled:
        raise typer.Exit(code=1)


@app.command()
def detect(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """List the project candidates found in the repository."""
    config_path = Path(config)
    config_data = _load(config_path)
    repo_root = config_data.resolve_repo_root(config_path)
    candidates = ProjectDetector(repo_root, entries=config_data.projects).detect()
    if not candidates:
        typer.echo("No projects detected.")
        return
    for item in candidates:
        typer.echo(f"- {item.base_dir} [{item.language or 'unknown'}] compile: {item.compile}")
        if item.test:
            typer.echo(f"    test: {item.test}")
        if item.static_analysis:
            typer.echo(f"    static analysis: {item.static_analysis}")


@app.command()
def init(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the configuration file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration template."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_default_config(config_path)
    typer.echo(f"Wrote configuration to {config_path}.")


if __name__ == "__main__":
    app()
