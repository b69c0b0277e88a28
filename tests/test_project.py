from __future__ import annotations

from pathlib import Path

import pytest

from editloop.config import ProjectEntry
from editloop.project import (
    DetectionAmbiguityError,
    NodeTools,
    ProjectDetector,
    PythonTools,
    resolve_single_project,
)
from editloop.tools.runner import CommandResult


def test_detects_python_project_at_repo_root(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")

    project = resolve_single_project(ProjectDetector(tmp_path))

    assert project.base_dir == "."
    assert project.language == "python"
    assert project.compile == "python -m compileall -q ."
    assert project.test == "pytest -q"
    assert project.static_analysis is None
    assert isinstance(project.language_tools, PythonTools)
    assert project.resolve(tmp_path) == tmp_path.resolve()


def test_detects_projects_in_subdirectories_when_root_has_none(tmp_path: Path) -> None:
    for name in ("web", "node_modules", ".hidden"):
        (tmp_path / name).mkdir()
        (tmp_path / name / "package.json").write_text("{}", encoding="utf-8")

    candidates = ProjectDetector(tmp_path).detect()

    assert [item.base_dir for item in candidates] == ["web"]
    assert candidates[0].static_analysis == "npm run lint"
    assert isinstance(candidates[0].language_tools, NodeTools)


def test_multiple_projects_are_ambiguous(tmp_path: Path) -> None:
    for name in ("api", "web"):
        (tmp_path / name).mkdir()
    (tmp_path / "api" / "setup.py").write_text("", encoding="utf-8")
    (tmp_path / "web" / "package.json").write_text("{}", encoding="utf-8")

    with pytest.raises(DetectionAmbiguityError) as excinfo:
        resolve_single_project(ProjectDetector(tmp_path))

    assert len(excinfo.value.candidates) == 2
    assert "detected 2" in str(excinfo.value)


def test_no_projects_is_ambiguous(tmp_path: Path) -> None:
    with pytest.raises(DetectionAmbiguityError, match="No project detected"):
        resolve_single_project(ProjectDetector(tmp_path))


def test_configured_entries_take_precedence(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")
    entry = ProjectEntry(base_dir="service", language="node", compile="make", test="make check")

    project = resolve_single_project(ProjectDetector(tmp_path, entries=[entry]))

    assert project.base_dir == "service"
    assert project.compile == "make"
    assert project.test == "make check"
    assert project.static_analysis is None
    assert isinstance(project.language_tools, NodeTools)


class RecordingRunner:
    def __init__(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.commands: list = []

    def run(self, command, cwd, *, env=None, unset=()) -> CommandResult:
        self.commands.append((list(command), Path(cwd)))
        return CommandResult(" ".join(command), Path(cwd), self.exit_code, "", "network down")


def test_install_package_failure_is_logged_not_raised(tmp_path: Path, caplog) -> None:
    runner = RecordingRunner(exit_code=1)
    tools = NodeTools(tmp_path, runner=runner)

    tools.install_package("left-pad")

    assert runner.commands == [(["npm", "install", "left-pad"], tmp_path)]
    assert "Failed to install left-pad" in caplog.text


def test_python_install_uses_interpreter_on_path_in_project_dir(tmp_path: Path) -> None:
    runner = RecordingRunner()

    PythonTools(tmp_path, runner=runner).install_package("requests")

    assert runner.commands == [(["python", "-m", "pip", "install", "requests"], tmp_path)]


def test_base_dir_miss_names_request_and_candidates(tmp_path: Path) -> None:
    (tmp_path / "web").mkdir()
    (tmp_path / "web" / "package.json").write_text("{}", encoding="utf-8")
    candidates = ProjectDetector(tmp_path).detect()

    error = DetectionAmbiguityError(candidates, base_dir="api")

    assert str(error) == "No detected project has base dir 'api'; candidates: web (node)"
