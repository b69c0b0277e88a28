from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from editloop.config import ConfigError, EditLoopConfig, load_config, write_default_config


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "editloop.yaml")

    assert config == EditLoopConfig()
    assert config.workflow.max_compile_attempts == 2
    assert config.workflow.max_static_analysis_attempts == 2
    assert config.workflow.max_test_attempts == 2
    assert config.editor.command == "aider"


def test_default_template_round_trips(tmp_path: Path) -> None:
    path = write_default_config(tmp_path / "conf" / "editloop.yaml")

    assert load_config(path) == EditLoopConfig()


def test_projects_and_paths_are_parsed(tmp_path: Path) -> None:
    path = tmp_path / "editloop.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "project": {"repo_root": "repo"},
                "projects": [{"base_dir": "web", "compile": "npm run build", "static_analysis": "npm run lint"}],
                "paths": {"logs": "/var/log/editloop"},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.projects[0].static_analysis == "npm run lint"
    assert config.projects[0].test is None
    assert config.resolve_repo_root(path) == (tmp_path / "repo").resolve()
    assert config.resolve_path(tmp_path, config.paths.logs) == Path("/var/log/editloop")
    assert config.resolve_path(tmp_path, config.cache.path) == tmp_path / ".editloop" / "cache.sqlite"


@pytest.mark.parametrize(
    "content",
    [
        "workflow: [unclosed",
        "- just\n- a list\n",
        "workflow:\n  max_compile_attempts: 0\n",
        "unknown_section: {}\n",
        "projects:\n  - base_dir: web\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str) -> None:
    path = tmp_path / "editloop.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)
