"""Configuration file loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_CONFIG_NAME = "editloop.yaml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be read or validated."""


class ConfigModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


class ProjectSection(ConfigModel):
    repo_root: str = "."


class ProjectEntry(ConfigModel):
    """Explicit project descriptor; skips marker-file detection when present."""

    base_dir: str = "."
    language: Optional[str] = None
    compile: str
    test: Optional[str] = None
    static_analysis: Optional[str] = None


class WorkflowSection(ConfigModel):
    max_compile_attempts: int = Field(default=2, ge=1)
    max_static_analysis_attempts: int = Field(default=2, ge=1)
    max_test_attempts: int = Field(default=2, ge=1)
    command_timeout: Optional[float] = Field(default=None, gt=0)


class ModelsSection(ConfigModel):
    default: str = "gpt-5-mini"
    timeout: float = Field(default=120.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=0.5, ge=0)
    base_url: Optional[str] = None
    api_key: Optional[str] = None


class EditorSection(ConfigModel):
    command: str = "aider"
    message_file: str = ".aider-requirements"
    history_dir: str = ".editloop/aider/llm-history"
    extra_args: List[str] = Field(default_factory=list)


class CacheSection(ConfigModel):
    enabled: bool = True
    path: str = ".editloop/cache.sqlite"
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)


class PathsSection(ConfigModel):
    logs: str = ".editloop/logs"


class EditLoopConfig(ConfigModel):
    """Top-level configuration document."""

    project: ProjectSection = Field(default_factory=ProjectSection)
    projects: List[ProjectEntry] = Field(default_factory=list)
    workflow: WorkflowSection = Field(default_factory=WorkflowSection)
    models: ModelsSection = Field(default_factory=ModelsSection)
    editor: EditorSection = Field(default_factory=EditorSection)
    cache: CacheSection = Field(default_factory=CacheSection)
    paths: PathsSection = Field(default_factory=PathsSection)

    def resolve_repo_root(self, config_path: Path) -> Path:
        """Resolve ``project.repo_root`` relative to the config file location."""
        candidate = Path(self.project.repo_root)
        if not candidate.is_absolute():
            candidate = config_path.resolve().parent / candidate
        return candidate.resolve()

    def resolve_path(self, repo_root: Path, value: str) -> Path:
        """Resolve a configured path relative to the repository root."""
        candidate = Path(value)
        if not candidate.is_absolute():
            candidate = repo_root / candidate
        return candidate


def load_config(config_path: Path | str) -> EditLoopConfig:
    """Load the YAML configuration, returning defaults when the file is absent."""
    path = Path(config_path)
    if not path.exists():
        return EditLoopConfig()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data: Any = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    try:
        return EditLoopConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}") from error


def write_default_config(config_path: Path | str) -> Path:
    """Persist the default configuration template with stable formatting."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(EditLoopConfig().model_dump(mode="json"), handle, sort_keys=False)
    return path


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "EditLoopConfig",
    "ProjectEntry",
    "load_config",
    "write_default_config",
]
