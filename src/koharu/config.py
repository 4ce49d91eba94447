"""
Configuration management for koharu.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (koharu.yml at the project root, or --config path)
3. Environment variables (KOHARU_* prefix, __ for nesting)
4. Command-line overrides (highest precedence)

The resulting AppConfig is passed explicitly to every component; nothing in
koharu reads process-wide configuration state.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from koharu.backup.models import DEFAULT_BACKUP_ITEMS, BackupItem

DEFAULT_CONFIG_FILENAME = "koharu.yml"
DEFAULT_ENV_PREFIX = "KOHARU_"

# =============================================================================
# Project Configuration
# =============================================================================


class ProjectConfig(BaseModel):
    """Location of the project checkout and its derived paths.

    Attributes:
        root: Project root (the git working tree).
        backup_dir: Backup storage directory, relative to root unless absolute.
        env_file: Environment file handed to build/deploy collaborators. Only
            its presence is checked here.
    """

    root: str = Field(
        default=".",
        description="Project root directory (git working tree)",
    )
    backup_dir: str = Field(
        default="backups",
        description="Backup storage directory, relative to the project root",
    )
    env_file: str = Field(
        default=".env",
        description="Environment file path, relative to the project root",
    )


# =============================================================================
# Upstream Configuration
# =============================================================================


class UpstreamConfig(BaseModel):
    """Upstream template repository settings.

    Attributes:
        remote: Name of the git remote pointing at the template.
        url: Expected URL of the upstream remote.
        branch: Main branch, both locally and upstream.
        version_file: File holding the version marker at a given ref.
        version_field: JSON field of version_file holding the version.
    """

    remote: str = Field(
        default="upstream",
        description="Upstream remote name",
    )
    url: str = Field(
        default="https://github.com/cosZone/astro-koharu.git",
        description="Upstream repository URL",
    )
    branch: str = Field(
        default="main",
        description="Main branch name",
    )
    version_file: str = Field(
        default="package.json",
        description="JSON file containing the version marker",
    )
    version_field: str = Field(
        default="version",
        description="Field of version_file holding the version string",
    )

    @field_validator("remote", "branch")
    @classmethod
    def validate_ref_name(cls, v: str) -> str:
        """Reject empty names and names git would read as options."""
        v = v.strip()
        if not v or v.startswith("-") or " " in v:
            raise ValueError(f"Invalid git name: {v!r}")
        return v

    @property
    def tracking_ref(self) -> str:
        """Remote-tracking ref of the upstream main branch."""
        return f"{self.remote}/{self.branch}"


# =============================================================================
# Backup Configuration
# =============================================================================


class BackupConfig(BaseModel):
    """Backup item list.

    Attributes:
        items: Paths to back up. Required items are part of every backup.
    """

    items: list[BackupItem] = Field(
        default_factory=lambda: list(DEFAULT_BACKUP_ITEMS),
        description="Backup items",
    )

    @field_validator("items")
    @classmethod
    def validate_unique_dest(cls, v: list[BackupItem]) -> list[BackupItem]:
        """Archive destinations must be unique so restores stay unambiguous."""
        seen: set[str] = set()
        for item in v:
            if item.dest in seen:
                raise ValueError(f"Duplicate backup destination: {item.dest}")
            seen.add(item.dest)
        return v


# =============================================================================
# Install Configuration
# =============================================================================


class InstallConfig(BaseModel):
    """Dependency install step run after a successful merge.

    Attributes:
        command: Command line (argv list) to run in the project root.
        timeout_seconds: Timeout for the install command.
    """

    command: list[str] = Field(
        default_factory=lambda: ["pnpm", "install"],
        description="Dependency install command",
    )
    timeout_seconds: int = Field(
        default=900,
        ge=1,
        description="Install command timeout in seconds",
    )

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, v: Any) -> Any:
        """Accept a plain string as well as an argv list."""
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        """Require a non-empty command."""
        if not v:
            raise ValueError("Install command must not be empty")
        return v


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        json_format: Emit JSON log records.
        log_to_stdout: Log to stdout instead of stderr.
    """

    level: str = Field(
        default="warning",
        description="Log level: debug, info, warn, error",
    )
    json_format: bool = Field(
        default=False,
        description="Emit JSON-formatted log records",
    )
    log_to_stdout: bool = Field(
        default=False,
        description="Log to stdout instead of stderr",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        project: Project location settings.
        upstream: Upstream template repository settings.
        backup: Backup item list.
        install: Dependency install step.
        logging: Logging configuration.
    """

    project: ProjectConfig = Field(
        default_factory=ProjectConfig,
        description="Project location settings",
    )
    upstream: UpstreamConfig = Field(
        default_factory=UpstreamConfig,
        description="Upstream repository settings",
    )
    backup: BackupConfig = Field(
        default_factory=BackupConfig,
        description="Backup settings",
    )
    install: InstallConfig = Field(
        default_factory=InstallConfig,
        description="Dependency install settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )

    @property
    def project_root(self) -> Path:
        """Absolute project root."""
        return Path(self.project.root).expanduser().resolve()

    @property
    def backup_dir(self) -> Path:
        """Absolute backup storage directory."""
        path = Path(self.project.backup_dir).expanduser()
        if not path.is_absolute():
            path = self.project_root / path
        return path.resolve()

    @property
    def env_file(self) -> Path:
        """Absolute environment file path."""
        path = Path(self.project.env_file).expanduser()
        if not path.is_absolute():
            path = self.project_root / path
        return path


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [_parse_env_value(item.strip()) for item in value.split(",")]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Nested keys use a double underscore, e.g. KOHARU_UPSTREAM__BRANCH=trunk.

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = _parse_env_value(value)

    return result


def load_config(
    config_path: Path | str | None = None,
    *,
    project_root: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: YAML configuration file. If None, koharu.yml in the
            project root is used when present.
        project_root: Project root; overrides every other source.
        env_prefix: Prefix for environment variables.
        overrides: Command-line overrides, applied last.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(project_root="/srv/blog")
        >>> config.upstream.tracking_ref
        'upstream/main'
    """
    config_dict: dict[str, Any] = {}
    env_config = _load_env_config(env_prefix)

    if config_path is None:
        root = project_root or env_config.get("project", {}).get("root") or "."
        default_path = Path(str(root)).expanduser() / DEFAULT_CONFIG_FILENAME
        if default_path.exists():
            config_path = default_path
    elif isinstance(config_path, str):
        config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, env_config)

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)

    if project_root is not None:
        config_dict = _deep_merge(config_dict, {"project": {"root": str(project_root)}})

    return AppConfig(**config_dict)
