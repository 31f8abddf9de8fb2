# ABOUTME: Configuration loading, saving, and validation for ackdev.
# ABOUTME: Handles YAML parsing, environment overrides and path expansion.
"""Configuration management for ackdev."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ackdev.github import ACK_ORG
from ackdev.models import CONTROLLER_SUFFIX

CONFIG_PATH_ENV = "ACKDEV_CONFIG"
TOKEN_ENV = "GITHUB_TOKEN"

DEFAULT_CORE_REPOSITORIES = [
    "runtime",
    "code-generator",
    "test-infra",
]


class ConfigError(Exception):
    """Error in configuration file."""

    pass


@dataclass
class GithubConfig:
    """GitHub account and naming settings."""

    organization: str = ACK_ORG
    username: str = ""
    token: str = ""
    fork_prefix: str = ""


@dataclass
class GitConfig:
    """Local git settings."""

    ssh_key_path: Path | None = None


@dataclass
class RepositoriesConfig:
    """Repositories to manage, by list."""

    core: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)


@dataclass
class RunConfig:
    """Defaults for ensure runs."""

    fail_fast: bool = True
    workers: int = 1
    fork_grace_period: float = 1.0


@dataclass
class Config:
    """Configuration for ackdev."""

    root_directory: Path
    github: GithubConfig = field(default_factory=GithubConfig)
    git: GitConfig = field(default_factory=GitConfig)
    repositories: RepositoriesConfig = field(default_factory=RepositoriesConfig)
    run: RunConfig = field(default_factory=RunConfig)


def get_default_config_path() -> Path:
    """Get the config file path, honouring ACKDEV_CONFIG."""
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return expand_path(env_path)
    return Path.home() / ".config" / "ackdev" / "config.yaml"


def get_default_root_directory() -> Path:
    return Path.home() / "go" / "src" / "github.com" / ACK_ORG


def expand_path(path: str | Path) -> Path:
    """Expand ~ and resolve path."""
    return Path(path).expanduser().resolve()


def load_config(path: Path | None = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file. Uses default if None.

    Returns:
        Loaded Config object.

    Raises:
        ConfigError: If config is invalid or file doesn't exist.
    """
    if path is None:
        path = get_default_config_path()

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if data is None:
        raise ConfigError("Config file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    return parse_config(data)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _string_list(section: dict[str, Any], key: str, where: str) -> list[str]:
    values = section.get(key)
    if values is None:
        return []
    if not isinstance(values, list):
        raise ConfigError(f"'{where}.{key}' must be a list")
    for value in values:
        if not isinstance(value, str):
            raise ConfigError(
                f"Repository names must be strings, got {type(value).__name__} in "
                f"'{where}.{key}'"
            )
    return list(values)


def _string(section: dict[str, Any], key: str, where: str, default: str = "") -> str:
    value = section.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"'{where}.{key}' must be a string")
    return value


def _bool(section: dict[str, Any], key: str, where: str, default: bool) -> bool:
    value = section.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"'{where}.{key}' must be a boolean")
    return value


def parse_config(data: dict[str, Any]) -> Config:
    """
    Parse config data into Config object.

    The GitHub token may be omitted from the file and provided through the
    GITHUB_TOKEN environment variable instead.

    Args:
        data: Raw config data from YAML.

    Returns:
        Parsed Config object.

    Raises:
        ConfigError: If config structure is invalid.
    """
    root_directory = expand_path(
        _string(data, "rootDirectory", "config", str(get_default_root_directory()))
    )

    gh = _section(data, "github")
    github = GithubConfig(
        organization=_string(gh, "organization", "github", ACK_ORG),
        username=_string(gh, "username", "github"),
        token=_string(gh, "token", "github") or os.environ.get(TOKEN_ENV, ""),
        fork_prefix=_string(gh, "forkPrefix", "github"),
    )

    git_section = _section(data, "git")
    key_path = _string(git_section, "sshKeyPath", "git")
    git = GitConfig(ssh_key_path=expand_path(key_path) if key_path else None)

    repos = _section(data, "repositories")
    repositories = RepositoriesConfig(
        core=_string_list(repos, "core", "repositories"),
        services=_string_list(repos, "services", "repositories"),
    )

    run_section = _section(data, "run")
    try:
        run = RunConfig(
            fail_fast=_bool(run_section, "failFast", "run", True),
            workers=int(run_section.get("workers", 1)),
            fork_grace_period=float(run_section.get("forkGracePeriod", 1.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid 'run' settings: {e}") from e
    if run.workers < 1:
        raise ConfigError("'run.workers' must be at least 1")

    return Config(
        root_directory=root_directory,
        github=github,
        git=git,
        repositories=repositories,
        run=run,
    )


def save_config(config: Config, path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save.
        path: Path to save to. Uses default if None.
    """
    if path is None:
        path = get_default_config_path()

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    data = serialize_config(config)

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def serialize_config(config: Config) -> dict[str, Any]:
    """
    Serialize Config object to dict for YAML.

    The token is never written when it came from the environment.

    Args:
        config: Config object to serialize.

    Returns:
        Dict suitable for YAML dump.
    """
    # Use ~ for home directory paths for readability
    home = Path.home()

    def path_str(p: Path) -> str:
        try:
            rel = p.relative_to(home)
            return f"~/{rel}"
        except ValueError:
            return str(p)

    github: dict[str, str] = {
        "organization": config.github.organization,
        "username": config.github.username,
        "forkPrefix": config.github.fork_prefix,
    }
    if config.github.token and config.github.token != os.environ.get(TOKEN_ENV):
        github["token"] = config.github.token

    data: dict[str, Any] = {
        "rootDirectory": path_str(config.root_directory),
        "github": github,
    }
    if config.git.ssh_key_path is not None:
        data["git"] = {"sshKeyPath": path_str(config.git.ssh_key_path)}
    data["repositories"] = {
        "core": list(config.repositories.core),
        "services": list(config.repositories.services),
    }
    data["run"] = {
        "failFast": config.run.fail_fast,
        "workers": config.run.workers,
        "forkGracePeriod": config.run.fork_grace_period,
    }
    return data


def create_default_config(
    root_directory: Path | None = None,
    username: str = "",
    fork_prefix: str = "",
    services: list[str] | None = None,
) -> Config:
    """
    Create a default configuration.

    Args:
        root_directory: Where repositories are cloned. Defaults to
            ~/go/src/github.com/aws-controllers-k8s.
        username: GitHub username owning the forks.
        fork_prefix: Prefix for fork names.
        services: Service names whose controllers to manage.

    Returns:
        New Config object.
    """
    resolved_root = (
        get_default_root_directory() if root_directory is None else expand_path(root_directory)
    )
    return Config(
        root_directory=resolved_root,
        github=GithubConfig(
            username=username,
            fork_prefix=fork_prefix,
            token=os.environ.get(TOKEN_ENV, ""),
        ),
        repositories=RepositoriesConfig(
            core=list(DEFAULT_CORE_REPOSITORIES),
            services=list(services or []),
        ),
    )


def validate_config(config: Config) -> list[str]:
    """
    Validate a config and return list of warnings.

    Args:
        config: Config to validate.

    Returns:
        List of warning messages (empty if valid).
    """
    warnings: list[str] = []

    if not config.root_directory.exists():
        warnings.append(f"Root directory does not exist: {config.root_directory}")

    if not config.github.username:
        warnings.append("GitHub username is not set (github.username)")
    if not config.github.token:
        warnings.append(f"GitHub token is not set (github.token or {TOKEN_ENV})")

    if config.git.ssh_key_path is not None and not config.git.ssh_key_path.exists():
        warnings.append(f"SSH key does not exist: {config.git.ssh_key_path}")

    for list_name, names in (
        ("core", config.repositories.core),
        ("services", config.repositories.services),
    ):
        seen: set[str] = set()
        for name in names:
            if name in seen:
                warnings.append(f"Repository '{name}' listed more than once in '{list_name}'")
            seen.add(name)

    for name in config.repositories.services:
        if name.endswith(CONTROLLER_SUFFIX):
            warnings.append(
                f"Service '{name}' already ends with '{CONTROLLER_SUFFIX}'; "
                f"list the service name only"
            )

    # A core repository named like a controller would collide in the cache
    controller_names = {f"{s}{CONTROLLER_SUFFIX}" for s in config.repositories.services}
    for name in config.repositories.core:
        if name in controller_names:
            warnings.append(f"Core repository '{name}' collides with a service controller")

    return warnings
