# ABOUTME: Data models for the ackdev repository manager.
# ABOUTME: Defines Repository, RepositoryType, and URL/naming helpers.
"""Data models for ackdev repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

CONTROLLER_SUFFIX = "-controller"


class LocalRepository(Protocol):
    """An opened local git repository."""

    def head_name(self) -> str: ...

    def create_remote(self, name: str, urls: list[str]) -> None: ...


class RepositoryType(Enum):
    """Kind of repository, controls naming and which config list applies."""

    CORE = "core"
    TOOLING = "tooling"
    CONTROLLER = "controller"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_string(cls, s: str) -> RepositoryType:
        """Parse a user supplied type string.

        Raises:
            ValueError: If the string is not core, tooling or controller.
        """
        value = s.strip().lower()
        for member in (cls.CORE, cls.TOOLING, cls.CONTROLLER):
            if member.value == value:
                return member
        raise ValueError(f"unsupported repository type: {s!r}")


class CloneState(Enum):
    """Local clone state of a repository."""

    NOT_CLONED = "not-cloned"
    CLONED = "cloned"
    # Clone finished but the repository could not be opened or wired.
    CLONE_INCOMPLETE = "clone-incomplete"


def remote_url(owner: str, name: str) -> str:
    """Build the SSH clone URL of a GitHub repository."""
    return f"git@github.com:{owner}/{name}.git"


def fork_name_for(name: str, prefix: str) -> str:
    """Get the expected fork name for a repository."""
    return f"{prefix}{name}" if prefix else name


def controller_name(name: str) -> str:
    """Append the controller suffix unless already present."""
    if name.endswith(CONTROLLER_SUFFIX):
        return name
    return f"{name}{CONTROLLER_SUFFIX}"


@dataclass
class Repository:
    """A tracked repository: desired names plus observed local state."""

    name: str
    type: RepositoryType
    full_path: Path | None = None
    git_head: str = ""
    fork_name: str = ""
    fork_url: str = ""
    remote_url: str = ""
    upstream_url: str = ""
    state: CloneState = CloneState.NOT_CLONED
    _local: LocalRepository | None = field(default=None, repr=False, compare=False)

    @property
    def cloned(self) -> bool:
        """Check if a local clone has been opened or created."""
        return self._local is not None

    @property
    def local(self) -> LocalRepository | None:
        return self._local

    def attach(self, local: LocalRepository) -> None:
        """Record an opened local repository and refresh the head name."""
        head = local.head_name()
        self._local = local
        self.git_head = head
        self.state = CloneState.CLONED

    def to_dict(self) -> dict[str, Any]:
        """Serialize public fields for JSON/YAML output."""
        return {
            "name": self.name,
            "type": str(self.type),
            "full_path": str(self.full_path) if self.full_path else "",
            "git_head": self.git_head,
            "fork_name": self.fork_name,
            "remote_url": self.remote_url,
        }


def new_repository(name: str, repo_type: RepositoryType) -> Repository:
    """Create a repository with only its normalized name and type set.

    Controller repositories always carry the ``-controller`` suffix.
    """
    if repo_type is RepositoryType.CONTROLLER:
        name = controller_name(name)
    return Repository(name=name, type=repo_type)
