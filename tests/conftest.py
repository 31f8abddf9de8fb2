# ABOUTME: Shared fixtures for ackdev tests.
# ABOUTME: Provides in-memory git and GitHub fakes and a sample configuration.
"""Test fixtures for ackdev."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from ackdev.config import Config, GithubConfig, RepositoriesConfig, RunConfig
from ackdev.deadline import Deadline
from ackdev.git import RepositoryNotExistsError
from ackdev.github import ForkInfo, ForkNotFound, RepositoryInfo
from ackdev.manager import Manager


class FakeLocalRepository:
    """Stand-in for an opened local repository."""

    def __init__(self, head: str = "main") -> None:
        self.head = head
        self.remotes: dict[str, list[str]] = {}

    def head_name(self) -> str:
        return self.head

    def create_remote(self, name: str, urls: list[str]) -> None:
        self.remotes[name] = list(urls)


class FakeGit:
    """In-memory OpenCloner recording every call."""

    def __init__(self) -> None:
        self.repos: dict[Path, FakeLocalRepository] = {}
        self.open_errors: dict[Path, Exception] = {}
        self.clone_errors: dict[str, Exception] = {}
        self.opened: list[Path] = []
        self.clones: list[tuple[str, Path]] = []

    def add(self, path: Path, head: str = "main") -> FakeLocalRepository:
        local = FakeLocalRepository(head)
        self.repos[path] = local
        return local

    def open(self, path: Path) -> FakeLocalRepository:
        self.opened.append(path)
        if path in self.open_errors:
            raise self.open_errors[path]
        if path not in self.repos:
            raise RepositoryNotExistsError(f"repository does not exist: {path}")
        return self.repos[path]

    def clone(self, url: str, dest: Path, *, deadline: Deadline | None = None) -> None:
        self.clones.append((url, dest))
        if url in self.clone_errors:
            raise self.clone_errors[url]
        self.add(dest)


class FakeGithub:
    """In-memory RepositoryService keyed by the forked repository name."""

    def __init__(self, username: str = "ada") -> None:
        self.username = username
        self.forks: dict[str, ForkInfo] = {}
        self.created_names: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, ...]] = []

    def _maybe_fail(self, call: str) -> None:
        if call in self.errors:
            raise self.errors[call]

    def count(self, call: str) -> int:
        return sum(1 for c in self.calls if c[0] == call)

    def get_user_repository_fork(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> ForkInfo:
        self.calls.append(("get_fork", repo_name))
        self._maybe_fail("get_fork")
        if repo_name not in self.forks:
            raise ForkNotFound(f"fork not found: {repo_name}")
        return self.forks[repo_name]

    def fork_repository(self, repo_name: str, deadline: Deadline | None = None) -> ForkInfo:
        self.calls.append(("fork", repo_name))
        self._maybe_fail("fork")
        name = self.created_names.get(repo_name, repo_name)
        self.forks[repo_name] = ForkInfo(name=name, owner=self.username)
        return self.forks[repo_name]

    def rename_repository(
        self, owner: str, name: str, new_name: str, deadline: Deadline | None = None
    ) -> None:
        self.calls.append(("rename", owner, name, new_name))
        self._maybe_fail("rename")
        for parent, fork in self.forks.items():
            if fork.owner == owner and fork.name == name:
                self.forks[parent] = ForkInfo(name=new_name, owner=owner)
                return
        raise AssertionError(f"no repository {owner}/{name} to rename")

    def get_repository(
        self, owner: str, name: str, deadline: Deadline | None = None
    ) -> RepositoryInfo:
        self.calls.append(("get", owner, name))
        return RepositoryInfo(
            name=name,
            owner=owner,
            fork=owner == self.username,
            clone_url=f"git@github.com:{owner}/{name}.git",
            default_branch="main",
        )

    def list_repository_forks(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> list[ForkInfo]:
        self.calls.append(("list_forks", repo_name))
        return [fork for parent, fork in self.forks.items() if parent == repo_name]


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo structlog configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration with two core repositories and one service."""
    root = tmp_path / "code"
    root.mkdir()
    return Config(
        root_directory=root,
        github=GithubConfig(username="ada", token="secret", fork_prefix="ack-"),
        repositories=RepositoriesConfig(core=["runtime", "code-generator"], services=["s3"]),
        run=RunConfig(fork_grace_period=0),
    )


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def fake_github() -> FakeGithub:
    return FakeGithub()


@pytest.fixture
def manager(config: Config, fake_git: FakeGit, fake_github: FakeGithub) -> Manager:
    return Manager(config, git=fake_git, github=fake_github)
