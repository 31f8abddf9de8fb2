# ABOUTME: Version-control capability used by the repository manager.
# ABOUTME: Opens and clones local repositories with GitPython.
"""Git operations for ackdev."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import git
import structlog
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from ackdev.deadline import Deadline
from ackdev.models import LocalRepository
from ackdev.ssh import SshIdentity

ORIGIN_REMOTE = "origin"
UPSTREAM_REMOTE = "upstream"

# Substrings of git/ssh stderr meaning the remote refused our credentials.
AUTH_ERROR_MARKERS = (
    "permission denied (publickey",
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
)


class GitError(Exception):
    """A git operation failed."""

    pass


class RepositoryNotExistsError(GitError):
    """No git repository exists at the given path."""

    pass


class AuthenticationRequiredError(GitError):
    """The remote requires credentials we could not provide."""

    pass


class OpenCloner(Protocol):
    """Opens and clones git repositories."""

    def open(self, path: Path) -> LocalRepository: ...

    def clone(self, url: str, dest: Path, *, deadline: Deadline | None = None) -> None: ...


def is_authentication_error(error: GitCommandError) -> bool:
    """Check if a git failure was caused by missing or rejected credentials."""
    text = f"{error.stderr or ''} {error}".lower()
    return any(marker in text for marker in AUTH_ERROR_MARKERS)


class GitRepository:
    """A local repository opened with GitPython."""

    def __init__(self, repo: Repo) -> None:
        self.repo = repo

    @property
    def path(self) -> Path:
        return Path(self.repo.working_dir)

    def head_name(self) -> str:
        """Current branch name, or the short commit hash when detached.

        Empty on an unborn branch.
        """
        head = self.repo.head
        if not head.is_valid():
            return ""
        if head.is_detached:
            return head.commit.hexsha[:7]
        return self.repo.active_branch.name

    def create_remote(self, name: str, urls: list[str]) -> None:
        """Create a remote, or point an existing one at urls."""
        if not urls:
            raise ValueError(f"remote {name} needs at least one url")
        first, *rest = urls
        if name in [r.name for r in self.repo.remotes]:
            remote = self.repo.remote(name)
            remote.set_url(first)
        else:
            remote = self.repo.create_remote(name, first)
        for url in rest:
            remote.add_url(url)

    def remote_urls(self) -> dict[str, list[str]]:
        """Get remote names mapped to their URLs."""
        return {r.name: list(r.urls) for r in self.repo.remotes}


class Git:
    """GitPython implementation of OpenCloner.

    Hides how clones authenticate: when an SSH identity is given, every
    clone runs with an environment that makes ssh use that key.
    """

    def __init__(self, identity: SshIdentity | None = None, remote: str = ORIGIN_REMOTE) -> None:
        self.log = structlog.get_logger(__name__)
        self.identity = identity
        self.remote = remote

    def open(self, path: Path) -> GitRepository:
        """
        Open the repository at path.

        Raises:
            RepositoryNotExistsError: If path is missing or not a work tree.
            GitError: For any other failure.
        """
        try:
            repo = Repo(path)
        except (NoSuchPathError, InvalidGitRepositoryError) as e:
            raise RepositoryNotExistsError(f"repository does not exist: {path}") from e
        except git.GitError as e:
            raise GitError(f"cannot open repository {path}: {e}") from e
        return GitRepository(repo)

    def clone(self, url: str, dest: Path, *, deadline: Deadline | None = None) -> None:
        """
        Clone url into dest.

        The deadline is only checked before the clone starts; a clone that
        is already running is left to finish.

        Raises:
            AuthenticationRequiredError: If the remote rejected our credentials.
            OperationCancelled: If the deadline fired before the clone started.
            GitError: For any other failure.
        """
        if deadline is not None:
            deadline.check()
        env = self.identity.git_environment() if self.identity else {}
        self.log.debug("Cloning repository", url=url, dest=str(dest))
        try:
            Repo.clone_from(url, dest, env=env, origin=self.remote)
        except GitCommandError as e:
            if is_authentication_error(e):
                raise AuthenticationRequiredError(
                    f"authentication required to clone {url}"
                ) from e
            self.log.error("Clone failed", url=url, error=str(e))
            raise GitError(f"cannot clone {url}: {e}") from e
        self.log.info("Cloned repository", url=url, dest=str(dest))
