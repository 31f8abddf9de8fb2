# ABOUTME: Hosted-repository-service capability backed by the GitHub API.
# ABOUTME: Forks, renames and looks up repositories and forks with PyGithub.
"""GitHub operations for ackdev."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import requests
import structlog
from github import Auth, BadCredentialsException, Github, GithubException

from ackdev.deadline import DEFAULT_REQUEST_TIMEOUT, Deadline

ACK_ORG = "aws-controllers-k8s"
PER_PAGE = 100


class GithubError(Exception):
    """A GitHub API call failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MissingGithubCredentials(GithubError):
    """No usable GitHub credentials (token or SSH key)."""

    pass


class ForkNotFound(GithubError):
    """The authenticated user has no fork of the repository."""

    pass


@dataclass(frozen=True)
class ForkInfo:
    name: str
    owner: str


@dataclass(frozen=True)
class RepositoryInfo:
    name: str
    owner: str
    fork: bool
    clone_url: str
    default_branch: str


class RepositoryService(Protocol):
    """The GitHub operations the repository manager relies on."""

    def fork_repository(self, repo_name: str, deadline: Deadline | None = None) -> ForkInfo: ...

    def rename_repository(
        self, owner: str, name: str, new_name: str, deadline: Deadline | None = None
    ) -> None: ...

    def get_repository(
        self, owner: str, name: str, deadline: Deadline | None = None
    ) -> RepositoryInfo: ...

    def list_repository_forks(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> list[ForkInfo]: ...

    def get_user_repository_fork(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> ForkInfo: ...


def iter_pages(
    pages: Any,
    deadline: Deadline,
    per_page: int = PER_PAGE,
) -> Iterator[Any]:
    """
    Walk a paginated listing one page at a time.

    Pages are fetched in order, starting with the first one, until a page
    comes back short or empty.

    Args:
        pages: Object with a ``get_page(index)`` method (index 0 is the
            first page), such as a PyGithub ``PaginatedList``.
        deadline: Checked before every page request.
        per_page: Page size the listing was requested with.
    """
    index = 0
    while True:
        deadline.check()
        items = list(pages.get_page(index))
        yield from items
        if len(items) < per_page:
            return
        index += 1


@contextmanager
def github_errors(action: str) -> Iterator[None]:
    """Translate PyGithub and transport exceptions into GithubError."""
    try:
        yield
    except BadCredentialsException as e:
        raise MissingGithubCredentials(f"{action}: bad or missing GitHub token", e.status) from e
    except GithubException as e:
        message = e.data.get("message") if isinstance(e.data, dict) else e.data
        raise GithubError(f"{action}: {message or e}", e.status) from e
    except requests.RequestException as e:
        raise GithubError(f"{action}: {e}") from e


class GithubClient:
    """RepositoryService implementation on top of PyGithub.

    Every request is bounded by the per-request timeout and by the time
    left on the run's deadline, whichever is shorter.
    """

    def __init__(
        self,
        token: str,
        organization: str = ACK_ORG,
        github_factory: Callable[[float], Github] | None = None,
    ) -> None:
        self.log = structlog.get_logger(__name__)
        self.organization = organization
        self._token = token
        self._github_factory = github_factory or self._new_github

    def _new_github(self, timeout: float) -> Github:
        if not self._token:
            raise MissingGithubCredentials("no GitHub token configured")
        return Github(
            auth=Auth.Token(self._token),
            timeout=max(1, math.ceil(timeout)),
            per_page=PER_PAGE,
        )

    def _github(self, deadline: Deadline | None) -> tuple[Github, Deadline]:
        deadline = deadline or Deadline()
        timeout = deadline.request_timeout(DEFAULT_REQUEST_TIMEOUT)
        return self._github_factory(timeout), deadline

    def fork_repository(self, repo_name: str, deadline: Deadline | None = None) -> ForkInfo:
        """Fork an organization repository into the authenticated account.

        GitHub answers 202 Accepted and creates the fork asynchronously;
        that answer is a success here. The returned fork is named by GitHub
        and may differ from repo_name when the name is already taken.
        """
        gh, _ = self._github(deadline)
        full_name = f"{self.organization}/{repo_name}"
        with github_errors(f"cannot fork {full_name}"):
            forked = gh.get_repo(full_name).create_fork()
            fork = ForkInfo(name=forked.name, owner=forked.owner.login)
        self.log.info("Requested fork", repository=full_name, fork=fork.name)
        return fork

    def rename_repository(
        self, owner: str, name: str, new_name: str, deadline: Deadline | None = None
    ) -> None:
        """Rename owner/name to new_name. Requires admin access on the repository."""
        gh, _ = self._github(deadline)
        with github_errors(f"cannot rename {owner}/{name}"):
            gh.get_repo(f"{owner}/{name}").edit(name=new_name)
        self.log.info("Renamed repository", owner=owner, old_name=name, new_name=new_name)

    def get_repository(
        self, owner: str, name: str, deadline: Deadline | None = None
    ) -> RepositoryInfo:
        gh, _ = self._github(deadline)
        with github_errors(f"cannot get {owner}/{name}"):
            repo = gh.get_repo(f"{owner}/{name}")
            return RepositoryInfo(
                name=repo.name,
                owner=repo.owner.login,
                fork=repo.fork,
                clone_url=repo.ssh_url,
                default_branch=repo.default_branch,
            )

    def list_repository_forks(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> list[ForkInfo]:
        """List every fork of an organization repository, across all pages."""
        gh, deadline = self._github(deadline)
        full_name = f"{self.organization}/{repo_name}"
        with github_errors(f"cannot list forks of {full_name}"):
            pages = gh.get_repo(full_name).get_forks()
            return [
                ForkInfo(name=repo.name, owner=repo.owner.login)
                for repo in iter_pages(pages, deadline)
            ]

    def get_user_repository_fork(
        self, repo_name: str, deadline: Deadline | None = None
    ) -> ForkInfo:
        """
        Find the authenticated user's fork of an organization repository.

        Only repositories that are forks whose parent is
        ``<organization>/<repo_name>`` are considered, so a renamed fork is
        still found.

        Raises:
            ForkNotFound: If the user has no such fork.
        """
        gh, deadline = self._github(deadline)
        with github_errors("cannot list repositories of the authenticated user"):
            pages = gh.get_user().get_repos(affiliation="owner")
            for repo in iter_pages(pages, deadline):
                if not repo.fork:
                    continue
                parent = repo.parent
                if (
                    parent is not None
                    and parent.owner.login == self.organization
                    and parent.name == repo_name
                ):
                    return ForkInfo(name=repo.name, owner=repo.owner.login)
        raise ForkNotFound(f"fork not found: {self.organization}/{repo_name}")
