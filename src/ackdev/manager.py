# ABOUTME: Repository manager reconciling configured repositories with GitHub and disk.
# ABOUTME: Loads repositories, ensures user forks exist and are named, and clones them.
"""Repository reconciliation for ackdev."""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from pathlib import Path

import structlog

from ackdev.config import Config
from ackdev.deadline import Deadline
from ackdev.filters import Filter, match_all, match_any
from ackdev.git import (
    UPSTREAM_REMOTE,
    AuthenticationRequiredError,
    Git,
    GitError,
    OpenCloner,
    RepositoryNotExistsError,
)
from ackdev.github import (
    ForkNotFound,
    GithubClient,
    GithubError,
    MissingGithubCredentials,
    RepositoryService,
)
from ackdev.models import (
    CONTROLLER_SUFFIX,
    CloneState,
    Repository,
    RepositoryType,
    fork_name_for,
    new_repository,
    remote_url,
)
from ackdev.ssh import SshIdentity

__all__ = [
    "CloneError",
    "EnsureError",
    "Manager",
    "MissingGithubCredentials",
    "RepositoryAlreadyExist",
    "RepositoryDoesntExist",
    "RepositoryError",
    "UnconfiguredRepository",
]


class RepositoryError(Exception):
    """Base class for repository manager errors."""

    pass


class UnconfiguredRepository(RepositoryError):
    """Repository is not listed in the configuration."""

    pass


class RepositoryDoesntExist(RepositoryError):
    """Repository is not known to the manager."""

    pass


class RepositoryAlreadyExist(RepositoryError):
    """Repository is already cloned locally."""

    pass


class CloneError(RepositoryError):
    """Cloning a repository failed."""

    pass


class EnsureError(RepositoryError):
    """One or more repositories could not be ensured."""

    def __init__(self, failures: list[tuple[str, Exception]]) -> None:
        self.failures = failures
        details = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(f"{len(failures)} repositories failed: {details}")


# Errors that fail a single repository; anything else is a bug.
ENSURE_ERRORS = (RepositoryError, GithubError, GitError, OSError)


class Manager:
    """Manages local clones and GitHub forks of the configured repositories.

    The cache is filled once by load_all(), in configuration order, and only
    read afterwards. Concurrent ensure runs mutate each repository from a
    single worker and serialize GitHub calls.
    """

    def __init__(
        self,
        config: Config,
        git: OpenCloner,
        github: RepositoryService,
        deadline: Deadline | None = None,
    ) -> None:
        self.log = structlog.get_logger(__name__)
        self.config = config
        self.git = git
        self.github = github
        self.deadline = deadline or Deadline()
        self._cache: list[Repository] = []
        self._index: dict[str, Repository] = {}
        self._github_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config,
        identity: SshIdentity | None = None,
        deadline: Deadline | None = None,
    ) -> Manager:
        """Build a manager talking to GitHub and the local disk.

        Clones authenticate with identity when given, else with ssh's own
        configuration.
        """
        return cls(
            config,
            git=Git(identity),
            github=GithubClient(config.github.token, config.github.organization),
            deadline=deadline,
        )

    @property
    def repositories(self) -> list[Repository]:
        return list(self._cache)

    def _is_configured(self, name: str, repo_type: RepositoryType) -> bool:
        repos = self.config.repositories
        if repo_type in (RepositoryType.CORE, RepositoryType.TOOLING):
            return name in repos.core
        if repo_type is RepositoryType.CONTROLLER:
            return name.removesuffix(CONTROLLER_SUFFIX) in repos.services
        return False

    def load_repository(self, name: str, repo_type: RepositoryType) -> Repository:
        """
        Load a configured repository and probe its local clone.

        Args:
            name: Repository name as listed in the configuration.
            repo_type: Type deciding which list the name must be in.

        Returns:
            The cached repository if already loaded, else a new one.

        Raises:
            UnconfiguredRepository: If name is not in the matching list.
            GitError: If the local repository exists but cannot be opened.
        """
        repo = new_repository(name, repo_type)
        cached = self._index.get(repo.name)
        if cached is not None:
            return cached

        if not self._is_configured(name, repo_type):
            raise UnconfiguredRepository(f"unconfigured repository: {name} ({repo_type})")

        github = self.config.github
        repo.fork_name = fork_name_for(repo.name, github.fork_prefix)
        repo.fork_url = remote_url(github.username, repo.fork_name)
        repo.remote_url = repo.fork_url
        repo.upstream_url = remote_url(github.organization, repo.name)
        repo.full_path = self.config.root_directory / repo.name

        try:
            local = self.git.open(repo.full_path)
        except RepositoryNotExistsError:
            self.log.debug("Repository not cloned", name=repo.name, path=str(repo.full_path))
            return repo
        repo.attach(local)
        self.log.debug("Loaded repository", name=repo.name, head=repo.git_head)
        return repo

    def _add(self, repo: Repository) -> None:
        if repo.name in self._index:
            return
        self._cache.append(repo)
        self._index[repo.name] = repo

    def load_all(self) -> None:
        """
        Load every configured repository, core first then services.

        Stops at the first failure; repositories loaded before it stay
        cached.
        """
        for name in self.config.repositories.core:
            self._add(self.load_repository(name, RepositoryType.CORE))
        for name in self.config.repositories.services:
            self._add(self.load_repository(name, RepositoryType.CONTROLLER))
        self.log.info("Loaded repositories", count=len(self._cache))

    def get_repository(self, name: str) -> Repository:
        """Get a loaded repository by its exact (suffixed) name."""
        try:
            return self._index[name]
        except KeyError:
            raise RepositoryDoesntExist(f"repository doesn't exist: {name}") from None

    def list(self, *filters: Filter) -> list[Repository]:
        """List repositories matching every filter. Alias of list_and()."""
        return self.list_and(*filters)

    def list_and(self, *filters: Filter) -> list[Repository]:
        return [repo for repo in self._cache if match_all(repo, filters)]

    def list_or(self, *filters: Filter) -> list[Repository]:
        return [repo for repo in self._cache if match_any(repo, filters)]

    def _clone_path(self, repo: Repository) -> Path:
        if repo.full_path is None:
            raise RepositoryError(f"repository {repo.name} has no local path")
        return repo.full_path

    def _register_clone(self, repo: Repository) -> None:
        """Open a fresh clone and add its upstream remote."""
        local = self.git.open(self._clone_path(repo))
        local.create_remote(UPSTREAM_REMOTE, [repo.upstream_url])
        repo.attach(local)

    def _clone(self, name: str) -> None:
        """
        Clone a loaded repository's fork into its expected path.

        A repository left incomplete by an earlier run (cloned but never
        opened) is not cloned again; only the open and upstream wiring are
        retried.

        Raises:
            CloneError: If the repository is unknown or the clone failed.
            RepositoryAlreadyExist: If the repository is already cloned.
            MissingGithubCredentials: If the remote asked for credentials.
        """
        try:
            repo = self.get_repository(name)
        except RepositoryDoesntExist as e:
            raise CloneError(f"cannot clone repository {name}: {e}") from e
        if repo.cloned:
            raise RepositoryAlreadyExist(f"repository already exist: {name}")
        path = self._clone_path(repo)

        if repo.state is not CloneState.CLONE_INCOMPLETE:
            self.log.info("Cloning repository", name=name, url=repo.fork_url)
            try:
                self.git.clone(repo.fork_url, path, deadline=self.deadline)
            except AuthenticationRequiredError as e:
                raise MissingGithubCredentials(
                    f"missing github credentials to clone {name}"
                ) from e
            except GitError as e:
                raise CloneError(f"cannot clone repository {name}: {e}") from e
            repo.state = CloneState.CLONE_INCOMPLETE

        self._register_clone(repo)

    def ensure_fork(self, repo: Repository) -> None:
        """
        Ensure the user has a fork of repo named with the configured prefix.

        Creates the fork when missing and renames it when misnamed. Calling
        it again once the fork is correctly named makes no changes.
        """
        github = self.config.github
        expected = fork_name_for(repo.name, github.fork_prefix)

        with self._github_lock:
            try:
                fork = self.github.get_user_repository_fork(repo.name, deadline=self.deadline)
            except ForkNotFound:
                self.deadline.check()
                self.log.info("Creating fork", name=repo.name, fork_name=expected)
                fork = self.github.fork_repository(repo.name, deadline=self.deadline)
                # Forks are created asynchronously; give GitHub a moment.
                self.deadline.wait(self.config.run.fork_grace_period)

            if fork.name != expected:
                self.deadline.check()
                self.log.info(
                    "Renaming fork", name=repo.name, old_name=fork.name, new_name=expected
                )
                self.github.rename_repository(
                    fork.owner, fork.name, expected, deadline=self.deadline
                )
            repo.fork_name = expected

    def ensure_clone(self, repo: Repository) -> None:
        """Clone repo unless it is already cloned."""
        try:
            self._clone(repo.name)
        except RepositoryAlreadyExist:
            self.log.debug("Repository already cloned", name=repo.name)

    def _ensure(self, repo: Repository) -> None:
        self.deadline.check()
        self.ensure_fork(repo)
        self.deadline.check()
        self.ensure_clone(repo)

    def ensure_repository(self, name: str) -> None:
        """Ensure the fork then the clone of one loaded repository."""
        self._ensure(self.get_repository(name))

    def plan_repository(self, repo: Repository) -> list[str]:
        """
        Describe what ensuring repo would do, without changing anything.

        Only read-only GitHub calls are made.
        """
        actions: list[str] = []
        expected = fork_name_for(repo.name, self.config.github.fork_prefix)
        try:
            fork = self.github.get_user_repository_fork(repo.name, deadline=self.deadline)
        except ForkNotFound:
            actions.append(f"fork {self.config.github.organization}/{repo.name}")
            if expected != repo.name:
                actions.append(f"rename fork {repo.name} -> {expected}")
        else:
            if fork.name != expected:
                actions.append(f"rename fork {fork.name} -> {expected}")
        if not repo.cloned:
            actions.append(f"clone {repo.fork_url} -> {repo.full_path}")
        return actions

    def ensure_all(
        self,
        fail_fast: bool | None = None,
        workers: int | None = None,
    ) -> None:
        """
        Ensure every cached repository, in cache order.

        Args:
            fail_fast: Stop at the first failing repository and re-raise its
                error. When false, every repository is attempted and the
                failures are raised together as EnsureError. Defaults to
                the configured run.failFast.
            workers: Number of repositories ensured concurrently. Defaults
                to the configured run.workers.

        Raises:
            EnsureError: If fail_fast is false and any repository failed.
            OperationCancelled: If the deadline fired.
            KeyboardInterrupt: Re-raised once queued repositories are dropped
                and the deadline is cancelled.
        """
        if fail_fast is None:
            fail_fast = self.config.run.fail_fast
        if workers is None:
            workers = self.config.run.workers

        repos = list(self._cache)
        if workers <= 1:
            failures = self._ensure_sequential(repos, fail_fast)
        else:
            failures = self._ensure_concurrent(repos, fail_fast, workers)

        if failures:
            if fail_fast:
                raise failures[0][1]
            raise EnsureError(failures)

    def _ensure_sequential(
        self, repos: list[Repository], fail_fast: bool
    ) -> list[tuple[str, Exception]]:
        failures: list[tuple[str, Exception]] = []
        for repo in repos:
            try:
                self._ensure(repo)
            except ENSURE_ERRORS as e:
                self.log.error("Cannot ensure repository", name=repo.name, error=str(e))
                failures.append((repo.name, e))
                if fail_fast:
                    break
        return failures

    def _ensure_concurrent(
        self, repos: list[Repository], fail_fast: bool, workers: int
    ) -> list[tuple[str, Exception]]:
        order = {repo.name: i for i, repo in enumerate(repos)}
        failures: list[tuple[str, Exception]] = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures: dict[Future[None], Repository] = {
                pool.submit(self._ensure, repo): repo for repo in repos
            }
            try:
                for future in as_completed(futures):
                    repo = futures[future]
                    try:
                        future.result()
                    except CancelledError:
                        continue
                    except ENSURE_ERRORS as e:
                        self.log.error("Cannot ensure repository", name=repo.name, error=str(e))
                        failures.append((repo.name, e))
                        if fail_fast:
                            for pending in futures:
                                pending.cancel()
            except BaseException:
                # Interrupted or cancelled: stop in-flight work and drop the queue.
                self.log.warning("Ensure interrupted, cancelling remaining repositories")
                self.deadline.cancel()
                pool.shutdown(wait=True, cancel_futures=True)
                raise
        failures.sort(key=lambda failure: order[failure[0]])
        return failures
