# ABOUTME: Command-line interface for the ackdev repository manager.
# ABOUTME: Implements list, ensure and config commands.
"""CLI for ackdev - ACK developer workspace manager."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console

from ackdev.config import (
    Config,
    ConfigError,
    create_default_config,
    get_default_config_path,
    load_config,
    save_config,
    validate_config,
)
from ackdev.deadline import Deadline, OperationCancelled
from ackdev.filters import FilterError, build_filters
from ackdev.git import GitError
from ackdev.github import GithubError
from ackdev.log import configure_logging
from ackdev.manager import EnsureError, Manager, RepositoryDoesntExist, RepositoryError
from ackdev.models import Repository, controller_name
from ackdev.output import OUTPUT_FORMATS, render_json, render_table, render_yaml
from ackdev.ssh import InvalidKeyError, new_identity

console = Console()

# Failures reported to the user as a one-line error and exit code 1.
USER_ERRORS = (
    ConfigError,
    FilterError,
    RepositoryError,
    GithubError,
    GitError,
    InvalidKeyError,
    OperationCancelled,
    OSError,
)


class Context:
    """Shared context for CLI commands."""

    def __init__(
        self,
        config_path: Path | None = None,
        dry_run: bool = False,
        verbose: int = 0,
    ) -> None:
        self.config_path = config_path or get_default_config_path()
        self.dry_run = dry_run
        self.verbose = verbose
        self._config: Config | None = None

    @property
    def config(self) -> Config:
        """Load config lazily."""
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def has_config(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


pass_context = click.make_pass_decorator(Context, ensure=True)


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def build_manager(
    config: Config,
    deadline: Deadline | None = None,
    clone: bool = False,
) -> Manager:
    """Create the manager used by commands.

    The configured SSH key is only loaded, and its passphrase asked for,
    when the command may clone.
    """
    identity = None
    if clone and config.git.ssh_key_path is not None:
        identity = new_identity(config.git.ssh_key_path)
        click.get_current_context().call_on_close(identity.cleanup)
    return Manager.from_config(config, identity=identity, deadline=deadline)


@contextmanager
def user_errors() -> Iterator[None]:
    """Print known failures as errors and exit with status 1."""
    try:
        yield
    except EnsureError as e:
        console.print(f"[red]Error:[/red] {len(e.failures)} repositories failed")
        for name, error in e.failures:
            console.print(f"  [red]![/red] {name}: {error}")
        raise SystemExit(1) from e
    except USER_ERRORS as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from e


def require_config(ctx: Context) -> Config:
    if not ctx.has_config():
        console.print(f"[red]Config not found:[/red] {ctx.config_path}")
        console.print("Run 'ackdev config init' to create a config file.")
        raise SystemExit(1)
    with user_errors():
        return ctx.config


def resolve_repository(manager: Manager, name: str) -> Repository:
    """Find a repository by exact name, or by service name for controllers."""
    try:
        return manager.get_repository(name)
    except RepositoryDoesntExist:
        return manager.get_repository(controller_name(name))


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    help="Path to config file",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Preview changes without making them",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase log verbosity (-v info, -vv debug)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    dry_run: bool,
    verbose: int,
) -> None:
    """ackdev - ACK developer workspace manager.

    Keeps forks and local clones of the configured repositories in shape.
    """
    configure_logging(verbose)
    ctx.obj = Context(
        config_path=config,
        dry_run=dry_run,
        verbose=verbose,
    )


@main.group("list")
def list_group() -> None:
    """List resources."""


@click.command("repositories")
@click.option(
    "--filter",
    "-f",
    "expression",
    default="",
    help="Filter expression, e.g. 'type=controller branch=main'",
)
@click.option("--show-url", is_flag=True, help="Display the fork remote URL")
@click.option(
    "--show-branch/--hide-branch",
    default=True,
    help="Display the current branch",
)
@click.option(
    "--output",
    "-o",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="table",
    help="Output format",
)
@pass_context
def list_repositories(
    ctx: Context,
    expression: str,
    show_url: bool,
    show_branch: bool,
    output_format: str,
) -> None:
    """List configured repositories and their local state."""
    config = require_config(ctx)

    with user_errors():
        filters = build_filters(expression)
        manager = build_manager(config)
        manager.load_all()
        repos = manager.list(*filters)

    if output_format == "json":
        click.echo(render_json(repos))
    elif output_format == "yaml":
        click.echo(render_yaml(repos), nl=False)
    else:
        if not repos:
            console.print("[yellow]No repositories match.[/yellow]")
            return
        console.print(render_table(repos, show_branch=show_branch, show_url=show_url))


for _name in ("repositories", "repository", "repos", "repo"):
    list_group.add_command(list_repositories, name=_name)


@main.group()
def ensure() -> None:
    """Ensure repositories or dependencies."""


@click.command("repositories")
@click.argument("names", nargs=-1)
@click.option(
    "--keep-going",
    "-k",
    is_flag=True,
    help="Attempt every repository and report all failures at the end",
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Number of repositories ensured concurrently",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help=(
        "Give up on the whole run after this many seconds. Checked between "
        "steps; a clone already running is not interrupted"
    ),
)
@pass_context
def ensure_repositories(
    ctx: Context,
    names: tuple[str, ...],
    keep_going: bool,
    workers: int | None,
    timeout: float | None,
) -> None:
    """Ensure repositories are forked and cloned locally.

    Forks missing repositories into your GitHub account, renames forks to
    follow the configured prefix, and clones forks that are not on disk
    yet. Without NAMES every configured repository is ensured.
    """
    config = require_config(ctx)
    deadline = Deadline(timeout)

    with user_errors():
        manager = build_manager(config, deadline, clone=not ctx.dry_run)
        manager.load_all()
        targets = [resolve_repository(manager, name) for name in names]

        if ctx.dry_run:
            for repo in targets or manager.repositories:
                actions = manager.plan_repository(repo)
                if not actions:
                    console.print(f"  [green]=[/green] {repo.name}: up to date")
                for action in actions:
                    console.print(f"  [blue]~[/blue] {repo.name}: {action}")
            console.print("\n[blue]Dry run - no changes made[/blue]")
            return

        try:
            if targets:
                failures: list[tuple[str, Exception]] = []
                for repo in targets:
                    try:
                        manager.ensure_repository(repo.name)
                    except (RepositoryError, GithubError, GitError) as e:
                        if not keep_going:
                            raise
                        failures.append((repo.name, e))
                if failures:
                    raise EnsureError(failures)
            else:
                manager.ensure_all(
                    fail_fast=False if keep_going else None,
                    workers=workers,
                )
        except KeyboardInterrupt:
            deadline.cancel()
            raise

    count = len(targets) if targets else len(manager.repositories)
    console.print(f"[green]Ensured {count} repositories[/green]")


for _name in ("repositories", "repository", "repos", "repo"):
    ensure.add_command(ensure_repositories, name=_name)


@main.group("config")
def config_group() -> None:
    """Manage the ackdev configuration file."""


@config_group.command("init")
@click.option(
    "--root",
    type=click.Path(path_type=Path),
    help="Directory repositories are cloned into",
)
@click.option("--username", "-u", default="", help="GitHub username owning the forks")
@click.option("--fork-prefix", default="", help="Prefix for fork names, e.g. 'ack-'")
@click.option(
    "--service",
    "-s",
    "services",
    multiple=True,
    help="Service whose controller to manage (can be repeated)",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config without asking")
@pass_context
def config_init(
    ctx: Context,
    root: Path | None,
    username: str,
    fork_prefix: str,
    services: tuple[str, ...],
    force: bool,
) -> None:
    """Create a configuration file."""
    if (
        ctx.has_config()
        and not force
        and not click.confirm(f"Config already exists at {ctx.config_path}. Overwrite?")
    ):
        console.print("[yellow]Aborted[/yellow]")
        return

    config = create_default_config(
        root_directory=root,
        username=username,
        fork_prefix=fork_prefix,
        services=list(services),
    )

    if ctx.dry_run:
        console.print(f"[blue]Would save config to:[/blue] {ctx.config_path}")
    else:
        save_config(config, ctx.config_path)
        console.print(f"[green]Config saved to:[/green] {ctx.config_path}")

    for warning in validate_config(config):
        console.print(f"[yellow]Warning:[/yellow] {warning}")


@config_group.command("validate")
@pass_context
def config_validate(ctx: Context) -> None:
    """Validate the configuration file."""
    config = require_config(ctx)
    warnings = validate_config(config)

    if warnings:
        console.print("[yellow]Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        console.print(f"\n[yellow]Config valid with {len(warnings)} warning(s)[/yellow]")
    else:
        console.print("[green]Config is valid![/green]")


if __name__ == "__main__":
    main()
