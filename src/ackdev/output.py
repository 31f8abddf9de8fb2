# ABOUTME: Rendering of repository listings for the CLI.
# ABOUTME: Produces rich tables, JSON and YAML from Repository objects.
"""Output formats for ackdev listings."""

from __future__ import annotations

import json
from collections.abc import Iterable

import yaml
from rich.table import Table

from ackdev.models import Repository

OUTPUT_FORMATS = ("table", "json", "yaml")


def render_table(
    repos: Iterable[Repository],
    show_branch: bool = True,
    show_url: bool = False,
) -> Table:
    """Build a table with NAME and TYPE, plus optional BRANCH and URL columns."""
    table = Table(box=None, pad_edge=False)
    table.add_column("NAME", style="bold")
    table.add_column("TYPE")
    if show_branch:
        table.add_column("BRANCH")
    if show_url:
        table.add_column("URL")

    for repo in repos:
        row = [repo.name, str(repo.type)]
        if show_branch:
            row.append(repo.git_head)
        if show_url:
            row.append(repo.remote_url)
        table.add_row(*row)
    return table


def render_json(repos: Iterable[Repository]) -> str:
    return json.dumps([repo.to_dict() for repo in repos], indent=2)


def render_yaml(repos: Iterable[Repository]) -> str:
    return yaml.dump(
        [repo.to_dict() for repo in repos],
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
