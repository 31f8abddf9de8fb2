# ABOUTME: Repository filters and the filter expression parser.
# ABOUTME: Builds predicate lists from strings like "type=controller branch=main".
"""Filtering of ackdev repositories."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ackdev.models import Repository, RepositoryType

Filter = Callable[[Repository], bool]


class FilterError(Exception):
    """Invalid filter or filter expression."""

    pass


class MalformedFilterExpression(FilterError):
    """A filter token is not of the form key=value."""

    pass


class UnknownFilterKey(FilterError):
    """A filter token uses a key that is not supported."""

    pass


def no_filter(repo: Repository) -> bool:
    """Match every repository."""
    return True


def name_filter(name: str) -> Filter:
    """Match repositories whose name equals name."""

    def _filter(repo: Repository) -> bool:
        return repo.name == name

    return _filter


def name_prefix_filter(prefix: str) -> Filter:
    """Match repositories whose name starts with prefix."""

    def _filter(repo: Repository) -> bool:
        return repo.name.startswith(prefix)

    return _filter


def type_filter(type_string: str) -> Filter:
    """Match repositories of the given type.

    Raises:
        FilterError: If type_string is not a known repository type.
    """
    try:
        repo_type = RepositoryType.from_string(type_string)
    except ValueError as e:
        raise FilterError(str(e)) from e

    def _filter(repo: Repository) -> bool:
        return repo.type is repo_type

    return _filter


def branch_filter(branch: str) -> Filter:
    """Match repositories whose current branch equals branch."""

    def _filter(repo: Repository) -> bool:
        return repo.git_head == branch

    return _filter


FILTER_BUILDERS: dict[str, Callable[[str], Filter]] = {
    "type": type_filter,
    "name": name_filter,
    "branch": branch_filter,
}


def build_filters(expression: str) -> list[Filter]:
    """
    Parse a filter expression into a list of filters.

    Format: whitespace separated ``key=value`` tokens, for example
    ``"branch=main type=controller"``. Keys are case-insensitive.

    Args:
        expression: The filter expression. Blank means no filters.

    Returns:
        List of filters, empty if the expression is blank.

    Raises:
        MalformedFilterExpression: If a token is not exactly key=value.
        UnknownFilterKey: If a token uses an unsupported key.
        FilterError: If a value is invalid for its key.
    """
    filters: list[Filter] = []
    for token in expression.split():
        parts = token.split("=")
        if len(parts) != 2:
            raise MalformedFilterExpression(
                f"malformed filter expression: {token!r} (expected key=value)"
            )
        key, value = parts[0].lower(), parts[1]
        builder = FILTER_BUILDERS.get(key)
        if builder is None:
            supported = ", ".join(sorted(FILTER_BUILDERS))
            raise UnknownFilterKey(
                f"unknown filter key: {key!r} (supported: {supported})"
            )
        filters.append(builder(value))
    return filters


def match_all(repo: Repository, filters: Iterable[Filter]) -> bool:
    """Check that every filter matches. No filters matches everything."""
    return all(f(repo) for f in filters)


def match_any(repo: Repository, filters: Iterable[Filter]) -> bool:
    """Check that at least one filter matches."""
    return any(f(repo) for f in filters)
