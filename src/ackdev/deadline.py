# ABOUTME: Cancellation and time budget shared by a whole ackdev run.
# ABOUTME: Threaded through git and GitHub calls instead of per-call timeouts.
"""Run-wide deadline and cancellation for ackdev."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

DEFAULT_REQUEST_TIMEOUT = 10.0


class OperationCancelled(Exception):
    """The run was cancelled or ran out of time."""

    pass


class Deadline:
    """A cancellable time budget.

    A single instance is shared by every call of a run; cancelling it (or
    letting it expire) stops all remaining work at the next check.
    """

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = clock() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left, or None when there is no time limit."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise OperationCancelled if the run must stop."""
        if self.cancelled:
            raise OperationCancelled("operation cancelled")
        if self.expired:
            raise OperationCancelled("deadline exceeded")

    def request_timeout(self, default: float = DEFAULT_REQUEST_TIMEOUT) -> float:
        """Timeout for a single request, bounded by the time left."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def wait(self, seconds: float) -> None:
        """Sleep for seconds, waking up early if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._cancelled.wait(seconds)
        self.check()
