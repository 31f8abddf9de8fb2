# ABOUTME: Logging setup for ackdev.
# ABOUTME: Configures structlog to write human readable events to stderr.
"""Logging configuration for ackdev."""

from __future__ import annotations

import logging
import sys

import structlog


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # Looked up per logger so redirected streams are honoured.
    return structlog.PrintLogger(sys.stderr)


def log_level(verbosity: int) -> int:
    """Map the number of -v flags to a logging level."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(verbosity: int = 0) -> None:
    """Configure structlog for command-line use."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level(verbosity)),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
