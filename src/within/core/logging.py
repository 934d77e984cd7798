"""
Structured logging for within.

Manifesto:
    Standard output belongs to the jobs.  Every diagnostic the orchestrator
    produces goes through structlog to **standard error**, quiet by default
    (``WARNING``) so that prefixed job output is all a user sees unless they
    ask for more with ``WITHIN_LOG_LEVEL=DEBUG``.

Architecture:
    ::

        configure_logging(level="WARNING", json_format=False)
            ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. add_log_level
          3. StackInfoRenderer / set_exc_info
          4. ConsoleRenderer (or JSONRenderer)
            ↓
        PrintLogger(file=sys.stderr)

        logger = get_logger(__name__)
        logger.info("job.started", directory="src", pid=4242)

Tags:
    logging, structlog, observability, within

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor


def configure_logging(
    level: str = "WARNING",
    json_format: bool = False,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON lines, False for console rendering
        add_timestamp: Include ISO timestamp in logs

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    # Loggers are not cached: sys.stderr may be swapped (tests, CliRunner) and
    # each configure call must rebind to the current stream.
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    The name travels as the ``logger_name`` key of every event.  It is an
    initial value of the lazy proxy, so nothing is resolved before
    ``configure_logging`` runs.

    Args:
        name: Logger name (usually __name__)
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name, logger_name=name)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "get_logger",
    "clear_context",
]
