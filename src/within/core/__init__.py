"""Core primitives shared by the scheduler and the CLI: errors, logging, settings."""

from within.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    LaunchError,
    PumpReadError,
    UsageError,
    WaiterError,
    WithinError,
)
from within.core.logging import configure_logging, get_logger

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "LaunchError",
    "PumpReadError",
    "UsageError",
    "WaiterError",
    "WithinError",
    "configure_logging",
    "get_logger",
]
