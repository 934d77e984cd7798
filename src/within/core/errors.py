"""
Structured error types for within.

Every failure the orchestrator itself can hit is a ``WithinError``.  Failures
of an individual job (non-zero exit, missing directory, missing program) are
*not* errors at this level: they fold into the aggregate exit status.  What is
raised here ends the whole run.

Manifesto:
    - **Typed hierarchy:** usage, config, resource and I/O failures are
      distinguishable without parsing messages
    - **Rich context:** errors carry the directory, command, pid or fd they
      concern, so the final log line is enough to diagnose
    - **Error chaining:** the underlying ``OSError`` is kept as ``cause``

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                       WithinError                          │
        │              (category, context, cause)                    │
        ├───────────────────────────────────────────────────────────┤
        │  UsageError     ConfigError     LaunchError   WaiterError  │
        │  (USAGE)        (CONFIG)        (RESOURCE)    (RESOURCE)   │
        │                                                            │
        │  PumpReadError                                             │
        │  (IO)                                                      │
        └───────────────────────────────────────────────────────────┘

Examples:
    >>> err = LaunchError("fork failed").with_context(directory="src")
    >>> err.context.directory
    'src'
    >>> err.to_dict()["category"]
    'RESOURCE'

Tags:
    error-handling, exception-hierarchy, error-context, within

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for reporting."""

    USAGE = "USAGE"
    CONFIG = "CONFIG"
    RESOURCE = "RESOURCE"
    IO = "IO"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to a ``WithinError``.

    Attributes:
        directory: Job directory the error concerns
        command: Job command vector
        pid: Child process id
        fd: File descriptor being read or watched
        metadata: Additional key-value pairs
    """

    directory: str | None = None
    command: tuple[str, ...] | None = None
    pid: int | None = None
    fd: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["directory", "command", "pid", "fd"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = list(value) if key == "command" else value
        if self.metadata:
            result.update(self.metadata)
        return result


class WithinError(Exception):
    """
    Base exception for all within errors.

    Subclasses set ``default_category``; everything else is per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> WithinError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PumpReadError("read failed").with_context(fd=7, directory="src")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# USAGE AND CONFIGURATION ERRORS
# =============================================================================


class UsageError(WithinError):
    """Malformed command line: bad ``-j``, too few arguments, misplaced ``--``."""

    default_category = ErrorCategory.USAGE


class ConfigError(WithinError):
    """Invalid settings or an unknown/unavailable wait backend."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# INFRASTRUCTURE ERRORS (fatal to the whole run)
# =============================================================================


class LaunchError(WithinError):
    """Pipes could not be created or the child could not be spawned."""

    default_category = ErrorCategory.RESOURCE


class WaiterError(WithinError):
    """The readiness primitive could not be created or driven."""

    default_category = ErrorCategory.RESOURCE


class PumpReadError(WithinError):
    """Reading a job's output pipe failed with something other than EAGAIN."""

    default_category = ErrorCategory.IO


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "WithinError",
    "UsageError",
    "ConfigError",
    "LaunchError",
    "WaiterError",
    "PumpReadError",
]
