"""Runtime settings for within.

Command-line flags cover the per-run choices; everything else (defaults for
``-j``, which wait backend to use, how loudly to log) comes from the
environment with the ``WITHIN_`` prefix or a ``.env`` file.

Examples:
    >>> load_settings(jobs=4).jobs
    4

Tags:
    settings, configuration, pydantic, environment, within

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from within.core.errors import ConfigError

BACKENDS = ("auto", "kqueue", "pidfd", "thread")


class WithinSettings(BaseSettings):
    """Settings read from ``WITHIN_*`` environment variables.

    Fields
    ──────
    jobs       : Default concurrency limit when ``-j`` is not given
    backend    : Readiness-wait backend (auto, kqueue, pidfd, thread)
    log_level  : Structlog log level for orchestrator diagnostics
    log_json   : Render diagnostics as JSON lines
    read_size  : Maximum bytes per read from a job's pipe
    """

    model_config = SettingsConfigDict(
        env_prefix="WITHIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jobs: int = Field(default=1, ge=1)
    backend: str = "auto"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "WARNING"
    log_json: bool = False

    # ── I/O ──────────────────────────────────────────────────────
    read_size: int = Field(default=65536, ge=1)

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in BACKENDS:
            raise ValueError(f"must be one of {', '.join(BACKENDS)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def load_settings(**overrides: Any) -> WithinSettings:
    """Build settings from the environment, raising ``ConfigError`` on bad values."""
    try:
        return WithinSettings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}", cause=exc) from exc


__all__ = ["BACKENDS", "WithinSettings", "load_settings"]
