"""Readiness-wait backends and the factory that picks one.

``create_waiter("auto")`` prefers kqueue (BSD, macOS), then Linux pidfds,
then the portable watcher-thread backend.
"""

from __future__ import annotations

from within.core.errors import ConfigError
from within.execution.waiters.kqueue import KqueueWaiter
from within.execution.waiters.protocol import EventKind, WaitEvent, Waiter
from within.execution.waiters.selector import PidfdWaiter, ThreadWaiter

BACKENDS: dict[str, type] = {
    "kqueue": KqueueWaiter,
    "pidfd": PidfdWaiter,
    "thread": ThreadWaiter,
}


def available_backends() -> list[str]:
    """Backend names usable on this platform, in ``auto`` preference order."""
    return [name for name, cls in BACKENDS.items() if cls.available()]


def create_waiter(backend: str = "auto") -> Waiter:
    """Instantiate a waiter by name.

    Raises:
        ConfigError: If the backend is unknown or unavailable here.
        WaiterError: If the primitive cannot be created.
    """
    name = backend.lower()
    if name == "auto":
        name = available_backends()[0]

    cls = BACKENDS.get(name)
    if cls is None:
        raise ConfigError(f"Unknown wait backend: {backend!r}")
    if not cls.available():
        raise ConfigError(f"Wait backend {backend!r} is not available on this platform")
    return cls()


__all__ = [
    "BACKENDS",
    "EventKind",
    "KqueueWaiter",
    "PidfdWaiter",
    "ThreadWaiter",
    "WaitEvent",
    "Waiter",
    "available_backends",
    "create_waiter",
]
