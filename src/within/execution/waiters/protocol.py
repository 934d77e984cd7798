"""Waiter Protocol — the single readiness-wait interface.

Manifesto:
    The scheduler blocks in exactly one place: waiting until some job
    pipe has data or some child has exited.  How that wait is implemented
    (epoll + pidfd, kqueue, a watcher thread feeding a self-pipe) is a
    backend detail.  ``Waiter`` is a ``typing.Protocol``; any object with
    the right methods can drive the scheduler.

ARCHITECTURE
────────────
::

    Waiter (Protocol)
      ├── .watch_stream(fd)        ─ report fd when readable (level-triggered)
      ├── .unwatch_stream(fd)      ─ stop watching before the fd is closed
      ├── .watch_process(process)  ─ report pid once, when it exits
      ├── .wait(timeout=None)      ─ block → list[WaitEvent]
      └── .close()

    Implementations:
      KqueueWaiter  ─ select.kqueue, EVFILT_READ + EVFILT_PROC  (BSD, macOS)
      PidfdWaiter   ─ selectors + os.pidfd_open                 (Linux)
      ThreadWaiter  ─ selectors + watcher threads + self-pipe   (any POSIX)

Tags:
    within, execution, waiter, protocol, event-loop

Doc-Types:
    api-reference
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class EventKind(str, Enum):
    READABLE = "readable"
    EXITED = "exited"


@dataclass(frozen=True)
class WaitEvent:
    """One readiness notification: ``ident`` is an fd (READABLE) or a pid (EXITED)."""

    kind: EventKind
    ident: int


@runtime_checkable
class Waiter(Protocol):
    """Wait for any of: these streams became readable, these processes exited.

    Exit notifications are one-shot.  Stream notifications repeat for as long
    as data (or end-of-stream) is pending on the fd.
    """

    name: str

    def watch_stream(self, fd: int) -> None:
        """Start reporting ``fd`` when it becomes readable."""
        ...

    def unwatch_stream(self, fd: int) -> None:
        """Stop reporting ``fd``.  Must be called before the fd is closed."""
        ...

    def watch_process(self, process: subprocess.Popen[bytes]) -> None:
        """Report ``process.pid`` once the process has exited.

        The waiter must not reap the child in a way that loses its status:
        ``process.wait()`` has to keep working afterwards.
        """
        ...

    def wait(self, timeout: float | None = None) -> list[WaitEvent]:
        """Block until at least one event is ready (or ``timeout`` passes).

        Raises:
            WaiterError: If the underlying primitive fails.
        """
        ...

    def close(self) -> None:
        """Release the primitive and anything still registered."""
        ...
