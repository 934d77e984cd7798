"""kqueue waiter — pipes and process exits on one BSD/macOS queue.

Pipes are registered with ``EVFILT_READ``; each child gets a one-shot
``EVFILT_PROC``/``NOTE_EXIT`` filter.  A child that is already gone when it
is registered (``ESRCH``) is reported on the next ``wait()`` instead.
"""

from __future__ import annotations

import select
import subprocess

from within.core.errors import WaiterError
from within.execution.waiters.protocol import EventKind, WaitEvent


class KqueueWaiter:
    """``select.kqueue``-based waiter."""

    name = "kqueue"

    def __init__(self) -> None:
        if not self.available():
            raise WaiterError("kqueue is not available on this platform")
        try:
            self._kq = select.kqueue()
        except OSError as exc:
            raise WaiterError(f"cannot create kqueue: {exc}", cause=exc) from exc
        self._streams: set[int] = set()
        self._processes: set[int] = set()
        self._already_exited: list[int] = []

    @staticmethod
    def available() -> bool:
        return hasattr(select, "kqueue")

    def watch_stream(self, fd: int) -> None:
        self._control(select.kevent(fd, filter=select.KQ_FILTER_READ, flags=select.KQ_EV_ADD))
        self._streams.add(fd)

    def unwatch_stream(self, fd: int) -> None:
        self._streams.discard(fd)
        self._control(select.kevent(fd, filter=select.KQ_FILTER_READ, flags=select.KQ_EV_DELETE))

    def watch_process(self, process: subprocess.Popen[bytes]) -> None:
        change = select.kevent(
            process.pid,
            filter=select.KQ_FILTER_PROC,
            flags=select.KQ_EV_ADD | select.KQ_EV_ONESHOT,
            fflags=select.KQ_NOTE_EXIT,
        )
        try:
            self._kq.control([change], 0, 0)
        except ProcessLookupError:
            self._already_exited.append(process.pid)
            return
        except OSError as exc:
            raise WaiterError(
                f"cannot watch process {process.pid}: {exc}", cause=exc
            ).with_context(pid=process.pid) from exc
        self._processes.add(process.pid)

    def wait(self, timeout: float | None = None) -> list[WaitEvent]:
        events = [WaitEvent(EventKind.EXITED, pid) for pid in self._already_exited]
        self._already_exited.clear()
        if events:
            timeout = 0

        max_events = max(1, len(self._streams) + len(self._processes))
        try:
            ready = self._kq.control(None, max_events, timeout)
        except OSError as exc:
            raise WaiterError(f"polling kevent failed: {exc}", cause=exc) from exc

        for kev in ready:
            if kev.filter == select.KQ_FILTER_PROC:
                self._processes.discard(kev.ident)
                events.append(WaitEvent(EventKind.EXITED, kev.ident))
            elif kev.filter == select.KQ_FILTER_READ:
                events.append(WaitEvent(EventKind.READABLE, kev.ident))
        return events

    def close(self) -> None:
        self._kq.close()

    def _control(self, change: select.kevent) -> None:
        try:
            self._kq.control([change], 0, 0)
        except OSError as exc:
            raise WaiterError(f"kevent change failed: {exc}", cause=exc).with_context(
                fd=change.ident
            ) from exc


__all__ = ["KqueueWaiter"]
