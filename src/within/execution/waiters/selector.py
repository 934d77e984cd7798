"""Selector-based waiters — epoll/poll for pipes, two ways to see exits.

``PidfdWaiter`` turns each child into a descriptor with ``os.pidfd_open``
(Linux 5.3+) and lets the selector watch it like any pipe.

``ThreadWaiter`` works everywhere: one daemon thread per child blocks in
``process.wait()`` and, when it returns, posts the pid on a queue and writes
a byte to a self-pipe the selector watches.  The threads never touch
scheduler state; the loop stays single-threaded.  No signal handlers are
involved in either backend.
"""

from __future__ import annotations

import os
import queue
import selectors
import subprocess
import threading

from within.core.errors import WaiterError
from within.execution.waiters.protocol import EventKind, WaitEvent

# Tag for the ThreadWaiter self-pipe.
_NOTIFY = "notify"


class _SelectorWaiter:
    """Shared selector plumbing; subclasses add process-exit watching."""

    name = "selector"

    def __init__(self) -> None:
        try:
            self._selector = selectors.DefaultSelector()
        except OSError as exc:
            raise WaiterError(f"cannot create selector: {exc}", cause=exc) from exc

    def watch_stream(self, fd: int) -> None:
        self._register(fd, (EventKind.READABLE, fd))

    def unwatch_stream(self, fd: int) -> None:
        self._selector.unregister(fd)

    def wait(self, timeout: float | None = None) -> list[WaitEvent]:
        try:
            ready = self._selector.select(timeout)
        except OSError as exc:
            raise WaiterError(f"waiting for events failed: {exc}", cause=exc) from exc

        events: list[WaitEvent] = []
        for key, _mask in ready:
            events.extend(self._translate(key.data))
        return events

    def close(self) -> None:
        self._selector.close()

    def _register(self, fd: int, data: tuple[object, int]) -> None:
        try:
            self._selector.register(fd, selectors.EVENT_READ, data)
        except (OSError, ValueError) as exc:
            raise WaiterError(f"cannot watch fd {fd}: {exc}", cause=exc).with_context(fd=fd) from exc

    def _translate(self, data: tuple[object, int]) -> list[WaitEvent]:
        kind, ident = data
        return [WaitEvent(EventKind(kind), ident)]


class PidfdWaiter(_SelectorWaiter):
    """Exit notification through Linux process file descriptors."""

    name = "pidfd"

    def __init__(self) -> None:
        super().__init__()
        self._pidfds: dict[int, int] = {}

    @staticmethod
    def available() -> bool:
        if not hasattr(os, "pidfd_open"):
            return False
        try:
            os.close(os.pidfd_open(os.getpid()))
        except OSError:
            return False
        return True

    def watch_process(self, process: subprocess.Popen[bytes]) -> None:
        try:
            pidfd = os.pidfd_open(process.pid)
        except OSError as exc:
            raise WaiterError(
                f"cannot watch process {process.pid}: {exc}", cause=exc
            ).with_context(pid=process.pid) from exc
        self._pidfds[process.pid] = pidfd
        self._register(pidfd, (EventKind.EXITED, process.pid))

    def _translate(self, data: tuple[object, int]) -> list[WaitEvent]:
        kind, ident = data
        if kind == EventKind.EXITED:
            pidfd = self._pidfds.pop(ident)
            self._selector.unregister(pidfd)
            os.close(pidfd)
        return super()._translate(data)

    def close(self) -> None:
        for pidfd in self._pidfds.values():
            os.close(pidfd)
        self._pidfds.clear()
        super().close()


class ThreadWaiter(_SelectorWaiter):
    """Exit notification through watcher threads and a self-pipe."""

    name = "thread"

    def __init__(self) -> None:
        super().__init__()
        try:
            self._wakeup_r, self._wakeup_w = os.pipe()
        except OSError as exc:
            self._selector.close()
            raise WaiterError(f"cannot create wakeup pipe: {exc}", cause=exc) from exc
        os.set_blocking(self._wakeup_r, False)
        os.set_blocking(self._wakeup_w, False)
        self._exited: queue.SimpleQueue[int] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False
        self._register(self._wakeup_r, (_NOTIFY, self._wakeup_r))

    @staticmethod
    def available() -> bool:
        return True

    def watch_process(self, process: subprocess.Popen[bytes]) -> None:
        watcher = threading.Thread(
            target=self._watch,
            args=(process,),
            name=f"within-exit-{process.pid}",
            daemon=True,
        )
        watcher.start()

    def _watch(self, process: subprocess.Popen[bytes]) -> None:
        process.wait()
        self._exited.put(process.pid)
        with self._lock:
            if self._closed:
                return
            try:
                os.write(self._wakeup_w, b"\0")
            except BlockingIOError:
                # Pipe full: a wakeup is already pending.
                pass

    def _translate(self, data: tuple[object, int]) -> list[WaitEvent]:
        kind, _ident = data
        if kind != _NOTIFY:
            return super()._translate(data)

        while True:
            try:
                if not os.read(self._wakeup_r, 4096):
                    break
            except BlockingIOError:
                break

        events = []
        while True:
            try:
                pid = self._exited.get_nowait()
            except queue.Empty:
                break
            events.append(WaitEvent(EventKind.EXITED, pid))
        return events

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            os.close(self._wakeup_r)
            os.close(self._wakeup_w)
        super().close()


__all__ = ["PidfdWaiter", "ThreadWaiter"]
