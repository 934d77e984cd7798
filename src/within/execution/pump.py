"""Output Pump — drain one job stream into a shared sink, prefixed.

Manifesto:
    A pump never blocks.  The scheduler calls ``pump()`` when the waiter
    reports its pipe readable; the pump reads until the pipe would block or
    hits end-of-stream, writes every chunk through its ``LinePrefixer`` and
    returns.  Each activation is bounded by what is already buffered in the
    pipe, so one chatty job cannot hold the loop.

ARCHITECTURE
────────────
::

    OutputPump(source, sink, prefix, job=None)
      ├── .fd            ─ descriptor the waiter watches
      ├── .pump()        ─ drain → PumpStatus.MORE | PumpStatus.EOF
      ├── .close()       ─ release the source handle
      └── .job           ─ owning RunningJob (weak, bookkeeping only)

    read → BlockingIOError  ⇒ MORE   (not an error)
    read → b""              ⇒ EOF
    read → other OSError    ⇒ PumpReadError (fatal)

Related modules:
    prefixer.py  — the pure line-prefix transform
    scheduler.py — registers, drives and retires pumps

Tags:
    within, execution, pump, non-blocking-io

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import weakref
from enum import Enum
from typing import IO, TYPE_CHECKING, Any

from within.core.errors import PumpReadError
from within.core.logging import get_logger
from within.execution.prefixer import LinePrefixer

if TYPE_CHECKING:
    from within.execution.launcher import RunningJob

logger = get_logger(__name__)

DEFAULT_READ_SIZE = 65536


class PumpStatus(str, Enum):
    """Outcome of one pump activation."""

    MORE = "more"
    EOF = "eof"


class OutputPump:
    """Non-blocking reader for one of a job's output pipes.

    Parameters
    ----------
    source : file object
        Read end of the pipe.  The pump owns it and switches it to
        non-blocking mode.
    sink : binary file object
        Shared destination (``sys.stdout.buffer`` and friends).
    prefix : str
        Directory name prepended to every line.
    job : RunningJob, optional
        Owning job; held through a weak reference.
    read_size : int
        Maximum bytes per ``os.read`` call.
    """

    def __init__(
        self,
        source: IO[bytes],
        sink: IO[bytes],
        prefix: str,
        job: RunningJob | None = None,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        self._source = source
        self._sink = sink
        self._fd = source.fileno()
        self._read_size = read_size
        self._job_ref: weakref.ref[Any] | None = weakref.ref(job) if job is not None else None
        self.prefixer = LinePrefixer(prefix)
        self.closed = False
        self.bytes_read = 0
        os.set_blocking(self._fd, False)

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def prefix(self) -> str:
        return os.fsdecode(self.prefixer.prefix)

    @property
    def at_line_start(self) -> bool:
        return self.prefixer.at_line_start

    @property
    def job(self) -> RunningJob | None:
        return self._job_ref() if self._job_ref is not None else None

    def pump(self) -> PumpStatus:
        """Drain everything currently readable from the source.

        Raises:
            PumpReadError: If a read fails with anything but "would block".
        """
        while True:
            try:
                chunk = os.read(self._fd, self._read_size)
            except BlockingIOError:
                return PumpStatus.MORE
            except OSError as exc:
                raise PumpReadError(
                    f"read from {self.prefix!r} failed: {exc.strerror or exc}",
                    cause=exc,
                ).with_context(directory=self.prefix, fd=self._fd) from exc

            if not chunk:
                logger.debug("pump.eof", prefix=self.prefix, fd=self._fd, bytes=self.bytes_read)
                return PumpStatus.EOF

            self.bytes_read += len(chunk)
            self._sink.write(self.prefixer.feed(chunk))
            self._sink.flush()

    def close(self) -> None:
        """Release the source handle.  Safe to call more than once."""
        if not self.closed:
            self.closed = True
            self._source.close()

    def __repr__(self) -> str:
        return f"OutputPump(prefix={self.prefix!r}, fd={self._fd}, closed={self.closed})"


__all__ = ["DEFAULT_READ_SIZE", "OutputPump", "PumpStatus"]
