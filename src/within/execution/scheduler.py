"""Scheduler — the bounded, single-threaded job event loop.

Manifesto:
    Run a fixed list of jobs to completion, never more than ``max_jobs``
    child processes at once, relaying their output line-prefixed as it
    arrives, and fold every exit status into one exit code.

    All mutable state (pending queue, active count, live pumps, running
    processes, aggregate status) lives on one ``Scheduler`` instance and is
    touched only from inside ``run()``.  The only blocking call is the
    waiter's ``wait()``.

ARCHITECTURE
────────────
::

    ┌──────────┐   active < max_jobs and pending   ┌──────────────┐
    │ FILLING  │ ────────────────────────────────▶ │ JobLauncher  │
    └────┬─────┘ ◀── RunningJob (2 pumps, 1 proc) ─└──────────────┘
         ▼
    ┌──────────┐   waiter.wait()  (no timeout)
    │ WAITING  │ ─────────────────────────────────▶ [WaitEvent, ...]
    └────┬─────┘
         ▼
    ┌──────────┐   READABLE fd → pumps[fd].pump() → retire on EOF
    │ DRAINING │
    └────┬─────┘
         ▼
    ┌──────────┐   EXITED pid → processes[pid].reap() → active -= 1
    │ REAPING  │   stillborn launches are reaped here as well
    └────┬─────┘
         ▼
    back to FILLING until: no pending, active == 0, no pumps → DONE

    Pumps are keyed by fd, processes by pid; removal during a pass is O(1).
    A job stays in ``running`` until it is reaped and both pumps hit EOF,
    whichever comes last.
    Order across pumps ready in the same pass is unspecified; bytes from
    one pump always keep their order.

Related modules:
    launcher.py — starts jobs, classifies start failures
    pump.py     — drains and prefixes one stream
    waiters/    — readiness-wait backends

Example::

    scheduler = Scheduler(job_specs(["a", "b"], ["git", "status"]), max_jobs=2)
    exit_code = scheduler.run()

Tags:
    within, execution, scheduler, event-loop, subprocess

Doc-Types:
    api-reference
"""

from __future__ import annotations

import sys
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import IO

from within.core.logging import get_logger
from within.execution.launcher import JobLauncher, RunningJob
from within.execution.pump import OutputPump, PumpStatus
from within.execution.spec import JobSpec
from within.execution.waiters import EventKind, WaitEvent, Waiter, create_waiter

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class Phase(str, Enum):
    """Where the loop currently is."""

    IDLE = "idle"
    FILLING = "filling"
    WAITING = "waiting"
    DRAINING = "draining"
    REAPING = "reaping"
    DONE = "done"


@dataclass
class RunStats:
    """Counters for one run."""

    started: int = 0
    succeeded: int = 0
    failed: int = 0
    peak_active: int = 0


class Scheduler:
    """Runs every job once, at most ``max_jobs`` at a time.

    Parameters
    ----------
    jobs : iterable of JobSpec
        Consumed in order (FIFO).
    max_jobs : int
        Concurrency limit, at least 1.
    stdout, stderr : binary file objects
        Combined sinks; default to the process's own stdout/stderr buffers.
    waiter : Waiter, optional
        Readiness backend; ``create_waiter(backend)`` when omitted.
    launcher : JobLauncher, optional
        Built from the sinks when omitted.
    backend : str
        Backend name used when ``waiter`` is not given.
    """

    def __init__(
        self,
        jobs: Iterable[JobSpec],
        max_jobs: int = 1,
        *,
        stdout: IO[bytes] | None = None,
        stderr: IO[bytes] | None = None,
        waiter: Waiter | None = None,
        launcher: JobLauncher | None = None,
        backend: str = "auto",
    ) -> None:
        if max_jobs < 1:
            raise ValueError(f"max_jobs must be at least 1, got {max_jobs}")

        self.pending: deque[JobSpec] = deque(jobs)
        self.max_jobs = max_jobs
        self.active = 0
        self.failed = False
        self.phase = Phase.IDLE
        self.stats = RunStats()

        self.pumps: dict[int, OutputPump] = {}
        self.processes: dict[int, RunningJob] = {}
        # Pumps only hold a weak reference; this keeps each job alive until finished.
        self.running: set[RunningJob] = set()
        self._stillborn: list[RunningJob] = []

        out = stdout if stdout is not None else sys.stdout.buffer
        err = stderr if stderr is not None else sys.stderr.buffer
        self.launcher = launcher or JobLauncher(out, err)
        self._waiter = waiter
        self._backend = backend

    @property
    def done(self) -> bool:
        return not self.pending and self.active == 0 and not self.pumps

    @property
    def exit_code(self) -> int:
        return EXIT_FAILURE if self.failed else EXIT_SUCCESS

    def run(self) -> int:
        """Run all jobs to completion and return the aggregate exit code.

        Raises:
            LaunchError, WaiterError, PumpReadError: Infrastructure failures;
                the run is abandoned.
            RuntimeError: If called a second time.
        """
        if self.phase is not Phase.IDLE:
            raise RuntimeError("Scheduler.run() can only be called once")

        if self._waiter is None:
            self._waiter = create_waiter(self._backend)
        waiter = self._waiter

        logger.info(
            "scheduler.started",
            jobs=len(self.pending),
            max_jobs=self.max_jobs,
            backend=getattr(waiter, "name", type(waiter).__name__),
        )
        try:
            while not self.done:
                self._fill(waiter)

                self.phase = Phase.WAITING
                if self._stillborn:
                    # Nothing may be registered yet; never block on an empty set.
                    events = waiter.wait(0) if self.pumps or self.processes else []
                else:
                    events = waiter.wait()

                self._drain(waiter, events)
                self._reap(events)
        finally:
            waiter.close()

        self.phase = Phase.DONE
        logger.info(
            "scheduler.finished",
            exit_code=self.exit_code,
            started=self.stats.started,
            succeeded=self.stats.succeeded,
            failed=self.stats.failed,
            peak_active=self.stats.peak_active,
        )
        return self.exit_code

    # ── Phases ───────────────────────────────────────────────────────

    def _fill(self, waiter: Waiter) -> None:
        self.phase = Phase.FILLING
        while self.active < self.max_jobs and self.pending:
            spec = self.pending.popleft()
            job = self.launcher.start(spec)
            self.active += 1
            self.stats.started += 1
            self.stats.peak_active = max(self.stats.peak_active, self.active)
            self.running.add(job)

            if job.stillborn:
                self._stillborn.append(job)
                continue

            assert job.process is not None
            for pump in job.pumps:
                self.pumps[pump.fd] = pump
                waiter.watch_stream(pump.fd)
            self.processes[job.process.pid] = job
            waiter.watch_process(job.process)

    def _drain(self, waiter: Waiter, events: list[WaitEvent]) -> None:
        self.phase = Phase.DRAINING
        for event in events:
            if event.kind is not EventKind.READABLE:
                continue
            pump = self.pumps.get(event.ident)
            if pump is None:
                continue
            if pump.pump() is PumpStatus.EOF:
                self._retire(waiter, pump)

    def _reap(self, events: list[WaitEvent]) -> None:
        self.phase = Phase.REAPING
        for event in events:
            if event.kind is not EventKind.EXITED:
                continue
            job = self.processes.pop(event.ident, None)
            if job is not None:
                self._record_exit(job)

        while self._stillborn:
            self._record_exit(self._stillborn.pop(0))

    # ── Bookkeeping ──────────────────────────────────────────────────

    def _retire(self, waiter: Waiter, pump: OutputPump) -> None:
        del self.pumps[pump.fd]
        waiter.unwatch_stream(pump.fd)
        pump.close()
        self._maybe_finished(pump.job)

    def _record_exit(self, job: RunningJob) -> None:
        status = job.reap()
        self.active -= 1
        if status != 0:
            self.failed = True
            self.stats.failed += 1
        else:
            self.stats.succeeded += 1
        logger.info("job.exited", directory=job.spec.directory, pid=job.pid, status=status)
        self._maybe_finished(job)

    def _maybe_finished(self, job: RunningJob | None) -> None:
        if job is not None and job.finished:
            self.running.discard(job)
            logger.debug("job.finished", directory=job.spec.directory, pid=job.pid)


def run_jobs(
    jobs: Iterable[JobSpec],
    max_jobs: int = 1,
    **kwargs: object,
) -> int:
    """Convenience wrapper: build a ``Scheduler`` and run it."""
    return Scheduler(jobs, max_jobs, **kwargs).run()  # type: ignore[arg-type]


__all__ = ["EXIT_FAILURE", "EXIT_SUCCESS", "Phase", "RunStats", "Scheduler", "run_jobs"]
