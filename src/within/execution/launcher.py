"""Job Launcher — start one child per JobSpec with its output piped back.

Manifesto:
    Starting a job means: two pipes, one child in the job's directory
    running the job's command, the read ends wrapped in two ``OutputPump``s.
    How a start can fail decides what happens to the run:

    - pipes cannot be created, fork/spawn fails → ``LaunchError``, the whole
      run aborts.  There is no graceful degradation for infrastructure.
    - the directory cannot be entered, the program cannot be executed → only
      *this* job fails.  The child would have reported it on its stderr and
      exited 1, so that is exactly what the launcher reproduces: a prefixed
      diagnostic on the stderr sink and a "stillborn" job with returncode 1.

    Once control has passed to the child, its exit status is all the
    orchestrator can observe, and the stillborn path reports exactly that.

ARCHITECTURE
────────────
::

    JobLauncher(stdout, stderr, read_size=65536)
      └── .start(spec) → RunningJob
            ├── process      ─ subprocess.Popen (None if stillborn)
            ├── stdout_pump  ─ OutputPump → stdout sink
            ├── stderr_pump  ─ OutputPump → stderr sink
            └── returncode   ─ set when reaped (1 at once if stillborn)

Tags:
    within, execution, launcher, subprocess

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from typing import IO

from within.core.errors import LaunchError
from within.core.logging import get_logger
from within.execution.prefixer import LinePrefixer
from within.execution.pump import DEFAULT_READ_SIZE, OutputPump
from within.execution.spec import JobSpec

logger = get_logger(__name__)

PROGRAM_NAME = "within"
SETUP_FAILURE_STATUS = 1


@dataclass(eq=False)
class RunningJob:
    """A started job: its process handle and the two pumps reading it."""

    spec: JobSpec
    process: subprocess.Popen[bytes] | None = None
    stdout_pump: OutputPump | None = None
    stderr_pump: OutputPump | None = None
    returncode: int | None = None
    reaped: bool = False
    launch_error: OSError | None = field(default=None, repr=False)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def stillborn(self) -> bool:
        """True when the directory or program failed before the job could run."""
        return self.launch_error is not None

    @property
    def pumps(self) -> tuple[OutputPump, ...]:
        return tuple(p for p in (self.stdout_pump, self.stderr_pump) if p is not None)

    @property
    def finished(self) -> bool:
        """Reaped AND both streams at end-of-stream, in whichever order."""
        return self.reaped and all(p.closed for p in self.pumps)

    @property
    def failed(self) -> bool:
        return self.returncode is not None and self.returncode != 0

    def reap(self) -> int:
        """Collect the exit status of an exited child.

        Only call this after the waiter reported the exit; ``wait()`` then
        returns immediately.
        """
        if not self.reaped:
            if self.process is not None:
                self.returncode = self.process.wait()
            self.reaped = True
        assert self.returncode is not None
        return self.returncode


class JobLauncher:
    """Spawns jobs, wiring stdout/stderr of each child into its own pumps.

    Parameters
    ----------
    stdout : binary file object
        Sink for every job's standard output.
    stderr : binary file object
        Sink for every job's standard error.  May be the same object.
    read_size : int
        Passed on to each ``OutputPump``.
    """

    def __init__(
        self,
        stdout: IO[bytes],
        stderr: IO[bytes],
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.read_size = read_size

    def start(self, spec: JobSpec) -> RunningJob:
        """Start ``spec.command`` inside ``spec.directory``.

        Raises:
            LaunchError: If pipes or the child process cannot be created.
        """
        try:
            process = subprocess.Popen(
                spec.command,
                cwd=spec.directory,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            if exc.filename in (spec.directory, spec.program):
                return self._stillborn(spec, exc)
            raise LaunchError(
                f"cannot start job in {spec.directory!r}: {exc.strerror or exc}",
                cause=exc,
            ).with_context(directory=spec.directory, command=spec.command) from exc

        assert process.stdout is not None and process.stderr is not None
        job = RunningJob(spec=spec, process=process)
        job.stdout_pump = OutputPump(process.stdout, self.stdout, spec.prefix, job, self.read_size)
        job.stderr_pump = OutputPump(process.stderr, self.stderr, spec.prefix, job, self.read_size)

        logger.info("job.started", directory=spec.directory, pid=process.pid)
        return job

    def _stillborn(self, spec: JobSpec, exc: OSError) -> RunningJob:
        """Report a directory/exec failure the way the child itself would have."""
        what = "chdir" if exc.filename == spec.directory else spec.program
        reason = exc.strerror or os.strerror(exc.errno or 0)
        message = os.fsencode(f"{PROGRAM_NAME}: {what}: {reason}\n")

        self.stderr.write(LinePrefixer(spec.prefix).feed(message))
        self.stderr.flush()

        logger.info("launcher.stillborn", directory=spec.directory, reason=reason, step=what)
        return RunningJob(spec=spec, returncode=SETUP_FAILURE_STATUS, launch_error=exc)


__all__ = ["JobLauncher", "PROGRAM_NAME", "RunningJob", "SETUP_FAILURE_STATUS"]
