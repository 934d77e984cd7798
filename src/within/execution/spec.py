"""Job specification - what to run and where.

Manifesto:
    The scheduler never parses arguments.  It is handed a ready-made,
    ordered list of ``JobSpec`` values and consumes each exactly once.

Tags:
    within, execution, spec, job-spec

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class JobSpec:
    """One (directory, command) pair to execute as a child process.

    Example:
        >>> spec = JobSpec("src", ("git", "status"))
        >>> spec.prefix
        'src'
    """

    directory: str
    """Working directory of the child; also the output prefix"""

    command: tuple[str, ...]
    """Program and arguments (argv), looked up on PATH like execvp"""

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("JobSpec.command must not be empty")
        # Accept lists from callers but keep the value immutable.
        object.__setattr__(self, "command", tuple(self.command))

    @property
    def prefix(self) -> str:
        return self.directory

    @property
    def program(self) -> str:
        return self.command[0]


def job_specs(directories: Iterable[str], command: Sequence[str]) -> list[JobSpec]:
    """Build the ordered job list: the same command once per directory."""
    argv = tuple(command)
    return [JobSpec(directory, argv) for directory in directories]


__all__ = ["JobSpec", "job_specs"]
