"""
Command-line shape: ``within [-j jobs] directory [... --] command ...``.

The scheduler only ever sees a job list, a limit and a command vector; this
module turns raw positional arguments into those and rejects anything else
as a ``UsageError``.
"""

from __future__ import annotations

from collections.abc import Sequence

from within.core.errors import UsageError

SEPARATOR = "--"
USAGE = "usage: within [-j jobs] directory [... --] command ..."


def parse_jobs(value: str) -> int:
    """Parse a ``-j`` value; anything but plain ASCII digits above zero is a usage error."""
    if not (value.isascii() and value.isdigit()) or int(value) < 1:
        raise UsageError(f"invalid -j: {value}")
    return int(value)


def split_arguments(args: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split positionals into (directories, command).

    The first literal ``--`` separates directories from the command; it may
    be neither the first nor the last argument.  Without one, the first
    argument is the only directory and the rest is the command.

    Examples:
        >>> split_arguments(["a", "b", "--", "make", "clean"])
        (['a', 'b'], ['make', 'clean'])
        >>> split_arguments(["src", "pwd"])
        (['src'], ['pwd'])
    """
    if len(args) < 2:
        raise UsageError("too few arguments")

    if SEPARATOR in args:
        index = list(args).index(SEPARATOR)
        if index < 1 or index + 1 >= len(args):
            raise UsageError(f"misplaced {SEPARATOR}")
        return list(args[:index]), list(args[index + 1 :])

    return [args[0]], list(args[1:])


__all__ = ["SEPARATOR", "USAGE", "parse_jobs", "split_arguments"]
