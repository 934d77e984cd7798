"""
CLI utility helpers — diagnostics on stderr.

Standard output is reserved for job output, so everything the CLI itself
says goes to ``err_console``.
"""

from __future__ import annotations

import typer
from rich.console import Console

from within.cli.args import USAGE
from within.core.errors import WithinError

err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def print_error(message: str) -> None:
    err_console.print(f"within: {message}", markup=False)


def usage_exit(message: str | None = None) -> typer.Exit:
    """Print an optional reason plus the usage line; return the Exit to raise."""
    if message:
        print_error(message)
    err_console.print(USAGE, markup=False)
    return typer.Exit(code=1)


def error_exit(exc: WithinError) -> typer.Exit:
    """Report a fatal ``WithinError``; return the Exit to raise."""
    print_error(exc.message)
    return typer.Exit(code=1)
