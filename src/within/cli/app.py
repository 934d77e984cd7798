"""
Typer application for ``within``.

Option parsing stops at the first positional argument, so everything after
the directory list (including the command's own flags and the ``--``
separator) reaches ``split_arguments`` untouched.
"""

from __future__ import annotations

import sys

import typer

from within.cli.args import parse_jobs, split_arguments
from within.cli.utils import error_exit, usage_exit
from within.core.errors import ConfigError, UsageError, WithinError
from within.core.logging import configure_logging, get_logger
from within.core.settings import load_settings
from within.execution.launcher import PROGRAM_NAME, JobLauncher
from within.execution.scheduler import EXIT_FAILURE, Scheduler
from within.execution.spec import job_specs

logger = get_logger(__name__)

PARSER_USAGE_STATUS = 2

app = typer.Typer(
    name="within",
    help="Run a command in several directories at once, prefixing its output.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from within import __version__

        typer.echo(f"within {__version__}")
        raise typer.Exit()


@app.command(context_settings={"allow_interspersed_args": False})
def run(
    args: list[str] | None = typer.Argument(  # noqa: UP007
        None,
        metavar="DIRECTORY [... --] COMMAND ...",
        help="Directories, then the command to run in each.",
        show_default=False,
    ),
    jobs: str | None = typer.Option(  # noqa: UP007
        None,
        "--jobs",
        "-j",
        metavar="JOBS",
        help="Maximum number of jobs running at once [default: $WITHIN_JOBS or 1].",
        show_default=False,
    ),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Run COMMAND in each DIRECTORY, at most JOBS at a time.

    Example::

        within -j4 app lib docs -- git status --short
        within build make clean
    """
    try:
        settings = load_settings()
        configure_logging(level=settings.log_level, json_format=settings.log_json)
    except ValueError as exc:
        raise error_exit(ConfigError(str(exc))) from None
    except WithinError as exc:
        raise error_exit(exc) from None

    try:
        max_jobs = parse_jobs(jobs) if jobs is not None else settings.jobs
        directories, command = split_arguments(args or [])
    except UsageError as exc:
        raise usage_exit(exc.message) from None

    sys.stdout.flush()
    sys.stderr.flush()
    stdout, stderr = sys.stdout.buffer, sys.stderr.buffer

    scheduler = Scheduler(
        job_specs(directories, command),
        max_jobs,
        stdout=stdout,
        stderr=stderr,
        launcher=JobLauncher(stdout, stderr, read_size=settings.read_size),
        backend=settings.backend,
    )
    try:
        exit_code = scheduler.run()
    except WithinError as exc:
        logger.error("run.failed", **exc.to_dict())
        raise error_exit(exc) from None

    raise typer.Exit(code=exit_code)


def main() -> None:
    """Console-script entry point; every usage error exits 1.

    typer reports its own parsing errors (unknown option, missing value) and
    exits 2; those are folded into the usage status.
    """
    try:
        app(prog_name=PROGRAM_NAME)
    except SystemExit as exc:
        if exc.code == PARSER_USAGE_STATUS:
            sys.exit(EXIT_FAILURE)
        raise
