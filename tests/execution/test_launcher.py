"""Tests for within.execution.launcher — starting jobs and classifying failures.

Directory and exec failures are contained in the job (stillborn, status 1,
prefixed diagnostic).  Pipe/fork failures abort the run with LaunchError.
Both paths are tested on purpose: the asymmetry is part of the contract.
"""

from __future__ import annotations

import errno
import io
import os

import pytest

from within.core.errors import ErrorCategory, LaunchError
from within.execution.launcher import SETUP_FAILURE_STATUS, JobLauncher
from within.execution.pump import PumpStatus
from within.execution.spec import JobSpec


def _drain(pump):
    os.set_blocking(pump.fd, True)
    while pump.pump() is not PumpStatus.EOF:
        pass
    pump.close()


class TestStart:
    def test_pumps_route_to_their_own_sinks(self, job_dirs, py):
        out, err = io.BytesIO(), io.BytesIO()
        launcher = JobLauncher(out, err)
        code = "import sys; print('to out'); print('to err', file=sys.stderr)"

        job = launcher.start(JobSpec("d1", tuple(py(code))))
        _drain(job.stdout_pump)
        _drain(job.stderr_pump)
        assert job.reap() == 0

        assert out.getvalue() == b"d1: to out\n"
        assert err.getvalue() == b"d1: to err\n"

    def test_runs_in_job_directory(self, job_dirs, py):
        out = io.BytesIO()
        launcher = JobLauncher(out, io.BytesIO())

        job = launcher.start(JobSpec("d2", tuple(py("import os; print(os.path.basename(os.getcwd()))"))))
        _drain(job.stdout_pump)
        _drain(job.stderr_pump)
        job.reap()

        assert out.getvalue() == b"d2: d2\n"

    def test_running_job_bookkeeping(self, job_dirs, py):
        launcher = JobLauncher(io.BytesIO(), io.BytesIO())
        job = launcher.start(JobSpec("d1", tuple(py("raise SystemExit(3)"))))

        assert job.pid == job.process.pid
        assert job.stillborn is False
        assert len(job.pumps) == 2
        assert all(p.job is job for p in job.pumps)
        assert job.finished is False

        _drain(job.stdout_pump)
        assert job.finished is False
        assert job.reap() == 3
        assert job.failed is True
        assert job.finished is False
        _drain(job.stderr_pump)
        assert job.finished is True


class TestChildSetupFailures:
    def test_missing_directory_is_stillborn(self, job_dirs):
        err = io.BytesIO()
        launcher = JobLauncher(io.BytesIO(), err)

        job = launcher.start(JobSpec("nope", ("pwd",)))

        assert job.stillborn is True
        assert job.process is None
        assert job.pumps == ()
        assert job.reap() == SETUP_FAILURE_STATUS
        assert job.finished is True
        assert err.getvalue().startswith(b"nope: within: chdir: ")
        assert err.getvalue().endswith(b"\n")

    def test_missing_program_is_stillborn(self, job_dirs):
        err = io.BytesIO()
        launcher = JobLauncher(io.BytesIO(), err)

        job = launcher.start(JobSpec("d1", ("within-test-no-such-program",)))

        assert job.stillborn is True
        assert job.returncode == SETUP_FAILURE_STATUS
        assert err.getvalue().startswith(b"d1: within: within-test-no-such-program: ")


class TestInfrastructureFailures:
    def test_spawn_failure_raises_launch_error(self, job_dirs, monkeypatch):
        def no_resources(*args, **kwargs):
            raise OSError(errno.EMFILE, "Too many open files")

        monkeypatch.setattr("within.execution.launcher.subprocess.Popen", no_resources)
        launcher = JobLauncher(io.BytesIO(), io.BytesIO())

        with pytest.raises(LaunchError) as info:
            launcher.start(JobSpec("d1", ("pwd",)))

        err = info.value
        assert err.category is ErrorCategory.RESOURCE
        assert err.context.directory == "d1"
        assert err.context.command == ("pwd",)
        assert "Too many open files" in err.message
