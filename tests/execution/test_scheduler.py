"""Tests for within.execution.scheduler — the bounded job event loop.

Covers FIFO order, the concurrency bound, exit-status aggregation, per-job
byte order, stillborn jobs and fatal infrastructure errors.  Runs real child
processes through every wait backend available on the platform.
"""

from __future__ import annotations

import gc
import io

import pytest

from within.core.errors import PumpReadError
from within.execution.launcher import JobLauncher
from within.execution.pump import OutputPump
from within.execution.scheduler import Phase, Scheduler
from within.execution.spec import JobSpec, job_specs
from within.execution.waiters import create_waiter

pytestmark = pytest.mark.integration


class SpyLauncher(JobLauncher):
    """Records the scheduler's active count each time a job is started."""

    def __init__(self, stdout, stderr):
        super().__init__(stdout, stderr)
        self.scheduler = None
        self.active_at_start: list[int] = []
        self.started: list[str] = []

    def start(self, spec):
        self.active_at_start.append(self.scheduler.active)
        self.started.append(spec.directory)
        return super().start(spec)


class RecordingWaiter:
    """Delegates to a real waiter and keeps track of how it was driven."""

    def __init__(self, inner):
        self.inner = inner
        self.name = f"recording-{inner.name}"
        self.waits = 0
        self.closed = False

    def watch_stream(self, fd):
        self.inner.watch_stream(fd)

    def unwatch_stream(self, fd):
        self.inner.unwatch_stream(fd)

    def watch_process(self, process):
        self.inner.watch_process(process)

    def wait(self, timeout=None):
        self.waits += 1
        return self.inner.wait(timeout)

    def close(self):
        self.closed = True
        self.inner.close()


def _scheduler(jobs, max_jobs=1, backend="auto", **kwargs):
    out, err = io.BytesIO(), io.BytesIO()
    scheduler = Scheduler(jobs, max_jobs, stdout=out, stderr=err, backend=backend, **kwargs)
    return scheduler, out, err


class TestBasicRuns:
    def test_fifo_order_with_one_slot(self, job_dirs, backend):
        scheduler, out, _err = _scheduler(job_specs(["d1", "d2"], ["echo", "hi"]), 1, backend)

        assert scheduler.run() == 0
        assert out.getvalue() == b"d1: hi\nd2: hi\n"
        assert scheduler.phase is Phase.DONE
        assert scheduler.done is True

    def test_no_jobs(self, job_dirs):
        scheduler, out, err = _scheduler([], 3)
        assert scheduler.run() == 0
        assert out.getvalue() == b""
        assert err.getvalue() == b""
        assert scheduler.stats.started == 0

    def test_same_directory_twice(self, job_dirs, py):
        code = "import os; os.write(1, b'hi\\n')"
        scheduler, out, _err = _scheduler(job_specs(["d1", "d1"], py(code)), 2)

        assert scheduler.run() == 0
        assert sorted(out.getvalue().splitlines()) == [b"d1: hi", b"d1: hi"]
        assert scheduler.stats.started == 2

    def test_streams_go_to_their_own_sinks(self, job_dirs, py):
        code = "import os; os.write(1, b'out\\n'); os.write(2, b'err\\n')"
        scheduler, out, err = _scheduler(job_specs(["d1", "d2"], py(code)), 2)

        assert scheduler.run() == 0
        assert sorted(out.getvalue().splitlines()) == [b"d1: out", b"d2: out"]
        assert sorted(err.getvalue().splitlines()) == [b"d1: err", b"d2: err"]

    def test_run_only_once(self, job_dirs):
        scheduler, _out, _err = _scheduler([], 1)
        scheduler.run()
        with pytest.raises(RuntimeError, match="only be called once"):
            scheduler.run()

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            Scheduler([], 0, stdout=io.BytesIO(), stderr=io.BytesIO())


class TestConcurrencyBound:
    @pytest.mark.parametrize("max_jobs", [1, 2, 3])
    def test_active_never_exceeds_limit(self, job_dirs, py, max_jobs):
        out, err = io.BytesIO(), io.BytesIO()
        launcher = SpyLauncher(out, err)
        jobs = job_specs(job_dirs + job_dirs[:2], py("import os, time; time.sleep(0.1); os.write(1, b'done\\n')"))
        scheduler = Scheduler(jobs, max_jobs, stdout=out, stderr=err, launcher=launcher)
        launcher.scheduler = scheduler

        assert scheduler.run() == 0
        assert max(launcher.active_at_start) < max_jobs
        assert scheduler.stats.peak_active == max_jobs
        assert scheduler.stats.started == len(jobs)
        assert launcher.started == [j.directory for j in jobs]
        assert len(out.getvalue().splitlines()) == len(jobs)

    def test_more_slots_than_jobs(self, job_dirs, py):
        scheduler, out, _err = _scheduler(job_specs(["d1", "d2"], py("print(1)")), 8)
        assert scheduler.run() == 0
        assert scheduler.stats.peak_active <= 2


class TestExitStatus:
    def test_one_failure_fails_the_run(self, tmp_path, monkeypatch, py):
        (tmp_path / "ok").mkdir()
        (tmp_path / "bad").mkdir()
        monkeypatch.chdir(tmp_path)
        code = "import os, sys; sys.exit(os.path.basename(os.getcwd()) == 'bad')"

        scheduler, _out, _err = _scheduler(job_specs(["ok", "bad"], py(code)), 2)

        assert scheduler.run() == 1
        assert scheduler.failed is True
        assert scheduler.stats.succeeded == 1
        assert scheduler.stats.failed == 1

    def test_failure_does_not_stop_the_queue(self, job_dirs, py):
        scheduler, out, _err = _scheduler(job_specs(job_dirs, py("print('ran'); raise SystemExit(2)")), 1)

        assert scheduler.run() == 1
        assert len(out.getvalue().splitlines()) == len(job_dirs)

    def test_killed_child_counts_as_failure(self, job_dirs, py):
        code = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"
        scheduler, _out, _err = _scheduler([JobSpec("d1", tuple(py(code)))], 1)
        assert scheduler.run() == 1

    def test_missing_directory_is_a_job_failure(self, job_dirs):
        scheduler, out, err = _scheduler(job_specs(["d1", "missing", "d2"], ["echo", "hi"]), 1)

        assert scheduler.run() == 1
        assert out.getvalue() == b"d1: hi\nd2: hi\n"
        assert err.getvalue().startswith(b"missing: within: chdir: ")
        assert scheduler.stats.failed == 1
        assert scheduler.active == 0

    def test_only_stillborn_jobs(self, job_dirs):
        scheduler, _out, err = _scheduler(job_specs(["x", "y"], ["echo"]), 2)
        assert scheduler.run() == 1
        assert err.getvalue().count(b"within: chdir: ") == 2


class TestOutputOrdering:
    def test_per_job_line_order_is_preserved(self, job_dirs, py):
        code = "import os\nfor i in range(300): os.write(1, b'%d\\n' % i)"
        scheduler, out, _err = _scheduler(job_specs(job_dirs, py(code)), 4)

        assert scheduler.run() == 0
        lines = out.getvalue().splitlines()
        for directory in job_dirs:
            prefix = f"{directory}: ".encode()
            mine = [line[len(prefix):] for line in lines if line.startswith(prefix)]
            assert mine == [str(i).encode() for i in range(300)]

    def test_partial_writes_prefixed_once(self, job_dirs, py):
        code = (
            "import sys, time\n"
            "for part in ('hel', 'lo ', 'world\\n'):\n"
            "    sys.stdout.write(part); sys.stdout.flush(); time.sleep(0.05)\n"
        )
        scheduler, out, _err = _scheduler([JobSpec("d1", tuple(py(code)))], 1)

        assert scheduler.run() == 0
        assert out.getvalue() == b"d1: hello world\n"


class CollectingScheduler(Scheduler):
    """Forces a collection before every pump is retired and records finished jobs."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.finished: list[str] = []
        self.retired_owners: list[str | None] = []

    def _retire(self, waiter, pump):
        gc.collect()
        job = pump.job
        self.retired_owners.append(job.spec.directory if job is not None else None)
        super()._retire(waiter, pump)

    def _maybe_finished(self, job):
        if job is not None and job.finished:
            self.finished.append(job.spec.directory)
        super()._maybe_finished(job)


class TestJobLifecycle:
    def test_job_outlives_its_process_while_pipes_stay_open(self, job_dirs, backend):
        # The background subshell inherits both pipes and writes after sh exits.
        out, err = io.BytesIO(), io.BytesIO()
        jobs = [JobSpec("d1", ("sh", "-c", "(sleep 0.5; echo late) & exit 0"))]
        scheduler = CollectingScheduler(jobs, 1, stdout=out, stderr=err, backend=backend)

        assert scheduler.run() == 0
        assert out.getvalue() == b"d1: late\n"
        assert scheduler.retired_owners == ["d1", "d1"]
        assert scheduler.finished == ["d1"]
        assert scheduler.running == set()

    def test_running_is_empty_after_a_mixed_run(self, job_dirs):
        scheduler, _out, _err = _scheduler(job_specs(["d1", "missing", "d2"], ["echo", "hi"]), 2)

        assert scheduler.run() == 1
        assert scheduler.running == set()


class TestInfrastructure:
    def test_custom_waiter_is_driven_and_closed(self, job_dirs):
        waiter = RecordingWaiter(create_waiter("thread"))
        scheduler, out, _err = _scheduler(job_specs(["d1"], ["echo", "hi"]), 1, waiter=waiter)

        assert scheduler.run() == 0
        assert out.getvalue() == b"d1: hi\n"
        assert waiter.waits >= 1
        assert waiter.closed is True

    def test_read_failure_aborts_the_run(self, job_dirs, monkeypatch):
        def broken(self):
            raise PumpReadError("read from 'd1' failed: boom").with_context(fd=self.fd)

        monkeypatch.setattr(OutputPump, "pump", broken)
        waiter = RecordingWaiter(create_waiter("thread"))
        scheduler, _out, _err = _scheduler(job_specs(["d1"], ["echo", "hi"]), 1, waiter=waiter)

        with pytest.raises(PumpReadError):
            scheduler.run()
        assert waiter.closed is True
