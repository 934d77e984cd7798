"""Job execution: prefixer, pumps, launcher, waiters and the scheduler loop."""

from within.execution.launcher import JobLauncher, RunningJob
from within.execution.prefixer import LinePrefixer, prefix_lines
from within.execution.pump import OutputPump, PumpStatus
from within.execution.scheduler import Phase, RunStats, Scheduler, run_jobs
from within.execution.spec import JobSpec, job_specs

__all__ = [
    "JobLauncher",
    "JobSpec",
    "LinePrefixer",
    "OutputPump",
    "Phase",
    "PumpStatus",
    "RunStats",
    "RunningJob",
    "Scheduler",
    "job_specs",
    "prefix_lines",
    "run_jobs",
]
