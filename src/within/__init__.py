"""
within — run a command in several directories at once.

Every line the command prints is prefixed with the directory it came from::

    $ within -j4 app lib docs -- git status --short
    lib:  M setup.py
    app: ?? notes.txt

Public API:
    JobSpec, job_specs   — the jobs to run
    Scheduler, run_jobs  — the bounded event loop
"""

from within.execution import JobSpec, Scheduler, job_specs, run_jobs

__version__ = "0.3.0"

__all__ = ["JobSpec", "Scheduler", "__version__", "job_specs", "run_jobs"]
