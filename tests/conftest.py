"""
Shared pytest fixtures for within tests.

This module provides:
- Quiet structured logging for every test
- Helpers to build child commands with the running interpreter
- Job directories under a temporary working directory
"""

import sys
from pathlib import Path

import pytest

# Ensure within package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from within.core.logging import clear_context, configure_logging
from within.execution.waiters import available_backends


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def quiet_logging():
    configure_logging(level="WARNING", add_timestamp=False)
    yield
    clear_context()


@pytest.fixture
def py():
    """Build an argv that runs a Python snippet in the current interpreter."""

    def _command(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return _command


@pytest.fixture
def job_dirs(tmp_path, monkeypatch):
    """Create relative directories d1..d4 and chdir into their parent."""
    for name in ("d1", "d2", "d3", "d4"):
        (tmp_path / name).mkdir()
    monkeypatch.chdir(tmp_path)
    return ["d1", "d2", "d3", "d4"]


@pytest.fixture(params=available_backends())
def backend(request) -> str:
    """Every wait backend usable on this platform."""
    return request.param
