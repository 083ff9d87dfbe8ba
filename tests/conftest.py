"""Pytest hooks and fixtures."""

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "slow: spawns a real worker subprocess",
    )


def pytest_collection_modifyitems(config, items):
    """Skip subprocess tests when LINGOWORKER_SKIP_SLOW is set."""
    if os.environ.get("LINGOWORKER_SKIP_SLOW") != "1":
        return
    skip = pytest.mark.skip(reason="Subprocess tests disabled (LINGOWORKER_SKIP_SLOW=1)")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def scripted_worker_command() -> list[str]:
    """Command line for a real worker process backed by a scripted generator."""
    return [sys.executable, str(Path(__file__).with_name("scripted_worker.py"))]


@pytest.fixture
def worker_env() -> dict[str, str]:
    """Environment that makes the source tree importable in the child process."""
    env = dict(os.environ)
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(ROOT) + (os.pathsep + existing if existing else "")
    return env
