"""Root test configuration: environment isolation and cleanup of runtime artifacts"""

import os
import shutil
from pathlib import Path

import pytest


_PROJECT_ROOT = Path(__file__).parent.parent

_CLEANUP_DIRS = [".blogpub", "_site"]


@pytest.fixture(scope="session", autouse=True)
def cleanup_artifacts():
    """Remove state databases and output directories created during the test session."""
    yield
    for name in _CLEANUP_DIRS:
        p = _PROJECT_ROOT / name
        if p.exists():
            shutil.rmtree(p)


@pytest.fixture(autouse=True)
def clear_blogpub_env(monkeypatch):
    """Keep BLOGPUB_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("BLOGPUB_"):
            monkeypatch.delenv(name, raising=False)
