"""Pytest hooks and fixtures."""

import os

import pytest

from devicebridge.config.access import clear_config_cache


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "requires_posix: spawns and signals real processes (skipped off POSIX)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip requires_posix tests where job-control signals are unavailable."""
    if os.name == "posix":
        return
    skip = pytest.mark.skip(reason="Requires POSIX process control")
    for item in items:
        if "requires_posix" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep config and log files out of the real home directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in list(os.environ):
        if key.startswith("DEVICEBRIDGE_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()
