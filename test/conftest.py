"""
Pytest configuration and fixtures for the VS Code tunnel test suite.
"""

import os
import sys
from pathlib import Path

import pytest

from fake_cli import write_fake_cli

ENV_PREFIXES = ("INPUT_",)
ENV_NAMES = ("GITHUB_ACTOR", "GITHUB_RUN_ID", "RUNNER_TOOL_CACHE")


def pytest_collection_modifyitems(config, items):
    """Skip tests that launch script binaries where shebangs do not work."""
    if sys.platform != "win32":
        return
    skip_posix = pytest.mark.skip(reason="fake CLI scripts need a POSIX shebang")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_posix)


@pytest.fixture(autouse=True)
def clean_action_env(monkeypatch):
    """Keep runner variables from the host out of every test."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIXES) or name in ENV_NAMES:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_cli(tmp_path):
    """Factory writing a fake `code` executable with the given Python body."""
    def factory(body: str) -> Path:
        return write_fake_cli(tmp_path / "bin", body)
    return factory
