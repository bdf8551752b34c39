"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{shlex.quote(sys.executable)} -m opencoder.orchestrator.backend.echo_agent "
    "--model {model} --title {title} {prompt}"
)


@pytest.fixture(autouse=True)
def _clean_opencoder_env(monkeypatch):
    """Keep the developer's OPENCODER_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("OPENCODER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture()
def echo_agent(monkeypatch) -> str:
    """Make the fake agent importable from subprocesses and return its command template."""
    existing = os.environ.get("PYTHONPATH")
    python_path = str(SRC_DIR) if not existing else f"{SRC_DIR}{os.pathsep}{existing}"
    monkeypatch.setenv("PYTHONPATH", python_path)
    return ECHO_AGENT_COMMAND_TEMPLATE
