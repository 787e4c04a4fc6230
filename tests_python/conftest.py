"""Shared fixtures for the pipeline test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from crossdeploy.config import PipelineConfig
from pipeline_test_helpers import make_config

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an isolated workspace and set ``GITHUB_WORKSPACE`` accordingly."""
    root = tmp_path / "workspace"
    root.mkdir()
    monkeypatch.setenv("GITHUB_WORKSPACE", str(root))
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    return root


@pytest.fixture
def github_output(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``GITHUB_OUTPUT`` at a file inside the workspace."""
    path = workspace / "outputs.txt"
    monkeypatch.setenv("GITHUB_OUTPUT", str(path))
    return path


@pytest.fixture
def config(workspace: Path) -> PipelineConfig:
    """Return a three-target configuration rooted at ``workspace``."""
    return make_config(workspace)


@pytest.fixture
def repository_config() -> Path:
    """Return the configuration file shipped with the repository."""
    return REPO_ROOT / ".github" / "crossdeploy.toml"
