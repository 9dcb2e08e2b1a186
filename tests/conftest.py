"""Shared pytest fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from asset_sync.options import SyncOptions
from codeflow_health.config import Config


def gh_result(payload=None, returncode=0, stdout=None):
    """A subprocess.run() result as returned by a mocked gh call."""
    if stdout is None:
        stdout = json.dumps(payload) if payload is not None else ""
    return MagicMock(stdout=stdout, stderr="", returncode=returncode)


@pytest.fixture
def cfg():
    return Config()


@pytest.fixture
def sync_env(tmp_path):
    """Empty source repo, home folder and backup root under tmp_path."""
    repo = tmp_path / "repo"
    home = tmp_path / "home"
    cwd = tmp_path / "work"
    for d in (repo, home, cwd):
        d.mkdir()
    return repo, home, cwd


@pytest.fixture
def make_opts(sync_env):
    """Factory for SyncOptions rooted in sync_env, on Linux paths."""
    repo, home, cwd = sync_env

    def _make(**kwargs) -> SyncOptions:
        kwargs.setdefault("platform", "linux")
        return SyncOptions(repo_root=repo, home=home, cwd=cwd, **kwargs)

    return _make


def write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
