"""Shared fixtures for taskenv tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use taskenv.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from taskenv.config import Config
from taskenv.io_utils import write_text
from taskenv.tasks.hierarchy import ParentTasks
from taskenv.tasks.model import TaskCreateOptions
from taskenv.tasks.store import TaskStore


def _init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init"], cwd=path, capture_output=True, check=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=path, capture_output=True)
    subprocess.run(["git", "config", "user.email", "test@test"], cwd=path, capture_output=True)
    write_text(path / "README.md", "# Test")
    subprocess.run(["git", "add", "README.md"], cwd=path, capture_output=True)
    subprocess.run(["git", "commit", "-m", "Initial"], cwd=path, capture_output=True)
    return path


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo at ``tmp_path/Project`` (worktrees go next to it)."""
    return _init_repo(tmp_path / "Project")


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config for a plain (non-git) project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return Config(project_root=root)


@pytest.fixture
def git_config(git_repo: Path) -> Config:
    return Config(project_root=git_repo)


@pytest.fixture
def store(config: Config) -> TaskStore:
    return TaskStore(config)


@pytest.fixture
def parents(store: TaskStore) -> ParentTasks:
    return ParentTasks(store)


def _options(title: str, **kwargs) -> TaskCreateOptions:
    kwargs.setdefault("instruction", f"Do {title}")
    return TaskCreateOptions(title=title, **kwargs)


@pytest.fixture
def make_options():
    """Factory fixture that creates TaskCreateOptions instances."""
    return _options


@pytest.fixture
def cli_runner():
    """Click CliRunner for invoking the CLI in-process."""
    from click.testing import CliRunner
    return CliRunner()
