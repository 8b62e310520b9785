"""Tests for taskenv.config.Config defaults and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from taskenv.config import (
    ENV_AUTO_TRANSITIONS,
    ENV_BASE_BRANCH,
    ENV_ROOT,
    ENV_WORKTREE_ROOT,
    Config,
    resolve_repo_root,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (ENV_ROOT, ENV_BASE_BRANCH, ENV_WORKTREE_ROOT, ENV_AUTO_TRANSITIONS):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path: Path):
    cfg = Config(project_root=tmp_path / "MyApp")
    assert cfg.base_branch == ""
    assert cfg.auto_transitions is True
    assert cfg.branch_prefix == "task"
    assert cfg.tasks_dir == cfg.project_root / ".tasks"
    assert cfg.project_name == "myapp"


def test_worktree_root_is_lowercased_sibling(tmp_path: Path):
    cfg = Config(project_root=tmp_path / "MyApp")
    assert cfg.worktree_root == tmp_path.resolve() / "myapp.worktrees"


def test_explicit_worktree_root(tmp_path: Path):
    cfg = Config(project_root=tmp_path / "app", worktree_root=tmp_path / "envs")
    assert cfg.worktree_root == (tmp_path / "envs").resolve()


def test_from_env_explicit_root_wins(monkeypatch, tmp_path: Path):
    monkeypatch.setenv(ENV_ROOT, str(tmp_path / "other"))
    cfg = Config.from_env(tmp_path / "chosen")
    assert cfg.project_root == (tmp_path / "chosen").resolve()


def test_from_env_reads_variables(monkeypatch, tmp_path: Path):
    monkeypatch.setenv(ENV_ROOT, str(tmp_path / "proj"))
    monkeypatch.setenv(ENV_BASE_BRANCH, "develop")
    monkeypatch.setenv(ENV_WORKTREE_ROOT, str(tmp_path / "wt"))
    cfg = Config.from_env()
    assert cfg.project_root == (tmp_path / "proj").resolve()
    assert cfg.base_branch == "develop"
    assert cfg.worktree_root == (tmp_path / "wt").resolve()


@pytest.mark.parametrize("value", ["0", "false", "No", " off "])
def test_auto_transitions_falsy(monkeypatch, tmp_path: Path, value: str):
    monkeypatch.setenv(ENV_AUTO_TRANSITIONS, value)
    assert Config.from_env(tmp_path).auto_transitions is False


@pytest.mark.parametrize("value", ["1", "true", "yes"])
def test_auto_transitions_truthy(monkeypatch, tmp_path: Path, value: str):
    monkeypatch.setenv(ENV_AUTO_TRANSITIONS, value)
    assert Config.from_env(tmp_path).auto_transitions is True


def test_resolve_repo_root(git_repo: Path):
    sub = git_repo / "src"
    sub.mkdir()
    assert resolve_repo_root(sub).resolve() == git_repo.resolve()


def test_resolve_repo_root_outside_git(tmp_path: Path):
    plain = tmp_path / "plain"
    plain.mkdir()
    assert resolve_repo_root(plain) == plain
