"""Integration tests for WorktreeManager against real temporary git repos."""

from __future__ import annotations

import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from taskenv import git_ops
from taskenv.config import Config
from taskenv.environment.resolver import EnvironmentResolver
from taskenv.environment.worktrees import WorktreeManager
from taskenv.errors import ErrorCode
from taskenv.tasks.hierarchy import ParentTasks
from taskenv.tasks.model import ParentTask, Task, TaskCreateOptions
from taskenv.tasks.store import TaskStore


@pytest.fixture
def project_store(git_config: Config) -> TaskStore:
    return TaskStore(git_config)


@pytest.fixture
def manager(git_config: Config, project_store: TaskStore) -> WorktreeManager:
    return WorktreeManager(git_config, EnvironmentResolver(project_store, git_config))


@pytest.fixture
def simple(project_store: TaskStore) -> Task:
    return project_store.create(TaskCreateOptions(title="Fix login bug", type="bug")).data


@pytest.fixture
def auth(project_store: TaskStore) -> ParentTask:
    parents = ParentTasks(project_store)
    return parents.create_parent(
        TaskCreateOptions(title="Auth"),
        [TaskCreateOptions(title="A"), TaskCreateOptions(title="B")],
    ).data


def _worktree_paths(repo: Path) -> list[Path]:
    return [e.path.resolve() for e in git_ops.worktree_list(cwd=repo)]


# ── create_or_switch ─────────────────────────────────────────────────


class TestCreateOrSwitch:
    def test_creates_then_switches(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        first = manager.create_or_switch(simple.id)
        assert first.success, first.error
        env = first.data
        assert env.created and not env.switched
        assert env.branch == f"task/{simple.id}"
        assert env.path == (git_repo.parent / "project.worktrees" / simple.id).resolve()
        assert (env.path / "README.md").exists()
        assert git_ops.branch_exists(env.branch, cwd=git_repo)

        second = manager.create_or_switch(simple.id).data
        assert second.switched and not second.created
        assert second.path == env.path

    def test_subtask_uses_parent_environment(self, manager: WorktreeManager, auth: ParentTask) -> None:
        env = manager.create_or_switch(auth.subtasks[0].id).data
        assert env.task_id == auth.id
        assert env.resolved_from_subtask
        assert env.path.name == auth.id
        again = manager.create_or_switch(auth.subtasks[1].id).data
        assert again.switched
        assert again.path == env.path

    def test_dry_run_creates_nothing(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        env = manager.create_or_switch(simple.id, dry_run=True).data
        assert not env.created and not env.switched
        assert not env.path.exists()
        assert not git_ops.branch_exists(env.branch, cwd=git_repo)

    def test_reuses_surviving_branch(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        manager.create_or_switch(simple.id)
        manager.close_environment(simple.id)
        env = manager.create_or_switch(simple.id).data
        assert env.created
        assert git_ops.current_branch(cwd=env.path) == env.branch

    def test_unknown_task(self, manager: WorktreeManager) -> None:
        assert manager.create_or_switch("ghost-01A").code is ErrorCode.NOT_FOUND

    def test_empty_id(self, manager: WorktreeManager) -> None:
        assert manager.create_or_switch("").code is ErrorCode.INVALID_INPUT

    def test_configured_base_branch(self, git_repo: Path, project_store: TaskStore, simple: Task) -> None:
        subprocess.run(["git", "branch", "release"], cwd=git_repo, capture_output=True, check=True)
        subprocess.run(["git", "checkout", "-q", "-b", "scratch"], cwd=git_repo, capture_output=True, check=True)
        (git_repo / "scratch.txt").write_text("x")
        subprocess.run(["git", "add", "scratch.txt"], cwd=git_repo, capture_output=True, check=True)
        subprocess.run(["git", "commit", "-m", "scratch"], cwd=git_repo, capture_output=True, check=True)

        cfg = Config(project_root=git_repo, base_branch="release")
        mgr = WorktreeManager(cfg, EnvironmentResolver(project_store, cfg))
        env = mgr.create_or_switch(simple.id).data
        assert env.created
        assert not (env.path / "scratch.txt").exists()

    def test_not_a_repository(self, tmp_path: Path) -> None:
        root = tmp_path / "plain"
        root.mkdir()
        cfg = Config(project_root=root)
        store = TaskStore(cfg)
        task = store.create(TaskCreateOptions(title="Nowhere")).data
        r = WorktreeManager(cfg, EnvironmentResolver(store, cfg)).create_or_switch(task.id)
        assert r.code is ErrorCode.GIT_ERROR

    def test_concurrent_calls_create_once(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(lambda _: manager.create_or_switch(simple.id), range(6)))

        assert all(r.success for r in results), [r.error for r in results]
        assert sum(r.data.created for r in results) == 1
        assert sum(r.data.switched for r in results) == 5
        path = results[0].data.path
        assert _worktree_paths(git_repo).count(path.resolve()) == 1


# ── info / list ──────────────────────────────────────────────────────


class TestInspect:
    def test_info_requires_existing(self, manager: WorktreeManager, simple: Task) -> None:
        assert manager.environment_info(simple.id).code is ErrorCode.NOT_FOUND
        manager.create_or_switch(simple.id)
        env = manager.environment_info(simple.id).data
        assert not env.created and env.task_id == simple.id

    def test_list(self, manager: WorktreeManager, simple: Task, auth: ParentTask, git_repo: Path, tmp_path: Path) -> None:
        assert manager.list_environments().data == []
        manager.create_or_switch(simple.id)
        manager.create_or_switch(auth.subtasks[0].id)
        # worktrees outside the environment root or off-prefix are ignored
        base = git_ops.current_branch(cwd=git_repo)
        git_ops.worktree_add_new_branch(tmp_path / "elsewhere", "task/elsewhere", base, cwd=git_repo)
        git_ops.worktree_add_new_branch(
            git_repo.parent / "project.worktrees" / "misc", "misc", base, cwd=git_repo,
        )

        envs = manager.list_environments().data
        assert sorted(e.task_id for e in envs) == sorted([simple.id, auth.id])
        assert all(e.branch == f"task/{e.task_id}" for e in envs)


# ── close ────────────────────────────────────────────────────────────


class TestClose:
    def test_close_keeps_branch(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        env = manager.create_or_switch(simple.id).data
        r = manager.close_environment(simple.id)
        assert r.success, r.error
        assert not env.path.exists()
        assert git_ops.branch_exists(env.branch, cwd=git_repo)
        assert manager.list_environments().data == []

    def test_close_deletes_branch(self, manager: WorktreeManager, simple: Task, git_repo: Path) -> None:
        env = manager.create_or_switch(simple.id).data
        assert manager.close_environment(simple.id, keep_branch=False).success
        assert not git_ops.branch_exists(env.branch, cwd=git_repo)

    def test_close_missing(self, manager: WorktreeManager, simple: Task) -> None:
        assert manager.close_environment(simple.id).code is ErrorCode.NOT_FOUND

    def test_close_dirty_refused(self, manager: WorktreeManager, simple: Task) -> None:
        env = manager.create_or_switch(simple.id).data
        (env.path / "wip.txt").write_text("unsaved")
        r = manager.close_environment(simple.id)
        assert r.code is ErrorCode.INVALID_OPERATION
        assert env.path.exists()
        assert manager.close_environment(simple.id, force=True).success
        assert not env.path.exists()

    def test_close_via_subtask(self, manager: WorktreeManager, auth: ParentTask) -> None:
        env = manager.create_or_switch(auth.id).data
        r = manager.close_environment(auth.subtasks[1].id)
        assert r.success
        assert r.data.task_id == auth.id
        assert not env.path.exists()

    def test_close_after_task_deleted(self, manager: WorktreeManager, project_store: TaskStore, simple: Task) -> None:
        env = manager.create_or_switch(simple.id).data
        project_store.delete(simple.id)
        r = manager.close_environment(simple.id)
        assert r.success, r.error
        assert not env.path.exists()
