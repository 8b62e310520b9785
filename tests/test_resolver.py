"""Tests for EnvironmentResolver with an in-memory task source and the real store."""

from __future__ import annotations

from pathlib import Path

import pytest

from taskenv.config import Config
from taskenv.environment.naming import WorkMode
from taskenv.environment.resolver import EnvironmentResolver
from taskenv.errors import ErrorCode, OperationResult
from taskenv.tasks.model import Task, TaskDocument, TaskLocation, WorkflowState


class InMemoryTasks:
    """Stand-in for TaskStore: only ``get`` is needed."""

    def __init__(self, tasks: list[Task]) -> None:
        self.tasks = {t.id: t for t in tasks}
        self.calls: list[str] = []

    def get(self, task_id: str) -> OperationResult[Task]:
        self.calls.append(task_id)
        if task_id in self.tasks:
            return OperationResult.ok(self.tasks[task_id])
        return OperationResult.fail(ErrorCode.NOT_FOUND, f"Task not found: {task_id}")


def _task(task_id: str, *, type_: str = "feature", parent: str | None = None, is_parent: bool = False,
          tags: list[str] | None = None) -> Task:
    fm = {"type": type_, "status": "todo"}
    if tags:
        fm["tags"] = tags
    return Task(
        id=task_id,
        path=Path(f"/tmp/{task_id}.task.md"),
        location=TaskLocation(WorkflowState.CURRENT),
        document=TaskDocument(title=task_id, frontmatter=fm),
        is_parent_task=is_parent,
        parent_task=parent,
        sequence_number=task_id[:2] if parent else None,
    )


@pytest.fixture
def resolver(tmp_path: Path) -> EnvironmentResolver:
    tasks = InMemoryTasks([
        _task("Auth", is_parent=True),
        _task("01_A", parent="Auth", type_="bug"),
        _task("solo-05A", type_="spike"),
    ])
    return EnvironmentResolver(tasks, Config(project_root=tmp_path / "Proj"))


class TestResolve:
    def test_subtask_resolves_to_parent(self, resolver: EnvironmentResolver, tmp_path: Path) -> None:
        env = resolver.resolve("01_A").data
        assert env.task_id == "Auth"
        assert env.original_task_id == "01_A"
        assert env.resolved_from_subtask
        assert env.is_parent_environment
        assert env.path == (tmp_path / "proj.worktrees" / "Auth").resolve()
        assert env.branch == "task/Auth"
        assert env.mode is WorkMode.DIAGNOSE

    def test_parent_is_own_owner(self, resolver: EnvironmentResolver) -> None:
        env = resolver.resolve("Auth").data
        assert env.task_id == "Auth"
        assert env.is_parent_environment
        assert not env.resolved_from_subtask
        assert env.mode is WorkMode.ORCHESTRATE

    def test_simple_task(self, resolver: EnvironmentResolver) -> None:
        env = resolver.resolve("solo-05A").data
        assert env.task_id == "solo-05A"
        assert not env.is_parent_environment
        assert not env.resolved_from_subtask

    def test_subtask_and_parent_agree(self, resolver: EnvironmentResolver) -> None:
        sub = resolver.resolve("01_A").data
        parent = resolver.resolve("Auth").data
        assert (sub.task_id, sub.path, sub.branch) == (parent.task_id, parent.path, parent.branch)

    def test_empty_input(self, resolver: EnvironmentResolver) -> None:
        assert resolver.resolve("").code is ErrorCode.INVALID_INPUT
        assert resolver.resolve("   ").code is ErrorCode.INVALID_INPUT
        assert resolver.tasks.calls == []

    def test_not_found(self, resolver: EnvironmentResolver) -> None:
        r = resolver.resolve("ghost")
        assert r.code is ErrorCode.NOT_FOUND

    def test_resolve_id(self, resolver: EnvironmentResolver) -> None:
        assert resolver.resolve_id("01_A").data == "Auth"
        assert not resolver.resolve_id("ghost").success

    def test_no_filesystem_changes(self, resolver: EnvironmentResolver, tmp_path: Path) -> None:
        resolver.resolve("01_A")
        assert list(tmp_path.iterdir()) == []


class TestWithStore:
    def test_real_subtask(self, parents, make_options, config: Config) -> None:
        parent = parents.create_parent(make_options("Auth"), [make_options("Login")]).data
        resolver = EnvironmentResolver(parents.store, config)
        env = resolver.resolve(parent.subtasks[0].name).data
        assert env.task_id == parent.id
        assert env.resolved_from_subtask
        assert env.path.name == parent.id
        assert env.path.parent.name == f"{config.project_root.name.lower()}.worktrees"
