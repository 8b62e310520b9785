"""Map any task id onto the id that owns its environment."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from taskenv.config import Config
from taskenv.environment.naming import BranchNaming, WorkMode, infer_mode
from taskenv.errors import ErrorCode, OperationResult, TaskEnvError, guarded
from taskenv.tasks.model import Task


class TaskSource(Protocol):
    def get(self, task_id: str) -> OperationResult[Task]: ...


@dataclass
class Environment:
    """A working copy bound to a resolved task id. Derived on every call, never stored."""

    task_id: str
    original_task_id: str
    resolved_from_subtask: bool
    is_parent_environment: bool
    path: Path
    branch: str
    created: bool = False
    switched: bool = False
    mode: WorkMode | None = None


class EnvironmentResolver:
    """Resolve task ids to environments without touching disk or git.

    Subtasks share their parent's environment; parents and simple tasks own
    their own.
    """

    def __init__(self, tasks: TaskSource, config: Config, naming: BranchNaming | None = None) -> None:
        self.tasks = tasks
        self.config = config
        self.naming = naming or BranchNaming(config.branch_prefix)

    def describe(self, task_id: str) -> Environment:
        """Environment for an already-resolved owner id (no task lookup)."""
        return Environment(
            task_id=task_id,
            original_task_id=task_id,
            resolved_from_subtask=False,
            is_parent_environment=False,
            path=self.naming.worktree_path(self.config.worktree_root, task_id),  # type: ignore[arg-type]
            branch=self.naming.branch_name(task_id),
        )

    @guarded
    def resolve(self, task_id: str) -> OperationResult[Environment]:
        if not task_id or not task_id.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Task id is required")
        found = self.tasks.get(task_id.strip())
        if not found.success or found.data is None:
            return OperationResult.fail(found.code or ErrorCode.NOT_FOUND, found.error or f"Task not found: {task_id}")
        task = found.data

        if task.is_subtask and task.parent_task:
            env = self.describe(task.parent_task)
            env.resolved_from_subtask = True
            env.is_parent_environment = True
        else:
            env = self.describe(task.id)
            env.is_parent_environment = task.is_parent_task
        env.original_task_id = task.id
        env.mode = infer_mode(task)
        return OperationResult.ok(env)

    def resolve_id(self, task_id: str) -> OperationResult[str]:
        result = self.resolve(task_id)
        if not result.success or result.data is None:
            return OperationResult.fail(result.code or ErrorCode.NOT_FOUND, result.error or "")
        return OperationResult.ok(result.data.task_id)
