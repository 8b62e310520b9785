"""Worktree lifecycle: create-or-switch, inspect, list and close task environments.

Git's own worktree bookkeeping (``git worktree list --porcelain``) is the only
record of which environments exist.
"""

from __future__ import annotations

import os
from pathlib import Path

from taskenv import git_ops, log
from taskenv.config import Config
from taskenv.environment.resolver import Environment, EnvironmentResolver
from taskenv.errors import (
    ErrorCode,
    OperationResult,
    TaskEnvError,
    guarded,
    looks_like_git_unavailable,
    looks_like_worktree_collision,
)


def _same_path(a: Path, b: Path) -> bool:
    return os.path.realpath(a) == os.path.realpath(b)


def _is_within(path: Path, root: Path) -> bool:
    real_path, real_root = os.path.realpath(path), os.path.realpath(root)
    return os.path.commonpath([real_path, real_root]) == real_root


class WorktreeManager:
    def __init__(self, config: Config, resolver: EnvironmentResolver) -> None:
        self.config = config
        self.resolver = resolver

    @property
    def root(self) -> Path:
        return self.config.project_root

    def _registered(self, path: Path) -> git_ops.WorktreeEntry | None:
        for entry in git_ops.worktree_list(cwd=self.root):
            if _same_path(entry.path, path):
                return entry
        return None

    def _git_failure(self, action: str, stderr: str) -> TaskEnvError:
        if looks_like_git_unavailable(stderr):
            return TaskEnvError(ErrorCode.GIT_ERROR, f"Cannot {action}: {self.root} is not usable as a git repository ({stderr})")
        return TaskEnvError(ErrorCode.GIT_ERROR, f"Cannot {action}: {stderr or 'git failed'}")

    @guarded
    def create_or_switch(self, task_id: str, dry_run: bool = False) -> OperationResult[Environment]:
        """Return the task's environment, creating the worktree and branch if needed.

        Safe to call concurrently for the same task: a creation that loses the
        race to another caller is reported as a switch.
        """
        resolved = self.resolver.resolve(task_id)
        if not resolved.success or resolved.data is None:
            return resolved
        env = resolved.data

        if self._registered(env.path):
            env.switched = True
            log.debug(f"Reusing environment {env.task_id} at {env.path}")
            return OperationResult.ok(env)
        if dry_run:
            return OperationResult.ok(env)
        if not git_ops.is_git_repo(cwd=self.root):
            raise TaskEnvError(ErrorCode.GIT_ERROR, f"{self.root} is not a git repository")

        env.path.parent.mkdir(parents=True, exist_ok=True)
        had_branch = git_ops.branch_exists(env.branch, cwd=self.root)
        if had_branch:
            r = git_ops.worktree_add(env.path, env.branch, cwd=self.root)
        else:
            base = self.config.base_branch or git_ops.current_branch(cwd=self.root)
            r = git_ops.worktree_add_new_branch(env.path, env.branch, base, cwd=self.root)

        if r.returncode == 0:
            env.created = True
            log.debug(f"Created environment {env.task_id} at {env.path} on {env.branch}")
            return OperationResult.ok(env)

        stderr = r.stderr.strip()
        lost_race = not had_branch and git_ops.branch_exists(env.branch, cwd=self.root)
        if looks_like_worktree_collision(stderr) or lost_race or self._registered(env.path):
            env.switched = True
            log.debug(f"Environment {env.task_id} appeared concurrently; switching")
            return OperationResult.ok(env)
        raise self._git_failure(f"create worktree for {env.task_id}", stderr)

    @guarded
    def environment_info(self, task_id: str) -> OperationResult[Environment]:
        """Return the existing environment for *task_id*; never creates one."""
        resolved = self.resolver.resolve(task_id)
        if not resolved.success or resolved.data is None:
            return resolved
        env = resolved.data
        if self._registered(env.path) is None:
            raise TaskEnvError(ErrorCode.NOT_FOUND, f"No environment for {env.task_id}")
        return OperationResult.ok(env)

    @guarded
    def list_environments(self) -> OperationResult[list[Environment]]:
        naming = self.resolver.naming
        envs: list[Environment] = []
        for entry in git_ops.worktree_list(cwd=self.root):
            task_id = naming.task_id_from_branch(entry.branch)
            if task_id is None or not _is_within(entry.path, self.config.worktree_root):  # type: ignore[arg-type]
                continue
            env = self.resolver.describe(task_id)
            env.path = entry.path
            envs.append(env)
        return OperationResult.ok(sorted(envs, key=lambda e: e.task_id))

    @guarded
    def close_environment(
        self,
        task_id: str,
        keep_branch: bool = True,
        force: bool = False,
    ) -> OperationResult[Environment]:
        """Remove the worktree for *task_id*; delete its branch only when ``keep_branch`` is off.

        When the task no longer exists, *task_id* is taken as the environment id.
        """
        if not task_id or not task_id.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Task id is required")
        resolved = self.resolver.resolve(task_id)
        if resolved.success and resolved.data is not None:
            env = resolved.data
        elif resolved.code is ErrorCode.NOT_FOUND:
            env = self.resolver.describe(task_id.strip())
        else:
            return resolved

        if self._registered(env.path) is None:
            raise TaskEnvError(ErrorCode.NOT_FOUND, f"No environment for {env.task_id}")
        if not force and env.path.exists() and git_ops.has_dirty_worktree(cwd=env.path):
            dirty = git_ops.dirty_worktree_entries(cwd=env.path)
            log.warn(f"Environment {env.task_id} has uncommitted changes: {', '.join(dirty[:5])}")
            raise TaskEnvError(
                ErrorCode.INVALID_OPERATION,
                f"Environment {env.task_id} has uncommitted changes; use force to discard them",
            )

        r = git_ops.worktree_remove(env.path, force=force, cwd=self.root)
        if r.returncode != 0:
            raise self._git_failure(f"remove worktree {env.path}", r.stderr.strip())
        git_ops.worktree_prune(cwd=self.root)

        warnings: list[str] = []
        if not keep_branch and not git_ops.delete_branch(env.branch, force=True, cwd=self.root):
            warnings.append(f"Worktree removed but branch {env.branch} could not be deleted")
            log.warn(warnings[-1])
        log.debug(f"Closed environment {env.task_id}")
        return OperationResult.ok(env, warnings=warnings)
