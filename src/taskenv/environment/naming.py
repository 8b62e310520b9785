"""Deterministic lookups for environments: branch names, work modes, container settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from taskenv.config import DEFAULT_BRANCH_PREFIX
from taskenv.tasks.model import Task


@dataclass(frozen=True)
class BranchNaming:
    prefix: str = DEFAULT_BRANCH_PREFIX

    def branch_name(self, task_id: str) -> str:
        return f"{self.prefix}/{task_id}"

    def task_id_from_branch(self, branch: str | None) -> str | None:
        """Inverse of :meth:`branch_name`; ``None`` for branches outside the prefix."""
        if not branch:
            return None
        branch = branch.removeprefix("refs/heads/")
        head = f"{self.prefix}/"
        if not branch.startswith(head) or len(branch) == len(head):
            return None
        return branch[len(head):]

    @staticmethod
    def worktree_path(root: Path, task_id: str) -> Path:
        return Path(root) / task_id


class WorkMode(str, Enum):
    IMPLEMENT = "implement"
    EXPLORE = "explore"
    ORCHESTRATE = "orchestrate"
    DIAGNOSE = "diagnose"


MODE_DESCRIPTIONS: dict[WorkMode, str] = {
    WorkMode.IMPLEMENT: "Build and code the solution",
    WorkMode.EXPLORE: "Research and investigate options",
    WorkMode.ORCHESTRATE: "Manage subtasks and coordinate work",
    WorkMode.DIAGNOSE: "Debug and find root causes",
}

_TYPE_MODES: dict[str, WorkMode] = {
    "bug": WorkMode.DIAGNOSE,
    "spike": WorkMode.EXPLORE,
    "idea": WorkMode.EXPLORE,
}

MODE_TAG_PREFIX = "mode:"


def parse_mode(value: str) -> WorkMode | None:
    try:
        return WorkMode(value.strip().lower())
    except ValueError:
        return None


def infer_mode(task: Task) -> WorkMode:
    """Pick the execution mode for *task*.

    Parent tasks always orchestrate. Otherwise the first valid ``mode:<value>``
    tag wins over the type-derived default.
    """
    if task.is_parent_task:
        return WorkMode.ORCHESTRATE
    for tag in task.tags:
        if tag.startswith(MODE_TAG_PREFIX):
            mode = parse_mode(tag[len(MODE_TAG_PREFIX):])
            if mode is not None:
                return mode
    return _TYPE_MODES.get(task.type, WorkMode.IMPLEMENT)


@dataclass(frozen=True)
class ContainerConfig:
    image: str = "my-claude:authenticated"
    workspace_mount: str = "/workspace"
    run_args: tuple[str, ...] = ("--rm", "-it")
    env: dict[str, str] = field(default_factory=dict)

    def run_command(self, worktree_path: Path, *command: str) -> list[str]:
        """Build the ``docker run`` argv that mounts *worktree_path* as the workspace."""
        argv = ["docker", "run", *self.run_args]
        argv += ["-v", f"{Path(worktree_path)}:{self.workspace_mount}", "-w", self.workspace_mount]
        for key, value in sorted(self.env.items()):
            argv += ["-e", f"{key}={value}"]
        argv.append(self.image)
        argv.extend(command)
        return argv
