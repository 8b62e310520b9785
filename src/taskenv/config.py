"""Project configuration: roots, base branch, environment directory, auto transitions."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_TASKS_DIRNAME = ".tasks"
DEFAULT_BRANCH_PREFIX = "task"

ENV_ROOT = "TASKENV_ROOT"
ENV_BASE_BRANCH = "TASKENV_BASE_BRANCH"
ENV_WORKTREE_ROOT = "TASKENV_WORKTREE_ROOT"
ENV_AUTO_TRANSITIONS = "TASKENV_AUTO_TRANSITIONS"

_FALSY = {"0", "false", "no", "off"}


@dataclass
class Config:
    """Settings supplied to every core component.

    ``base_branch`` empty means "whatever is checked out in the project root".
    ``worktree_root`` ``None`` means the sibling ``{name}.worktrees`` directory.
    """

    project_root: Path = field(default_factory=Path.cwd)
    base_branch: str = ""
    worktree_root: Path | None = None
    auto_transitions: bool = True
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    tasks_dirname: str = DEFAULT_TASKS_DIRNAME

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root).resolve()
        if self.worktree_root is None:
            name = self.project_root.name.lower()
            self.worktree_root = self.project_root.parent / f"{name}.worktrees"
        else:
            self.worktree_root = Path(self.worktree_root).resolve()

    @property
    def tasks_dir(self) -> Path:
        return self.project_root / self.tasks_dirname

    @property
    def project_name(self) -> str:
        return self.project_root.name.lower()

    @classmethod
    def from_env(cls, root: Path | str | None = None) -> Config:
        """Build a config from ``TASKENV_*`` environment variables.

        An explicit *root* wins over ``TASKENV_ROOT``, which wins over the
        enclosing git repository.
        """
        if root is None:
            env_root = os.environ.get(ENV_ROOT, "")
            root = Path(env_root) if env_root else resolve_repo_root()

        worktree_root = os.environ.get(ENV_WORKTREE_ROOT, "")
        auto = os.environ.get(ENV_AUTO_TRANSITIONS, "")

        return cls(
            project_root=Path(root),
            base_branch=os.environ.get(ENV_BASE_BRANCH, ""),
            worktree_root=Path(worktree_root) if worktree_root else None,
            auto_transitions=auto.strip().lower() not in _FALSY if auto else True,
        )


def resolve_repo_root(cwd: Path | None = None) -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            cwd=cwd,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return cwd or Path.cwd()
