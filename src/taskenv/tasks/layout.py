"""On-disk layout of the task store.

Every path rule lives here::

    .tasks/{backlog,current}/{id}.task.md
    .tasks/archive/[YYYY-MM/]{id}.task.md
    .tasks/{state}/{parent}/_overview.md
    .tasks/{state}/{parent}/{NN}_{name}.task.md

Whether a file is an overview, a subtask, or a simple task is decided from
its path alone.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from taskenv.tasks.ids import split_subtask_id
from taskenv.tasks.model import OVERVIEW_FILENAME, TASK_SUFFIX, TaskLocation, WorkflowState
from taskenv.tasks.workflow import STATE_ORDER

_BUCKET_RE = re.compile(r"^\d{4}-\d{2}$")


@dataclass(frozen=True)
class PathFacts:
    task_id: str
    location: TaskLocation
    is_parent_task: bool = False
    parent_task: str | None = None
    sequence_number: str | None = None


def strip_suffix(filename: str) -> str:
    if filename.endswith(TASK_SUFFIX):
        return filename[: -len(TASK_SUFFIX)]
    return filename


class TaskLayout:
    def __init__(self, tasks_dir: Path) -> None:
        self.tasks_dir = Path(tasks_dir)

    # ── directories ──────────────────────────────────────────────────

    def state_dir(self, state: WorkflowState, archive_date: str | None = None) -> Path:
        path = self.tasks_dir / state.value
        if state is WorkflowState.ARCHIVE and archive_date:
            path = path / archive_date
        return path

    def containers(self, state: WorkflowState) -> list[Path]:
        """Directories that directly hold tasks of *state* (archive buckets included)."""
        root = self.state_dir(state)
        if not root.is_dir():
            return []
        dirs = [root]
        if state is WorkflowState.ARCHIVE:
            dirs.extend(
                p for p in sorted(root.iterdir())
                if p.is_dir() and _BUCKET_RE.match(p.name)
            )
        return dirs

    def parent_folders(self, state: WorkflowState) -> Iterator[Path]:
        for container in self.containers(state):
            for entry in sorted(container.iterdir()):
                if entry.name.startswith(".") or not entry.is_dir():
                    continue
                if (entry / OVERVIEW_FILENAME).is_file():
                    yield entry

    # ── paths ────────────────────────────────────────────────────────

    def simple_task_path(self, state: WorkflowState, task_id: str, archive_date: str | None = None) -> Path:
        return self.state_dir(state, archive_date) / f"{task_id}{TASK_SUFFIX}"

    def parent_folder_path(self, state: WorkflowState, parent_id: str, archive_date: str | None = None) -> Path:
        return self.state_dir(state, archive_date) / parent_id

    @staticmethod
    def overview_path(folder: Path) -> Path:
        return folder / OVERVIEW_FILENAME

    @staticmethod
    def subtask_path(folder: Path, subtask_id: str) -> Path:
        return folder / f"{subtask_id}{TASK_SUFFIX}"

    @staticmethod
    def subtask_files(folder: Path) -> list[Path]:
        return sorted(
            p for p in folder.iterdir()
            if p.is_file() and p.name.endswith(TASK_SUFFIX)
        )

    @staticmethod
    def supporting_files(folder: Path) -> list[str]:
        return sorted(
            p.name for p in folder.iterdir()
            if p.is_file()
            and p.suffix == ".md"
            and p.name != OVERVIEW_FILENAME
            and not p.name.endswith(TASK_SUFFIX)
        )

    # ── derivation ───────────────────────────────────────────────────

    def describe(self, path: Path) -> PathFacts:
        """Derive id, location and hierarchy facts from *path*."""
        rel = Path(path).relative_to(self.tasks_dir).parts
        state = WorkflowState(rel[0])
        rest = list(rel[1:])
        archive_date = None
        if state is WorkflowState.ARCHIVE and len(rest) > 1 and _BUCKET_RE.match(rest[0]):
            archive_date = rest.pop(0)
        location = TaskLocation(workflow_state=state, archive_date=archive_date)

        if len(rest) == 1:
            return PathFacts(strip_suffix(rest[0]), location)
        folder, filename = rest[-2], rest[-1]
        if filename == OVERVIEW_FILENAME:
            return PathFacts(folder, location, is_parent_task=True)
        task_id = strip_suffix(filename)
        sequence, _ = split_subtask_id(task_id)
        return PathFacts(task_id, location, parent_task=folder, sequence_number=sequence)

    # ── discovery ────────────────────────────────────────────────────

    def iter_task_files(self, states: list[WorkflowState] | None = None) -> Iterator[Path]:
        """Yield task files state by state (current, backlog, archive), sorted within each."""
        for state in states or list(STATE_ORDER):
            for container in self.containers(state):
                for entry in sorted(container.iterdir()):
                    if entry.name.startswith("."):
                        continue
                    if entry.is_file() and entry.name.endswith(TASK_SUFFIX):
                        yield entry
                    elif entry.is_dir() and (entry / OVERVIEW_FILENAME).is_file():
                        yield entry / OVERVIEW_FILENAME
                        yield from self.subtask_files(entry)

    def all_ids(self) -> set[str]:
        """Every simple id, parent folder name and bare subtask name in the project."""
        ids: set[str] = set()
        for path in self.iter_task_files():
            facts = self.describe(path)
            if facts.parent_task:
                ids.add(split_subtask_id(facts.task_id)[1])
            else:
                ids.add(facts.task_id)
        return ids

    # ── resolution ───────────────────────────────────────────────────

    @staticmethod
    def _find_subtask(folder: Path, task_id: str) -> Path | None:
        exact = TaskLayout.subtask_path(folder, task_id)
        if exact.is_file():
            return exact
        _, name = split_subtask_id(task_id)
        for path in TaskLayout.subtask_files(folder):
            if split_subtask_id(strip_suffix(path.name))[1] == name:
                return path
        return None

    def find(self, task_id: str, parent_id: str | None = None) -> Path | None:
        """Resolve an id to its file, searching current, backlog, then archive.

        *task_id* may be prefixed with a state (``"backlog/my-task-05A"``) and
        may carry a parent (``"current/auth-05A/01_login-05B"``). A subtask is
        found by its full id or by its bare name.
        """
        states = list(STATE_ORDER)
        parts = [p for p in task_id.strip("/").split("/") if p]
        if not parts:
            return None
        if len(parts) > 1 and parts[0] in {s.value for s in WorkflowState}:
            states = [WorkflowState(parts.pop(0))]
        if len(parts) > 1 and _BUCKET_RE.match(parts[0]):
            parts.pop(0)
        if len(parts) == 2:
            parent_id, task_id = parts
        elif len(parts) == 1:
            task_id = parts[0]
        else:
            return None

        for state in states:
            for container in self.containers(state):
                if parent_id:
                    folder = container / parent_id
                    if (folder / OVERVIEW_FILENAME).is_file():
                        found = self._find_subtask(folder, task_id)
                        if found:
                            return found
                    continue
                simple = container / f"{task_id}{TASK_SUFFIX}"
                if simple.is_file():
                    return simple
                overview = container / task_id / OVERVIEW_FILENAME
                if overview.is_file():
                    return overview

        if parent_id:
            return None
        for state in states:
            for folder in self.parent_folders(state):
                found = self._find_subtask(folder, task_id)
                if found:
                    return found
        return None
