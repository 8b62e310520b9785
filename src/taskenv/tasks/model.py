"""Task data models shared by the store, hierarchy engine, and environment resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

OVERVIEW_FILENAME = "_overview.md"
TASK_SUFFIX = ".task.md"
REQUIRED_SECTIONS: tuple[str, ...] = ("instruction", "tasks", "deliverable", "log")


class WorkflowState(str, Enum):
    BACKLOG = "backlog"
    CURRENT = "current"
    ARCHIVE = "archive"


@dataclass
class TaskLocation:
    workflow_state: WorkflowState
    archive_date: str | None = None


@dataclass
class TaskDocument:
    """Parsed content of a task file: title, YAML frontmatter, named sections."""

    title: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return str(self.frontmatter.get("type", ""))

    @property
    def status(self) -> str:
        return str(self.frontmatter.get("status", ""))

    @property
    def area(self) -> str:
        return str(self.frontmatter.get("area", ""))

    @property
    def priority(self) -> str | None:
        value = self.frontmatter.get("priority")
        return str(value) if value is not None else None

    @property
    def assignee(self) -> str | None:
        value = self.frontmatter.get("assignee")
        return str(value) if value is not None else None

    @property
    def tags(self) -> list[str]:
        value = self.frontmatter.get("tags") or []
        if isinstance(value, str):
            return [value]
        return [str(tag) for tag in value]


@dataclass
class Task:
    """A task file plus the facts derived from where it lives.

    ``is_parent_task``, ``parent_task`` and ``sequence_number`` are recomputed
    from ``path`` on every read and never written into the document.
    """

    id: str
    path: Path
    location: TaskLocation
    document: TaskDocument
    is_parent_task: bool = False
    parent_task: str | None = None
    sequence_number: str | None = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def title(self) -> str:
        return self.document.title

    @property
    def type(self) -> str:
        return self.document.type

    @property
    def status(self) -> str:
        return self.document.status

    @property
    def tags(self) -> list[str]:
        return self.document.tags

    @property
    def is_subtask(self) -> bool:
        return self.parent_task is not None

    @property
    def name(self) -> str:
        """Id without the sequence prefix (identical to ``id`` for non-subtasks)."""
        if self.sequence_number and self.id.startswith(f"{self.sequence_number}_"):
            return self.id[len(self.sequence_number) + 1:]
        return self.id


@dataclass
class ParentTask:
    """Virtual aggregate: the overview task and its ordered subtasks."""

    overview: Task
    subtasks: list[Task] = field(default_factory=list)
    supporting_files: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.overview.id

    @property
    def folder(self) -> Path:
        return self.overview.path.parent


@dataclass
class SubtaskInfo:
    sequence: str
    id: str
    can_run_parallel: bool = False


@dataclass
class SubtaskOrder:
    task_id: str
    new_sequence: str


@dataclass
class SequencingResult:
    """Renames applied by a sequencing operation, as ``(old_id, new_id)`` pairs."""

    renamed: list[tuple[str, str]] = field(default_factory=list)
    failed: str | None = None


@dataclass
class TaskCreateOptions:
    title: str
    type: str | None = None
    status: str | None = None
    area: str = "general"
    priority: str | None = None
    assignee: str | None = None
    tags: list[str] = field(default_factory=list)
    workflow_state: WorkflowState | str | None = None
    instruction: str = ""
    tasks: list[str] = field(default_factory=list)
    deliverable: str = ""
    custom_metadata: dict[str, Any] = field(default_factory=dict)
    custom_sections: dict[str, str] = field(default_factory=dict)


@dataclass
class TaskUpdateOptions:
    """A patch. ``None`` fields are left alone; a ``None`` frontmatter value removes the key."""

    title: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)
    log_entry: str | None = None


@dataclass
class TaskListOptions:
    workflow_states: list[WorkflowState] = field(default_factory=list)
    include_archived: bool = False
    include_parent_tasks: bool = False
    type: str | None = None
    status: str | None = None
    area: str | None = None
    assignee: str | None = None
    tags: list[str] = field(default_factory=list)
    parent_id: str | None = None
    exclude_completed: bool = False
    # stable: ties keep state-then-file order
    by_priority: bool = False
