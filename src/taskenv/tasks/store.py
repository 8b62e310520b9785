"""Task store: create/get/update/delete/move/list over the ``.tasks`` tree."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from taskenv import log
from taskenv.config import Config
from taskenv.errors import ErrorCode, OperationResult, TaskEnvError, guarded
from taskenv.io_utils import read_text, write_new_text, write_text
from taskenv.tasks.document import (
    add_log_entry,
    clean_section,
    ensure_required_sections,
    format_checklist,
    format_log_entry,
    parse_document,
    serialize_document,
    validate_document,
)
from taskenv.tasks.fields import (
    is_completed_status,
    normalize_frontmatter,
    normalize_priority,
    normalize_status,
    normalize_type,
    priority_rank,
)
from taskenv.tasks.ids import generate_task_id
from taskenv.tasks.layout import TaskLayout
from taskenv.tasks.model import (
    OVERVIEW_FILENAME,
    Task,
    TaskCreateOptions,
    TaskDocument,
    TaskListOptions,
    TaskUpdateOptions,
    WorkflowState,
)
from taskenv.tasks.workflow import (
    STATE_ORDER,
    archive_bucket,
    auto_transition_target,
    parse_state,
    status_for_state,
    validate_archive_date,
)


def build_document(options: TaskCreateOptions) -> TaskDocument:
    """Build a canonical document from create options. Raises ``FieldError`` on bad labels."""
    frontmatter: dict[str, Any] = {
        "type": normalize_type(options.type),
        "status": normalize_status(options.status),
        "area": options.area or "general",
        "priority": normalize_priority(options.priority),
    }
    if options.assignee:
        frontmatter["assignee"] = options.assignee
    if options.tags:
        frontmatter["tags"] = list(options.tags)
    for key, value in options.custom_metadata.items():
        frontmatter.setdefault(key, value)

    sections = {
        "instruction": clean_section(options.instruction),
        "tasks": format_checklist(options.tasks),
        "deliverable": clean_section(options.deliverable),
        "log": format_log_entry("Task created"),
    }
    for key, value in options.custom_sections.items():
        sections.setdefault(key.lower(), clean_section(value))

    return TaskDocument(title=options.title.strip(), frontmatter=normalize_frontmatter(frontmatter), sections=sections)


def _require_valid(doc: TaskDocument) -> None:
    errors = validate_document(doc)
    if errors:
        raise TaskEnvError(ErrorCode.VALIDATION_ERROR, "; ".join(errors), errors)


def _require_id(task_id: str) -> str:
    if not task_id or not task_id.strip():
        raise TaskEnvError(ErrorCode.INVALID_INPUT, "Task id is required")
    return task_id.strip()


class TaskStore:
    """File-backed task repository rooted at ``config.tasks_dir``."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.layout = TaskLayout(config.tasks_dir)

    # ── low-level helpers shared with the hierarchy engine ───────────

    def load(self, path: Path) -> Task:
        """Parse *path* and attach the facts derived from its location."""
        facts = self.layout.describe(path)
        return Task(
            id=facts.task_id,
            path=path,
            location=facts.location,
            document=parse_document(read_text(path)),
            is_parent_task=facts.is_parent_task,
            parent_task=facts.parent_task,
            sequence_number=facts.sequence_number,
        )

    def locate(self, task_id: str, parent_id: str | None = None) -> Task:
        path = self.layout.find(_require_id(task_id), parent_id)
        if path is None:
            where = f" in parent {parent_id}" if parent_id else ""
            raise TaskEnvError(ErrorCode.NOT_FOUND, f"Task not found: {task_id}{where}")
        return self.load(path)

    def write_new(self, path: Path, doc: TaskDocument) -> Task:
        """Create *path* exclusively. ``AlreadyExists`` if something is already there."""
        _require_valid(doc)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            write_new_text(path, serialize_document(doc))
        except FileExistsError as exc:
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"Task file already exists: {path}") from exc
        log.debug(f"Created {path.relative_to(self.config.project_root)}")
        return self.load(path)

    # ── public operations ────────────────────────────────────────────

    @guarded
    def create(self, options: TaskCreateOptions) -> OperationResult[Task]:
        if not options.title or not options.title.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Task title is required")
        state = parse_state(options.workflow_state or WorkflowState.BACKLOG)
        doc = build_document(options)
        task_id = generate_task_id(doc.title, self.layout.all_ids())
        archive_date = archive_bucket() if state is WorkflowState.ARCHIVE else None
        path = self.layout.simple_task_path(state, task_id, archive_date)
        return OperationResult.ok(self.write_new(path, doc))

    @guarded
    def get(self, task_id: str, parent_id: str | None = None) -> OperationResult[Task]:
        return OperationResult.ok(self.locate(task_id, parent_id))

    @guarded
    def update(
        self,
        task_id: str,
        patch: TaskUpdateOptions,
        parent_id: str | None = None,
    ) -> OperationResult[Task]:
        """Apply *patch*, write it, then apply any status-driven move.

        The write is never rolled back: if the follow-up move fails the result
        is still a success, with a warning and the task at its old location.
        """
        task = self.locate(task_id, parent_id)
        doc = ensure_required_sections(task.document)
        old_status = doc.status

        if patch.title is not None:
            if not patch.title.strip():
                raise TaskEnvError(ErrorCode.INVALID_INPUT, "Task title cannot be empty")
            doc.title = patch.title.strip()
        for key, value in patch.frontmatter.items():
            if value is None:
                doc.frontmatter.pop(key, None)
            else:
                doc.frontmatter[key] = value
        doc.frontmatter = normalize_frontmatter(doc.frontmatter)
        for key, content in patch.sections.items():
            doc.sections[key.lower()] = clean_section(content)
        if patch.log_entry:
            add_log_entry(doc, patch.log_entry)

        _require_valid(doc)
        write_text(task.path, serialize_document(doc))
        task = self.load(task.path)

        if task.is_subtask:
            return OperationResult.ok(task)
        target = auto_transition_target(
            task.location.workflow_state,
            old_status,
            task.status,
            self.config.auto_transitions,
        )
        if target is None:
            return OperationResult.ok(task)

        try:
            moved = self.relocate(task, target)
        except (TaskEnvError, OSError) as exc:
            message = getattr(exc, "message", None) or str(exc)
            log.warn(f"{task.id} updated but not moved to {target.value}: {message}")
            return OperationResult.ok(task, warnings=[f"Could not move to {target.value}: {message}"])
        log.debug(f"Auto-moved {task.id} to {target.value}")
        return OperationResult.ok(moved)

    @guarded
    def update_section(self, task_id: str, section: str, content: str) -> OperationResult[Task]:
        return self.update(task_id, TaskUpdateOptions(sections={section: content}))

    @guarded
    def append_log(self, task_id: str, entry: str) -> OperationResult[Task]:
        if not entry or not entry.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Log entry is required")
        return self.update(task_id, TaskUpdateOptions(log_entry=entry))

    @guarded
    def delete(self, task_id: str, parent_id: str | None = None) -> OperationResult[None]:
        task = self.locate(task_id, parent_id)
        if task.is_parent_task:
            raise TaskEnvError(
                ErrorCode.INVALID_OPERATION,
                f"{task.id} is a parent task overview; delete the parent folder instead",
            )
        task.path.unlink()
        log.debug(f"Deleted {task.id}")
        return OperationResult.ok(None)

    @guarded
    def move(
        self,
        task_id: str,
        target_state: WorkflowState | str,
        archive_date: str | None = None,
        update_status: bool = False,
    ) -> OperationResult[Task]:
        task = self.locate(task_id)
        return OperationResult.ok(self.relocate(task, parse_state(target_state), archive_date, update_status))

    def relocate(
        self,
        task: Task,
        target: WorkflowState,
        archive_date: str | None = None,
        update_status: bool = False,
    ) -> Task:
        """Move *task* (or its whole parent folder) to *target*.

        The destination is written before the source is removed.
        """
        if task.is_subtask:
            raise TaskEnvError(
                ErrorCode.INVALID_OPERATION,
                f"{task.id} is a subtask of {task.parent_task}; move the parent instead",
            )
        if target is WorkflowState.ARCHIVE:
            archive_date = validate_archive_date(archive_date) if archive_date else archive_bucket()
        else:
            archive_date = None
        if target is task.location.workflow_state and target is not WorkflowState.ARCHIVE:
            raise TaskEnvError(ErrorCode.NO_OP, f"{task.id} is already in {target.value}")

        folder_dest = self.layout.parent_folder_path(target, task.id, archive_date)
        file_dest = self.layout.simple_task_path(target, task.id, archive_date)
        if folder_dest.exists() or file_dest.exists():
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"{task.id} already exists in {target.value}")

        if task.is_parent_task:
            source = task.path.parent
            folder_dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, folder_dest)
            new_path = folder_dest / OVERVIEW_FILENAME
            if update_status:
                self._set_status(new_path, status_for_state(target))
            shutil.rmtree(source)
        else:
            new_path = file_dest
            new_path.parent.mkdir(parents=True, exist_ok=True)
            write_new_text(new_path, read_text(task.path))
            if update_status:
                self._set_status(new_path, status_for_state(target))
            task.path.unlink()

        log.debug(f"Moved {task.id}: {task.location.workflow_state.value} -> {target.value}")
        return self.load(new_path)

    def _set_status(self, path: Path, status: str) -> None:
        doc = parse_document(read_text(path))
        doc.frontmatter["status"] = status
        write_text(path, serialize_document(doc))

    @guarded
    def list(self, options: TaskListOptions | None = None) -> OperationResult[list[Task]]:
        options = options or TaskListOptions()
        states = [parse_state(s) for s in options.workflow_states]
        if not states:
            states = [WorkflowState.CURRENT, WorkflowState.BACKLOG]
            if options.include_archived:
                states.append(WorkflowState.ARCHIVE)
        states = sorted(set(states), key=STATE_ORDER.index)

        want_type = normalize_type(options.type) if options.type else None
        want_status = normalize_status(options.status) if options.status else None

        tasks: list[Task] = []
        for path in self.layout.iter_task_files(states):
            try:
                task = self.load(path)
            except (TaskEnvError, OSError, ValueError) as exc:
                log.warn(f"Skipping unreadable task file {path}: {exc}")
                continue

            if task.is_parent_task and not options.include_parent_tasks:
                continue
            if options.parent_id:
                owner = task.id if task.is_parent_task else task.parent_task
                if owner != options.parent_id:
                    continue
            if want_type and task.type != want_type:
                continue
            if want_status and task.status != want_status:
                continue
            if options.exclude_completed and is_completed_status(task.status):
                continue
            if options.area and task.document.area != options.area:
                continue
            if options.assignee and task.document.assignee != options.assignee:
                continue
            if options.tags and not set(options.tags) & set(task.tags):
                continue
            tasks.append(task)

        if options.by_priority:
            tasks.sort(key=lambda t: -priority_rank(t.document.priority))
        return OperationResult.ok(tasks)
