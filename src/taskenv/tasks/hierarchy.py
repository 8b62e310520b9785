"""Parent tasks: folders holding ``_overview.md`` plus ordered ``{NN}_{name}.task.md`` subtasks.

Ordering lives in the filename prefix. Equal prefixes form a parallel group.
Every renumbering is a series of independent renames; a batch stops at the
first failed rename and reports the renames that already happened.
"""

from __future__ import annotations

import shutil
from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path

from taskenv import log
from taskenv.errors import ErrorCode, OperationResult, TaskEnvError, guarded
from taskenv.io_utils import read_text, write_new_text
from taskenv.tasks.document import add_log_entry, ensure_required_sections
from taskenv.tasks.ids import (
    format_sequence,
    generate_subtask_id,
    generate_task_id,
    is_valid_sequence,
    split_subtask_id,
)
from taskenv.tasks.model import (
    ParentTask,
    SequencingResult,
    SubtaskInfo,
    SubtaskOrder,
    Task,
    TaskCreateOptions,
    TaskDocument,
    WorkflowState,
)
from taskenv.tasks.store import TaskStore, build_document
from taskenv.tasks.workflow import archive_bucket, parse_state

OrderSpec = SubtaskOrder | tuple[str, str]


def _seq(task: Task) -> int:
    return int(task.sequence_number or 0)


def _sort_key(task: Task) -> tuple[int, str]:
    return _seq(task), task.filename


def _require_sequence(value: str) -> str:
    if not is_valid_sequence(value):
        raise TaskEnvError(ErrorCode.INVALID_INPUT, f"Invalid sequence '{value}', expected two digits (01-99)")
    return value


class ParentTasks:
    """Hierarchy and sequencing operations on top of a :class:`TaskStore`."""

    def __init__(self, store: TaskStore) -> None:
        self.store = store
        self.layout = store.layout

    # ── internal helpers ─────────────────────────────────────────────

    def _overview(self, parent_id: str) -> Task:
        task = self.store.locate(parent_id)
        if not task.is_parent_task:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} is not a parent task")
        return task

    def _subtasks(self, folder: Path) -> list[Task]:
        subtasks = []
        for path in self.layout.subtask_files(folder):
            try:
                subtasks.append(self.store.load(path))
            except (TaskEnvError, OSError, ValueError) as exc:
                log.warn(f"Skipping unreadable subtask {path.name}: {exc}")
        return sorted(subtasks, key=_sort_key)

    @staticmethod
    def _pick(subtasks: list[Task], subtask_id: str) -> Task:
        name = split_subtask_id(subtask_id)[1]
        for task in subtasks:
            if subtask_id == task.id or name == task.name:
                return task
        raise TaskEnvError(ErrorCode.NOT_FOUND, f"Subtask not found: {subtask_id}")

    @staticmethod
    def _subtask_document(options: TaskCreateOptions) -> TaskDocument:
        if not options.title or not options.title.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Subtask title is required")
        return build_document(options)

    def _create_subtask(self, folder: Path, doc: TaskDocument, sequence: str) -> Task:
        subtask_id = generate_subtask_id(doc.title, sequence, self.layout.all_ids())
        return self.store.write_new(self.layout.subtask_path(folder, subtask_id), doc)

    @staticmethod
    def _discard(folder: Path) -> None:
        """Remove a half-built parent folder after a failed write."""
        try:
            shutil.rmtree(folder)
        except OSError as exc:
            log.warn(f"Could not clean up {folder}: {exc}")

    def _rename(self, task: Task, sequence: str) -> str:
        new_id = f"{sequence}_{task.name}"
        dest = self.layout.subtask_path(task.path.parent, new_id)
        if dest.exists():
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"Cannot rename {task.id}: {dest.name} exists")
        task.path.rename(dest)
        return new_id

    def _rename_batch(self, moves: Iterable[tuple[Task, str]]) -> SequencingResult:
        result = SequencingResult()
        for task, sequence in moves:
            if task.sequence_number == sequence:
                continue
            try:
                new_id = self._rename(task, sequence)
            except (TaskEnvError, OSError) as exc:
                result.failed = task.id
                log.warn(f"Renumbering stopped at {task.id}: {exc}")
                break
            log.debug(f"Renamed {task.id} -> {new_id}")
            result.renamed.append((task.id, new_id))
        return result

    def _compact(self, groups: list[list[Task]]) -> SequencingResult:
        """Give each group the next contiguous code, starting at 01."""
        moves = [
            (task, format_sequence(index))
            for index, group in enumerate(groups, start=1)
            for task in group
        ]
        return self._rename_batch(moves)

    @staticmethod
    def _groups(subtasks: list[Task]) -> list[list[Task]]:
        groups: list[list[Task]] = []
        for task in sorted(subtasks, key=_sort_key):
            if groups and _seq(groups[-1][0]) == _seq(task):
                groups[-1].append(task)
            else:
                groups.append([task])
        return groups

    @staticmethod
    def _batch_result(result: SequencingResult) -> OperationResult[SequencingResult]:
        if result.failed:
            done = ", ".join(new for _, new in result.renamed) or "none"
            return OperationResult.fail(
                ErrorCode.INVALID_OPERATION,
                f"Rename of {result.failed} failed; completed: {done}",
                data=result,
            )
        return OperationResult.ok(result)

    # ── parents ──────────────────────────────────────────────────────

    @guarded
    def create_parent(
        self,
        options: TaskCreateOptions,
        subtasks: Sequence[TaskCreateOptions] | None = None,
    ) -> OperationResult[ParentTask]:
        if not options.title or not options.title.strip():
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Parent task title is required")
        state = parse_state(options.workflow_state or WorkflowState.BACKLOG)
        doc = build_document(options)
        sub_docs = [self._subtask_document(sub) for sub in subtasks or []]
        parent_id = generate_task_id(doc.title, self.layout.all_ids())
        archive_date = archive_bucket() if state is WorkflowState.ARCHIVE else None
        folder = self.layout.parent_folder_path(state, parent_id, archive_date)
        try:
            folder.mkdir(parents=True)
        except FileExistsError as exc:
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"Parent folder already exists: {folder}") from exc

        try:
            self.store.write_new(self.layout.overview_path(folder), doc)
            for index, sub_doc in enumerate(sub_docs, start=1):
                self._create_subtask(folder, sub_doc, format_sequence(index))
        except (TaskEnvError, OSError):
            self._discard(folder)
            raise
        log.debug(f"Created parent {parent_id} with {len(sub_docs)} subtasks")
        return self.get_parent(parent_id)

    @guarded
    def get_parent(self, parent_id: str) -> OperationResult[ParentTask]:
        overview = self._overview(parent_id)
        folder = overview.path.parent
        return OperationResult.ok(
            ParentTask(
                overview=overview,
                subtasks=self._subtasks(folder),
                supporting_files=self.layout.supporting_files(folder),
            )
        )

    @guarded
    def delete_parent(self, parent_id: str, cascade: bool = True) -> OperationResult[None]:
        overview = self._overview(parent_id)
        folder = overview.path.parent
        remaining = self._subtasks(folder)
        if remaining and not cascade:
            raise TaskEnvError(
                ErrorCode.INVALID_OPERATION,
                f"{parent_id} still has {len(remaining)} subtasks; delete them first or cascade",
            )
        shutil.rmtree(folder)
        log.debug(f"Deleted parent {parent_id}")
        return OperationResult.ok(None)

    # ── subtasks ─────────────────────────────────────────────────────

    @guarded
    def add_subtask(
        self,
        parent_id: str,
        options: TaskCreateOptions,
        *,
        sequence: str | None = None,
        parallel_with: str | None = None,
        after: str | None = None,
        before: str | None = None,
        force: bool = False,
    ) -> OperationResult[Task]:
        """Create a subtask.

        ``sequence`` places it at an explicit code (``force`` allows sharing one),
        ``parallel_with`` joins a sibling's group, ``after``/``before`` insert
        next to a sibling and renumber the folder. Default: after the last one.
        """
        placements = [p for p in (sequence, parallel_with, after, before) if p]
        if len(placements) > 1:
            raise TaskEnvError(
                ErrorCode.INVALID_INPUT,
                "Use only one of sequence, parallel_with, after, before",
            )
        folder = self._overview(parent_id).path.parent
        subtasks = self._subtasks(folder)
        doc = self._subtask_document(options)

        if parallel_with:
            target = self._pick(subtasks, parallel_with).sequence_number or format_sequence(1)
        elif sequence:
            target = _require_sequence(sequence)
            if not force and any(t.sequence_number == target for t in subtasks):
                raise TaskEnvError(
                    ErrorCode.INVALID_OPERATION,
                    f"Sequence {target} is already used in {parent_id}; use force or make_parallel",
                )
        elif after or before:
            anchor = self._pick(subtasks, after or before)  # type: ignore[arg-type]
            groups = self._groups(subtasks)
            index = next(i for i, g in enumerate(groups) if any(t is anchor for t in g))
            position = index + 1 if after else index
            renumbered = self._compact(groups[:position] + [[]] + groups[position:])
            if renumbered.failed:
                return self._batch_result(renumbered)  # type: ignore[return-value]
            target = format_sequence(position + 1)
        else:
            target = format_sequence(max((_seq(t) for t in subtasks), default=0) + 1)

        return OperationResult.ok(self._create_subtask(folder, doc, target))

    @guarded
    def list_subtasks(self, parent_id: str) -> OperationResult[list[SubtaskInfo]]:
        subtasks = self._subtasks(self._overview(parent_id).path.parent)
        counts = Counter(t.sequence_number for t in subtasks)
        return OperationResult.ok([
            SubtaskInfo(sequence=t.sequence_number or "", id=t.id, can_run_parallel=counts[t.sequence_number] > 1)
            for t in subtasks
        ])

    # ── sequencing ───────────────────────────────────────────────────

    @guarded
    def reorder_subtasks(
        self,
        parent_id: str,
        new_order: Sequence[OrderSpec],
        force: bool = False,
    ) -> OperationResult[SequencingResult]:
        """Rename subtasks to the requested codes.

        Two subtasks may only end up sharing a code when ``force`` is set.
        """
        if not new_order:
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "No subtask order given")
        subtasks = self._subtasks(self._overview(parent_id).path.parent)

        moves: list[tuple[Task, str]] = []
        for spec in new_order:
            task_id, sequence = (spec.task_id, spec.new_sequence) if isinstance(spec, SubtaskOrder) else spec
            task = self._pick(subtasks, task_id)
            if any(task is moved for moved, _ in moves):
                raise TaskEnvError(ErrorCode.INVALID_INPUT, f"{task.id} appears more than once")
            moves.append((task, _require_sequence(sequence)))

        if not force:
            touched = {id(task) for task, _ in moves}
            taken = Counter(t.sequence_number for t in subtasks if id(t) not in touched)
            taken.update(sequence for _, sequence in moves)
            clashes = sorted({sequence for _, sequence in moves if taken[sequence] > 1})
            if clashes:
                raise TaskEnvError(
                    ErrorCode.INVALID_OPERATION,
                    f"Sequence collision on {', '.join(clashes)}; use make_parallel or force",
                )

        return self._batch_result(self._rename_batch(moves))

    @guarded
    def update_sequence(
        self,
        parent_id: str,
        subtask_id: str,
        sequence: str,
        force: bool = False,
    ) -> OperationResult[SequencingResult]:
        return self.reorder_subtasks(parent_id, [(subtask_id, sequence)], force=force)

    @guarded
    def make_parallel(
        self,
        parent_id: str,
        subtask_ids: Sequence[str],
        target_sequence: str | None = None,
    ) -> OperationResult[SequencingResult]:
        """Give every subtask in *subtask_ids* the same code.

        The group takes *target_sequence* (default: the first member's code).
        The remaining subtasks keep their relative order and are numbered
        from the code after the group's.
        """
        if len(subtask_ids) < 2:
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "make_parallel needs at least two subtasks")
        subtasks = self._subtasks(self._overview(parent_id).path.parent)
        members = [self._pick(subtasks, sid) for sid in subtask_ids]
        target = _require_sequence(target_sequence or members[0].sequence_number or format_sequence(1))

        new_order: list[OrderSpec] = [(task.id, target) for task in members]
        others = [t for t in subtasks if not any(t is m for m in members)]
        for offset, task in enumerate(others, start=1):
            new_order.append((task.id, format_sequence(int(target) + offset)))
        return self.reorder_subtasks(parent_id, new_order, force=True)

    @guarded
    def resequence(
        self,
        parent_id: str,
        from_positions: Sequence[int],
        to_positions: Sequence[int],
    ) -> OperationResult[SequencingResult]:
        """Move the subtasks at 1-based *from_positions* to *to_positions*.

        The resulting order is strictly sequential (parallel groups are split).
        """
        if not from_positions or len(from_positions) != len(to_positions):
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "from/to positions must be non-empty and equal in length")
        if len(set(from_positions)) != len(from_positions) or len(set(to_positions)) != len(to_positions):
            raise TaskEnvError(ErrorCode.INVALID_INPUT, "Positions must not repeat")
        order = self._subtasks(self._overview(parent_id).path.parent)
        for pos in (*from_positions, *to_positions):
            if not 1 <= pos <= len(order):
                raise TaskEnvError(ErrorCode.INVALID_INPUT, f"Position {pos} out of range 1-{len(order)}")

        moving = [order[pos - 1] for pos in from_positions]
        remaining = [t for t in order if not any(t is m for m in moving)]
        for task, pos in sorted(zip(moving, to_positions), key=lambda pair: pair[1]):
            remaining.insert(pos - 1, task)

        new_order = [(task.id, format_sequence(i)) for i, task in enumerate(remaining, start=1)]
        return self.reorder_subtasks(parent_id, new_order)

    # ── restructuring ────────────────────────────────────────────────

    @guarded
    def promote_to_parent(
        self,
        task_id: str,
        subtasks: Sequence[TaskCreateOptions] | None = None,
        keep_original: bool = False,
    ) -> OperationResult[ParentTask]:
        """Turn a simple task into a parent folder with the same id.

        With ``keep_original`` the task's own content also becomes subtask 01.
        """
        task = self.store.locate(task_id)
        if task.is_parent_task:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} is already a parent task")
        if task.is_subtask:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} is a subtask and cannot be promoted")
        if task.location.workflow_state is WorkflowState.ARCHIVE:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} is archived; move it out of the archive first")

        sub_docs = [self._subtask_document(sub) for sub in subtasks or []]
        original = read_text(task.path)
        doc = add_log_entry(ensure_required_sections(task.document), "Promoted to parent task")

        folder = self.layout.parent_folder_path(task.location.workflow_state, task.id)
        try:
            folder.mkdir()
        except FileExistsError as exc:
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"Parent folder already exists: {folder}") from exc

        try:
            self.store.write_new(self.layout.overview_path(folder), doc)
            start = 1
            if keep_original:
                name = generate_task_id(task.title, self.layout.all_ids())
                write_new_text(self.layout.subtask_path(folder, f"{format_sequence(1)}_{name}"), original)
                start = 2
            for offset, sub_doc in enumerate(sub_docs):
                self._create_subtask(folder, sub_doc, format_sequence(start + offset))
        except (TaskEnvError, OSError):
            self._discard(folder)
            raise

        task.path.unlink()
        log.debug(f"Promoted {task.id} to parent task")
        return self.get_parent(task.id)

    @guarded
    def adopt_task(
        self,
        parent_id: str,
        task_id: str,
        sequence: str | None = None,
        force: bool = False,
    ) -> OperationResult[Task]:
        """Move a simple task into a parent folder, keeping its id as the subtask name."""
        overview = self._overview(parent_id)
        task = self.store.locate(task_id)
        if task.is_parent_task:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} is a parent task and cannot become a subtask")
        if task.is_subtask:
            raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"{task.id} already belongs to {task.parent_task}")

        folder = overview.path.parent
        subtasks = self._subtasks(folder)
        if sequence:
            target = _require_sequence(sequence)
            if not force and any(t.sequence_number == target for t in subtasks):
                raise TaskEnvError(ErrorCode.INVALID_OPERATION, f"Sequence {target} is already used in {parent_id}")
        else:
            target = format_sequence(max((_seq(t) for t in subtasks), default=0) + 1)

        dest = self.layout.subtask_path(folder, f"{target}_{task.id}")
        write_new_text(dest, read_text(task.path))
        task.path.unlink()
        log.debug(f"Adopted {task.id} into {parent_id}")
        return OperationResult.ok(self.store.load(dest))

    @guarded
    def extract_subtask(self, parent_id: str, subtask_id: str) -> OperationResult[Task]:
        """Turn a subtask into a simple task in the parent's workflow state."""
        overview = self._overview(parent_id)
        subtask = self._pick(self._subtasks(overview.path.parent), subtask_id)
        location = overview.location
        dest = self.layout.simple_task_path(location.workflow_state, subtask.name, location.archive_date)
        if dest.exists():
            raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"Task file already exists: {dest}")
        write_new_text(dest, read_text(subtask.path))
        subtask.path.unlink()
        log.debug(f"Extracted {subtask.id} from {parent_id}")
        return OperationResult.ok(self.store.load(dest))
