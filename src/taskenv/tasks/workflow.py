"""Workflow state machine: backlog -> current -> archive, plus status-driven moves."""

from __future__ import annotations

import re
from datetime import date

from taskenv.errors import ErrorCode, FieldError, TaskEnvError
from taskenv.tasks.fields import normalize_status, normalize_workflow_state
from taskenv.tasks.model import WorkflowState

STATE_ORDER: tuple[WorkflowState, ...] = (
    WorkflowState.CURRENT,
    WorkflowState.BACKLOG,
    WorkflowState.ARCHIVE,
)

_STATE_STATUS: dict[WorkflowState, str] = {
    WorkflowState.BACKLOG: "todo",
    WorkflowState.CURRENT: "in-progress",
    WorkflowState.ARCHIVE: "done",
}

# (state, new status) pairs that relocate a task once the status is written
_AUTO_TRANSITIONS: dict[tuple[WorkflowState, str], WorkflowState] = {
    (WorkflowState.BACKLOG, "in-progress"): WorkflowState.CURRENT,
    (WorkflowState.ARCHIVE, "in-progress"): WorkflowState.CURRENT,
    (WorkflowState.ARCHIVE, "todo"): WorkflowState.CURRENT,
}

_ARCHIVE_DATE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def parse_state(value: WorkflowState | str) -> WorkflowState:
    if isinstance(value, WorkflowState):
        return value
    try:
        return WorkflowState(normalize_workflow_state(value))
    except FieldError as exc:
        raise TaskEnvError(ErrorCode.INVALID_INPUT, str(exc)) from exc


def status_for_state(state: WorkflowState) -> str:
    return _STATE_STATUS[state]


def auto_transition_target(
    state: WorkflowState,
    old_status: str | None,
    new_status: str | None,
    enabled: bool = True,
) -> WorkflowState | None:
    """Return the state a task should move to after a status change, or ``None``."""
    if not enabled or not new_status:
        return None
    try:
        new = normalize_status(new_status)
        old = normalize_status(old_status) if old_status else None
    except FieldError:
        return None
    if new == old:
        return None
    return _AUTO_TRANSITIONS.get((state, new))


def archive_bucket(when: date | None = None) -> str:
    return (when or date.today()).strftime("%Y-%m")


def validate_archive_date(value: str) -> str:
    if not _ARCHIVE_DATE_RE.match(value or ""):
        raise TaskEnvError(ErrorCode.INVALID_INPUT, f"Invalid archive date '{value}', expected YYYY-MM")
    return value
