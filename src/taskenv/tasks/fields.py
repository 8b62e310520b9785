"""Canonicalization tables for enumerated task fields.

Applied at the write boundary only: everything past ``normalize_*`` sees
canonical names. Labels, emoji and aliases are matched case-insensitively.
"""

from __future__ import annotations

from dataclasses import dataclass

from taskenv.errors import FieldError


@dataclass(frozen=True)
class FieldValue:
    name: str
    label: str
    emoji: str = ""
    aliases: tuple[str, ...] = ()


STATUS_VALUES: tuple[FieldValue, ...] = (
    FieldValue("todo", "To Do", "🟡", ("to-do", "to do", "to_do", "new", "open", "pending")),
    FieldValue("in-progress", "In Progress", "🔵", ("in_progress", "in progress", "wip", "doing", "started", "active")),
    FieldValue("done", "Done", "🟢", ("complete", "completed", "finished", "closed")),
    FieldValue("blocked", "Blocked", "🔴", ("stuck", "waiting", "on-hold", "on hold")),
    FieldValue("archived", "Archived", "⚪", ("archive",)),
)

TYPE_VALUES: tuple[FieldValue, ...] = (
    FieldValue("feature", "Feature", "🌟", ("feat", "enhancement", "story")),
    FieldValue("bug", "Bug", "🐛", ("fix", "bugfix", "defect")),
    FieldValue("chore", "Chore", "🔧", ("maintenance", "refactor", "task")),
    FieldValue("documentation", "Documentation", "📝", ("docs", "doc")),
    FieldValue("test", "Test", "🧪", ("tests", "testing")),
    FieldValue("spike", "Spike", "💡", ("research", "investigation")),
    FieldValue("idea", "Idea", "💭", ("proposal", "brainstorm")),
)

PRIORITY_VALUES: tuple[FieldValue, ...] = (
    FieldValue("highest", "Highest", "🔥", ("critical", "urgent", "p0")),
    FieldValue("high", "High", "🔼", ("important", "p1")),
    FieldValue("medium", "Medium", "▶️", ("normal", "p2")),
    FieldValue("low", "Low", "🔽", ("minor", "p3")),
)

WORKFLOW_STATE_VALUES: tuple[FieldValue, ...] = (
    FieldValue("backlog", "Backlog", "📋", ("later", "queued")),
    FieldValue("current", "Current", "🚀", ("now", "in-flight")),
    FieldValue("archive", "Archive", "📦", ("archived", "old")),
)

DEFAULT_STATUS = "todo"
DEFAULT_TYPE = "chore"
DEFAULT_PRIORITY = "medium"

PRIORITY_ORDER: dict[str, int] = {"highest": 4, "high": 3, "medium": 2, "low": 1}


def build_table(values: tuple[FieldValue, ...]) -> dict[str, str]:
    """Map every accepted spelling (lower-cased) to its canonical name."""
    table: dict[str, str] = {}
    for value in values:
        table[value.name.lower()] = value.name
        table[value.label.lower()] = value.name
        if value.emoji:
            table[value.emoji] = value.name
        for alias in value.aliases:
            table[alias.lower()] = value.name
    return table


_STATUS = build_table(STATUS_VALUES)
_TYPE = build_table(TYPE_VALUES)
_PRIORITY = build_table(PRIORITY_VALUES)
_WORKFLOW = build_table(WORKFLOW_STATE_VALUES)


def _normalize(table: dict[str, str], values: tuple[FieldValue, ...], raw: object, default: str, field_name: str) -> str:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    key = str(raw).strip().lower()
    # "🟡 To Do" style labels carry a leading emoji
    candidates = [key]
    if " " in key:
        candidates.append(key.split(" ", 1)[1].strip())
    for candidate in candidates:
        if candidate in table:
            return table[candidate]
    valid = ", ".join(v.name for v in values)
    raise FieldError(f'Invalid {field_name} "{raw}". Valid options are: {valid}')


def normalize_status(raw: object) -> str:
    return _normalize(_STATUS, STATUS_VALUES, raw, DEFAULT_STATUS, "status")


def normalize_type(raw: object) -> str:
    return _normalize(_TYPE, TYPE_VALUES, raw, DEFAULT_TYPE, "type")


def normalize_priority(raw: object) -> str:
    return _normalize(_PRIORITY, PRIORITY_VALUES, raw, DEFAULT_PRIORITY, "priority")


def normalize_workflow_state(raw: object) -> str:
    return _normalize(_WORKFLOW, WORKFLOW_STATE_VALUES, raw, "backlog", "workflow state")


def normalize_frontmatter(frontmatter: dict[str, object]) -> dict[str, object]:
    """Return a copy with status/type/priority canonicalized; other keys untouched."""
    normalized = dict(frontmatter)
    if "type" in normalized:
        normalized["type"] = normalize_type(normalized["type"])
    if "status" in normalized:
        normalized["status"] = normalize_status(normalized["status"])
    if normalized.get("priority") is not None:
        normalized["priority"] = normalize_priority(normalized["priority"])
    return normalized


def is_completed_status(status: object) -> bool:
    try:
        return normalize_status(status) in ("done", "archived")
    except FieldError:
        return False


def priority_rank(priority: object) -> int:
    try:
        return PRIORITY_ORDER.get(normalize_priority(priority), 0) if priority else 0
    except FieldError:
        return 0
