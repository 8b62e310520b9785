"""Task document codec.

A task file is a Markdown document::

    # Title

    ---
    type: feature
    status: todo
    ---

    ## Instruction
    ...

Frontmatter goes through PyYAML; sections are split on ``## `` headings that
sit outside fenced code blocks. Section content is kept without surrounding
blank lines so that ``parse_document(serialize_document(doc)) == doc``.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

import yaml

from taskenv.errors import ErrorCode, FieldError, TaskEnvError
from taskenv.tasks.fields import normalize_priority, normalize_status, normalize_type
from taskenv.tasks.model import REQUIRED_SECTIONS, TaskDocument

FRONTMATTER_FENCE = "---"
LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_SECTION_RE = re.compile(r"^##\s+(.+?)\s*$")


class DocumentError(TaskEnvError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message)


# ── Parsing ──────────────────────────────────────────────────────────

def _skip_blank(lines: list[str], i: int) -> int:
    while i < len(lines) and not lines[i].strip():
        i += 1
    return i


def _read_frontmatter(lines: list[str], i: int) -> tuple[dict[str, Any], int]:
    """Parse a ``---`` fenced YAML block starting at ``lines[i]``."""
    end = i + 1
    while end < len(lines) and lines[end].strip() != FRONTMATTER_FENCE:
        end += 1
    if end >= len(lines):
        raise DocumentError("Unterminated frontmatter block")

    block = "\n".join(lines[i + 1:end])
    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as exc:
        raise DocumentError(f"Invalid frontmatter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DocumentError("Frontmatter must be a mapping")
    return data, end + 1


def _strip_blank_edges(lines: list[str]) -> str:
    start, stop = 0, len(lines)
    while start < stop and not lines[start].strip():
        start += 1
    while stop > start and not lines[stop - 1].strip():
        stop -= 1
    return "\n".join(lines[start:stop])


def clean_section(text: str) -> str:
    """Normalize section content the way the parser stores it."""
    return _strip_blank_edges(text.replace("\r\n", "\n").split("\n"))


def parse_sections(lines: list[str]) -> dict[str, str]:
    """Split body lines into ``{lower-cased header: content}``.

    Headings inside fenced code blocks are content, not section breaks.
    Text before the first heading is discarded.
    """
    sections: dict[str, str] = {}
    current: str | None = None
    buffer: list[str] = []
    in_fence = False

    for line in lines:
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        elif not in_fence:
            m = _SECTION_RE.match(line)
            if m:
                if current is not None:
                    sections[current] = _strip_blank_edges(buffer)
                current = m.group(1).strip().lower()
                buffer = []
                continue
        if current is not None:
            buffer.append(line)

    if current is not None:
        sections[current] = _strip_blank_edges(buffer)
    return sections


def parse_document(text: str) -> TaskDocument:
    """Parse a task file. Raises ``DocumentError`` on malformed frontmatter."""
    lines = text.replace("\r\n", "\n").split("\n")
    title = ""
    frontmatter: dict[str, Any] = {}

    i = _skip_blank(lines, 0)
    if i < len(lines) and lines[i].strip() == FRONTMATTER_FENCE:
        # frontmatter-first files are accepted and rewritten title-first
        frontmatter, i = _read_frontmatter(lines, i)
        i = _skip_blank(lines, i)
    if i < len(lines) and lines[i].startswith("# "):
        title = lines[i][2:].strip()
        i = _skip_blank(lines, i + 1)
    if not frontmatter and i < len(lines) and lines[i].strip() == FRONTMATTER_FENCE:
        frontmatter, i = _read_frontmatter(lines, i)

    return TaskDocument(title=title, frontmatter=frontmatter, sections=parse_sections(lines[i:]))


# ── Serialization ────────────────────────────────────────────────────

def section_header(key: str) -> str:
    return key[:1].upper() + key[1:]


def dump_frontmatter(frontmatter: dict[str, Any]) -> str:
    if not frontmatter:
        return ""
    return yaml.safe_dump(
        frontmatter,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    ).rstrip("\n")


def serialize_document(doc: TaskDocument) -> str:
    parts = [f"# {doc.title}", "", FRONTMATTER_FENCE]
    dumped = dump_frontmatter(doc.frontmatter)
    if dumped:
        parts.append(dumped)
    parts.append(FRONTMATTER_FENCE)

    for key, content in doc.sections.items():
        parts.append("")
        parts.append(f"## {section_header(key)}")
        if content:
            parts.append(content)

    return "\n".join(parts) + "\n"


# ── Structure helpers ────────────────────────────────────────────────

def validate_document(doc: TaskDocument) -> list[str]:
    """Return human-readable structural problems; empty when the document is valid."""
    errors: list[str] = []
    if not doc.title.strip():
        errors.append("Missing title")
    for section in REQUIRED_SECTIONS:
        if section not in doc.sections:
            errors.append(f"Missing required section: {section}")
    for key in ("type", "status"):
        if not doc.frontmatter.get(key):
            errors.append(f"Missing required field: {key}")

    checks = (("type", normalize_type), ("status", normalize_status), ("priority", normalize_priority))
    for key, normalize in checks:
        value = doc.frontmatter.get(key)
        if value is None:
            continue
        try:
            normalize(value)
        except FieldError as exc:
            errors.append(str(exc))
    return errors


def ensure_required_sections(doc: TaskDocument) -> TaskDocument:
    """Add any missing required section (empty), keeping existing order first."""
    for section in REQUIRED_SECTIONS:
        doc.sections.setdefault(section, "")
    return doc


def format_checklist(items: list[str]) -> str:
    lines = []
    for item in items:
        item = item.strip()
        if not item:
            continue
        lines.append(item if item.startswith("- [") else f"- [ ] {item}")
    return "\n".join(lines)


def format_log_entry(entry: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime(LOG_TIMESTAMP_FORMAT)
    return f"- {stamp}: {entry.strip()}"


def add_log_entry(doc: TaskDocument, entry: str, now: datetime | None = None) -> TaskDocument:
    """Append a timestamped line to the ``log`` section. Existing lines are never rewritten."""
    line = format_log_entry(entry, now)
    existing = doc.sections.get("log", "")
    doc.sections["log"] = f"{existing}\n{line}" if existing else line
    return doc
