"""Task identifiers: ``{slug}-{MM}{suffix}`` and subtask ids ``{NN}_{name}``."""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date
from itertools import product
from string import ascii_uppercase

from taskenv.errors import ErrorCode, TaskEnvError

SLUG_MAX_LEN = 30
SEQUENCE_WIDTH = 2
MAX_SEQUENCE = 99

_SEQUENCE_RE = re.compile(r"^\d{2}$")
_SUBTASK_ID_RE = re.compile(r"^(\d{2})_(.+)$")


def slugify(text: str, max_len: int = SLUG_MAX_LEN) -> str:
    """Convert text to a filesystem/branch-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    slug = slug[:max_len].rstrip("-")
    return slug or "task"


def _suffixes() -> Iterator[str]:
    yield from ascii_uppercase
    for a, b in product(ascii_uppercase, repeat=2):
        yield a + b


def generate_task_id(title: str, existing: set[str], today: date | None = None) -> str:
    """Return the first ``{slug}-{MM}{X}`` not in *existing*.

    ``MM`` is the current month; ``X`` runs ``A..Z`` then ``AA..ZZ``.
    """
    month = f"{(today or date.today()).month:02d}"
    base = f"{slugify(title)}-{month}"
    for suffix in _suffixes():
        candidate = f"{base}{suffix}"
        if candidate not in existing:
            return candidate
    raise TaskEnvError(ErrorCode.ALREADY_EXISTS, f"No free identifier left for '{title}'")


def format_sequence(value: int) -> str:
    if not 0 <= value <= MAX_SEQUENCE:
        raise TaskEnvError(ErrorCode.INVALID_INPUT, f"Sequence out of range: {value}")
    return f"{value:0{SEQUENCE_WIDTH}d}"


def is_valid_sequence(value: str) -> bool:
    return bool(_SEQUENCE_RE.match(value or ""))


def split_subtask_id(task_id: str) -> tuple[str | None, str]:
    """``"02_login-form-03B"`` -> ``("02", "login-form-03B")``; plain ids get ``None``."""
    m = _SUBTASK_ID_RE.match(task_id)
    if m:
        return m.group(1), m.group(2)
    return None, task_id


def generate_subtask_id(
    title: str,
    sequence: str,
    existing: set[str],
    today: date | None = None,
) -> str:
    """Return ``{sequence}_{name}``; only the bare name is checked against *existing*."""
    if not is_valid_sequence(sequence):
        raise TaskEnvError(ErrorCode.INVALID_INPUT, f"Invalid sequence '{sequence}', expected two digits")
    return f"{sequence}_{generate_task_id(title, existing, today)}"
