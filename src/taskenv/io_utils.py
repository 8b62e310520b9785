"""Text file I/O with consistent encoding (UTF-8)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

PathLike = Path | str


def read_text(path: PathLike, errors: str = "strict", **kwargs: Any) -> str:
    """Read path as text with UTF-8 encoding. Forwards extra kwargs to Path.read_text."""
    p = path if isinstance(path, Path) else Path(path)
    return p.read_text(encoding="utf-8", errors=errors, **kwargs)


def write_text(path: PathLike, text: str, **kwargs: Any) -> None:
    """Write text to path with UTF-8 encoding, replacing any existing content."""
    p = path if isinstance(path, Path) else Path(path)
    p.write_text(text, encoding="utf-8", **kwargs)


def write_new_text(path: PathLike, text: str) -> None:
    """Create *path* and write *text*; raise ``FileExistsError`` if it already exists.

    The existence check and the creation are a single ``open(..., "x")`` call,
    so two writers racing for the same path cannot both succeed.
    """
    p = path if isinstance(path, Path) else Path(path)
    with open(p, "x", encoding="utf-8") as f:
        f.write(text)
