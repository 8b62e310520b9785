"""Console logging for taskenv, rendered with Rich.

Core modules log here; they never print operation results themselves.
"""

from __future__ import annotations

from rich.console import Console

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False

_STYLES: dict[str, str] = {
    "info": "blue",
    "ok": "green",
    "warn": "yellow",
    "error": "red",
}


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def _tag(level: str) -> str:
    style = _STYLES[level]
    return f"[{style}]\\[{level.upper()}][/{style}]"


def info(msg: str) -> None:
    console.print(f"{_tag('info')} {msg}")


def success(msg: str) -> None:
    console.print(f"{_tag('ok')} {msg}")


def warn(msg: str) -> None:
    _err_console.print(f"{_tag('warn')} {msg}")


def error(msg: str) -> None:
    _err_console.print(f"{_tag('error')} {msg}")


def debug(msg: str) -> None:
    if _verbose:
        _err_console.print(f"[dim]\\[DEBUG] {msg}[/dim]")
