"""Git operations: branches and worktrees."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path


def _git(*args: str, cwd: Path | None = None, check: bool = False) -> subprocess.CompletedProcess[str]:
    """Run a git command, capturing output."""
    try:
        return subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=cwd,
            check=check,
        )
    except FileNotFoundError as exc:
        # git missing or cwd gone; report it like a failed command
        return subprocess.CompletedProcess(["git", *args], 127, "", str(exc))


def is_git_repo(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    return r.returncode == 0 and r.stdout.strip() == "true"


def current_branch(cwd: Path | None = None) -> str:
    r = _git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 else "main"


def branch_exists(name: str, cwd: Path | None = None) -> bool:
    r = _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}", cwd=cwd)
    return r.returncode == 0


def delete_branch(name: str, force: bool = False, cwd: Path | None = None) -> bool:
    flag = "-D" if force else "-d"
    r = _git("branch", flag, name, cwd=cwd)
    return r.returncode == 0


def has_dirty_worktree(cwd: Path | None = None) -> bool:
    r = _git("status", "--porcelain", cwd=cwd)
    return bool(r.stdout.strip())


def dirty_worktree_entries(cwd: Path | None = None) -> list[str]:
    """Return concise dirty entries from `git status --porcelain`."""
    r = _git("status", "--porcelain", cwd=cwd)
    if r.returncode != 0 or not r.stdout.strip():
        return []
    return [line.strip() for line in r.stdout.splitlines() if line.strip()]


# ── Worktree management ─────────────────────────────────────────────

@dataclass
class WorktreeEntry:
    path: Path
    head: str = ""
    branch: str | None = None
    bare: bool = False
    detached: bool = False
    prunable: bool = False


def parse_worktree_list(output: str) -> list[WorktreeEntry]:
    """Parse `git worktree list --porcelain` output.

    Records are separated by blank lines; ``branch`` is reported without the
    ``refs/heads/`` prefix.
    """
    entries: list[WorktreeEntry] = []
    current: WorktreeEntry | None = None
    for line in output.splitlines():
        if not line.strip():
            current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            current = WorktreeEntry(path=Path(value))
            entries.append(current)
        elif current is None:
            continue
        elif key == "HEAD":
            current.head = value
        elif key == "branch":
            current.branch = value.removeprefix("refs/heads/")
        elif key == "bare":
            current.bare = True
        elif key == "detached":
            current.detached = True
        elif key == "prunable":
            current.prunable = True
    return entries


def worktree_list(cwd: Path | None = None) -> list[WorktreeEntry]:
    r = _git("worktree", "list", "--porcelain", cwd=cwd)
    if r.returncode != 0:
        return []
    return parse_worktree_list(r.stdout)


def worktree_prune(cwd: Path | None = None) -> None:
    _git("worktree", "prune", cwd=cwd)


def worktree_add(worktree_dir: Path, branch: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Check out an existing *branch* into *worktree_dir*."""
    return _git("worktree", "add", str(worktree_dir), branch, cwd=cwd)


def worktree_add_new_branch(
    worktree_dir: Path,
    branch: str,
    base: str,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Create *branch* from *base* and check it out into *worktree_dir*."""
    return _git("worktree", "add", "-b", branch, str(worktree_dir), base, cwd=cwd)


def worktree_remove(worktree_dir: Path, force: bool = False, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    args = ["worktree", "remove"]
    if force:
        args.append("--force")
    return _git(*args, str(worktree_dir), cwd=cwd)
