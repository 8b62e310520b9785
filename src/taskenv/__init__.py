"""taskenv: directory-encoded task store with per-task git worktree environments."""

__version__ = "0.3.0"
