"""Error taxonomy, operation results, and git stderr classification."""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_OPERATION = "invalid_operation"
    VALIDATION_ERROR = "validation_error"
    INVALID_INPUT = "invalid_input"
    NO_OP = "no_op"
    GIT_ERROR = "git_error"


class TaskEnvError(Exception):
    """Raised inside the core; converted to a failed ``OperationResult`` at the boundary."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        validation_errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.validation_errors = validation_errors or []


class FieldError(ValueError):
    """An enumerated field value that has no canonical form."""


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a core operation.

    A failed result may still carry ``data`` when part of the work was done
    (for example the renames that succeeded before a batch aborted).
    ``warnings`` on a successful result mark a qualified success.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    code: ErrorCode | None = None
    validation_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: T | None = None, warnings: list[str] | None = None) -> OperationResult[T]:
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(
        cls,
        code: ErrorCode,
        error: str,
        *,
        data: T | None = None,
        validation_errors: list[str] | None = None,
    ) -> OperationResult[T]:
        return cls(
            success=False,
            data=data,
            error=error,
            code=code,
            validation_errors=validation_errors or [],
        )

    @classmethod
    def from_error(cls, exc: TaskEnvError) -> OperationResult[T]:
        return cls.fail(exc.code, exc.message, validation_errors=exc.validation_errors)

    def unwrap(self) -> T:
        """Return ``data`` or raise ``TaskEnvError`` for a failed result."""
        if not self.success:
            raise TaskEnvError(self.code or ErrorCode.INVALID_OPERATION, self.error or "operation failed")
        return self.data  # type: ignore[return-value]


def guarded(func: Callable[..., OperationResult[T]]) -> Callable[..., OperationResult[T]]:
    """Turn exceptions escaping a public operation into a failed ``OperationResult``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> OperationResult[T]:
        try:
            return func(*args, **kwargs)
        except TaskEnvError as exc:
            return OperationResult.from_error(exc)
        except FieldError as exc:
            return OperationResult.fail(ErrorCode.VALIDATION_ERROR, str(exc), validation_errors=[str(exc)])
        except OSError as exc:
            return OperationResult.fail(ErrorCode.INVALID_OPERATION, f"{exc.strerror or exc}: {exc.filename}")

    return wrapper


# ── git stderr classification ────────────────────────────────────────

WORKTREE_COLLISION_PATTERNS: tuple[str, ...] = (
    "already exists",
    "already checked out",
    "is already used by worktree",
    "already registered",
    "cannot lock ref",
    "is a missing but already registered worktree",
    "file exists",
)

GIT_UNAVAILABLE_PATTERNS: tuple[str, ...] = (
    "not a git repository",
    "command not found",
    "no such file or directory",
)


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(pattern in lower for pattern in patterns)


def looks_like_worktree_collision(text: str) -> bool:
    """Return ``True`` when git refused to create because the target already exists."""
    if not text:
        return False
    return _contains_any(text, WORKTREE_COLLISION_PATTERNS)


def looks_like_git_unavailable(text: str) -> bool:
    """Return ``True`` when the directory is not a repository or git is missing."""
    if not text:
        return False
    return _contains_any(text, GIT_UNAVAILABLE_PATTERNS)
