"""Tests for taskenv.tasks.fields canonicalization tables."""

from __future__ import annotations

import pytest

from taskenv.errors import FieldError
from taskenv.tasks.fields import (
    is_completed_status,
    normalize_frontmatter,
    normalize_priority,
    normalize_status,
    normalize_type,
    normalize_workflow_state,
    priority_rank,
)


class TestNormalizeStatus:
    @pytest.mark.parametrize("raw", ["todo", "To Do", "to-do", "TODO", "🟡 To Do", "  open  "])
    def test_todo_variants(self, raw: str) -> None:
        assert normalize_status(raw) == "todo"

    @pytest.mark.parametrize("raw", ["in-progress", "In Progress", "in_progress", "WIP", "🔵 In Progress"])
    def test_in_progress_variants(self, raw: str) -> None:
        assert normalize_status(raw) == "in-progress"

    def test_done_aliases(self) -> None:
        assert normalize_status("complete") == "done"
        assert normalize_status("Done") == "done"

    def test_empty_uses_default(self) -> None:
        assert normalize_status(None) == "todo"
        assert normalize_status("") == "todo"

    def test_unknown_raises(self) -> None:
        with pytest.raises(FieldError, match="Invalid status"):
            normalize_status("sort of done")


class TestOtherFields:
    def test_type_aliases(self) -> None:
        assert normalize_type("Bug") == "bug"
        assert normalize_type("docs") == "documentation"
        assert normalize_type(None) == "chore"

    def test_type_unknown_lists_valid_options(self) -> None:
        with pytest.raises(FieldError) as exc:
            normalize_type("epic")
        assert "feature" in str(exc.value)

    def test_priority(self) -> None:
        assert normalize_priority("High") == "high"
        assert normalize_priority("p0") == "highest"
        assert normalize_priority(None) == "medium"

    def test_workflow_state(self) -> None:
        assert normalize_workflow_state("Current") == "current"
        assert normalize_workflow_state("archived") == "archive"

    def test_frontmatter_leaves_custom_keys(self) -> None:
        fm = normalize_frontmatter({"type": "Feature", "status": "In Progress", "area": "ui", "estimate": 3})
        assert fm == {"type": "feature", "status": "in-progress", "area": "ui", "estimate": 3}

    def test_frontmatter_does_not_mutate_input(self) -> None:
        original = {"status": "To Do"}
        normalize_frontmatter(original)
        assert original == {"status": "To Do"}


class TestHelpers:
    def test_completed_status(self) -> None:
        assert is_completed_status("Done")
        assert is_completed_status("archived")
        assert not is_completed_status("todo")
        assert not is_completed_status("nonsense")

    def test_priority_rank_orders_levels(self) -> None:
        assert priority_rank("highest") > priority_rank("high") > priority_rank("medium") > priority_rank("low")
        assert priority_rank(None) == 0
        assert priority_rank("bogus") == 0
