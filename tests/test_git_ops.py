"""Unit tests for taskenv.git_ops against real temporary git repos."""

from __future__ import annotations

import subprocess
from pathlib import Path

from taskenv import git_ops


# ── helpers ──────────────────────────────────────────────────────────


def _commit_file(repo: Path, name: str, content: str, msg: str) -> None:
    (repo / name).write_text(content)
    subprocess.run(["git", "add", name], cwd=repo, capture_output=True, check=True)
    subprocess.run(["git", "commit", "-m", msg], cwd=repo, capture_output=True, check=True)


# ── TestBasicBranchOps ───────────────────────────────────────────────


class TestBasicBranchOps:
    def test_current_branch(self, git_repo: Path) -> None:
        assert git_ops.current_branch(cwd=git_repo)

    def test_is_git_repo(self, git_repo: Path, tmp_path: Path) -> None:
        assert git_ops.is_git_repo(cwd=git_repo)
        plain = tmp_path / "plain"
        plain.mkdir()
        assert not git_ops.is_git_repo(cwd=plain)

    def test_branch_exists_false(self, git_repo: Path) -> None:
        assert not git_ops.branch_exists("nonexistent-branch", cwd=git_repo)

    def test_delete_branch_force(self, git_repo: Path) -> None:
        subprocess.run(["git", "branch", "task/x"], cwd=git_repo, capture_output=True, check=True)
        assert git_ops.branch_exists("task/x", cwd=git_repo)
        assert git_ops.delete_branch("task/x", force=True, cwd=git_repo)
        assert not git_ops.branch_exists("task/x", cwd=git_repo)

    def test_dirty_detection(self, git_repo: Path) -> None:
        assert not git_ops.has_dirty_worktree(cwd=git_repo)
        (git_repo / "new.txt").write_text("x")
        assert git_ops.has_dirty_worktree(cwd=git_repo)
        assert git_ops.dirty_worktree_entries(cwd=git_repo) == ["?? new.txt"]

    def test_missing_cwd_reports_failure(self, tmp_path: Path) -> None:
        r = git_ops._git("status", cwd=tmp_path / "does-not-exist")
        assert r.returncode != 0


# ── TestWorktrees ────────────────────────────────────────────────────


class TestWorktrees:
    def test_add_new_branch_and_list(self, git_repo: Path, tmp_path: Path) -> None:
        base = git_ops.current_branch(cwd=git_repo)
        wt = tmp_path / "wts" / "a"
        r = git_ops.worktree_add_new_branch(wt, "task/a", base, cwd=git_repo)
        assert r.returncode == 0, r.stderr
        entries = git_ops.worktree_list(cwd=git_repo)
        assert len(entries) == 2
        added = [e for e in entries if e.branch == "task/a"]
        assert added and added[0].path.resolve() == wt.resolve()

    def test_add_existing_branch(self, git_repo: Path, tmp_path: Path) -> None:
        subprocess.run(["git", "branch", "task/b"], cwd=git_repo, capture_output=True, check=True)
        r = git_ops.worktree_add(tmp_path / "b", "task/b", cwd=git_repo)
        assert r.returncode == 0, r.stderr
        assert (tmp_path / "b" / "README.md").exists()

    def test_second_add_collides(self, git_repo: Path, tmp_path: Path) -> None:
        base = git_ops.current_branch(cwd=git_repo)
        git_ops.worktree_add_new_branch(tmp_path / "c", "task/c", base, cwd=git_repo)
        r = git_ops.worktree_add_new_branch(tmp_path / "c", "task/c", base, cwd=git_repo)
        assert r.returncode != 0
        assert "already exists" in r.stderr

    def test_remove_and_prune(self, git_repo: Path, tmp_path: Path) -> None:
        base = git_ops.current_branch(cwd=git_repo)
        wt = tmp_path / "d"
        git_ops.worktree_add_new_branch(wt, "task/d", base, cwd=git_repo)
        assert git_ops.worktree_remove(wt, cwd=git_repo).returncode == 0
        git_ops.worktree_prune(cwd=git_repo)
        assert not wt.exists()
        assert len(git_ops.worktree_list(cwd=git_repo)) == 1
        assert git_ops.branch_exists("task/d", cwd=git_repo)

    def test_remove_dirty_needs_force(self, git_repo: Path, tmp_path: Path) -> None:
        base = git_ops.current_branch(cwd=git_repo)
        wt = tmp_path / "e"
        git_ops.worktree_add_new_branch(wt, "task/e", base, cwd=git_repo)
        (wt / "README.md").write_text("changed")
        assert git_ops.worktree_remove(wt, cwd=git_repo).returncode != 0
        assert git_ops.worktree_remove(wt, force=True, cwd=git_repo).returncode == 0


class TestParseWorktreeList:
    def test_porcelain_records(self) -> None:
        output = (
            "worktree /repo\n"
            "HEAD 1111111111111111111111111111111111111111\n"
            "branch refs/heads/main\n"
            "\n"
            "worktree /repo.worktrees/auth-05A\n"
            "HEAD 2222222222222222222222222222222222222222\n"
            "branch refs/heads/task/auth-05A\n"
            "\n"
            "worktree /tmp/detached\n"
            "HEAD 3333333333333333333333333333333333333333\n"
            "detached\n"
            "prunable gitdir file points to non-existent location\n"
        )
        entries = git_ops.parse_worktree_list(output)
        assert [e.path for e in entries] == [Path("/repo"), Path("/repo.worktrees/auth-05A"), Path("/tmp/detached")]
        assert entries[1].branch == "task/auth-05A"
        assert entries[2].branch is None
        assert entries[2].detached and entries[2].prunable

    def test_bare_and_empty(self) -> None:
        assert git_ops.parse_worktree_list("") == []
        entries = git_ops.parse_worktree_list("worktree /srv/repo.git\nbare\n")
        assert entries[0].bare
