from __future__ import annotations

import logging
from pathlib import Path

import pytest

from conftest import git
from metric_ratchet.git import WorktreeManager, cleanup
from metric_ratchet.git.cleanup import cleanup_orphans, find_orphans


def make_orphan(temp_root: Path, name: str) -> Path:
    path = temp_root / name
    path.mkdir()
    (path / "value.txt").write_text("1\n", encoding="utf-8")
    return path


def test_cleanup_removes_matching_directories(temp_root: Path) -> None:
    first = make_orphan(temp_root, "ratchet-worktree-10-1")
    second = make_orphan(temp_root, "ratchet-worktree-11-2")
    unrelated = make_orphan(temp_root, "something-else")

    report = cleanup_orphans(temp_root)

    assert report.ok
    assert report.cleaned == [first, second]
    assert not first.exists() and not second.exists()
    assert unrelated.exists()


def test_cleanup_removes_registered_worktree(git_repo: Path, temp_root: Path) -> None:
    worktree = WorktreeManager(temp_root=temp_root, repo_root=git_repo).create_worktree("main")

    report = cleanup_orphans(temp_root, repo_root=git_repo)

    assert report.cleaned == [worktree.path]
    assert not worktree.path.exists()
    assert str(worktree.path) not in git(git_repo, "worktree", "list", "--porcelain")


def test_dry_run_leaves_directories(temp_root: Path) -> None:
    orphan = make_orphan(temp_root, "ratchet-worktree-12-3")

    report = cleanup_orphans(temp_root, dry_run=True)

    assert report.cleaned == [orphan]
    assert orphan.exists()


def test_cleanup_collects_errors_and_continues(
    temp_root: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    stuck = make_orphan(temp_root, "ratchet-worktree-1-1")
    removable = make_orphan(temp_root, "ratchet-worktree-2-2")
    real_rmtree = cleanup.shutil.rmtree

    def flaky_rmtree(path, *args, **kwargs):
        if Path(path) == stuck:
            raise PermissionError("locked")
        return real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(cleanup.shutil, "rmtree", flaky_rmtree)

    with caplog.at_level(logging.WARNING, logger="metric_ratchet.git.cleanup"):
        report = cleanup_orphans(temp_root)

    assert not report.ok
    assert report.cleaned == [removable]
    assert len(report.errors) == 1
    assert str(stuck) in report.errors[0]
    assert stuck.exists()
    assert [record.name for record in caplog.records] == ["metric_ratchet.git.cleanup"]


def test_find_orphans_on_empty_root(temp_root: Path) -> None:
    assert find_orphans(temp_root) == []
