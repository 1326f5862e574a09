from __future__ import annotations

import subprocess
from pathlib import Path

import pytest


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def commit_value(repo: Path, value: str, message: str) -> None:
    (repo / "value.txt").write_text(f"{value}\n", encoding="utf-8")
    git(repo, "add", "value.txt")
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Repository with ``main`` holding value 3 and ``feature`` (checked out) holding 5."""

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.email", "ratchet@example.com")
    git(repo, "config", "user.name", "Ratchet Tests")
    git(repo, "config", "commit.gpgsign", "false")
    commit_value(repo, "3", "base value")
    git(repo, "checkout", "-q", "-b", "feature")
    commit_value(repo, "5", "raise value")
    return repo


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    root = tmp_path / "worktrees"
    root.mkdir()
    return root
