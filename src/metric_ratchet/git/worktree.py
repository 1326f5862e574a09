"""Temporary git worktrees for evaluating the base ref."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from ..config import RatchetSettings

logger = logging.getLogger(__name__)

WORKTREE_PREFIX = "ratchet-worktree-"

# git reports either message when a branch is checked out in another worktree
_ALREADY_CHECKED_OUT = ("is already used by worktree", "is already checked out")


class GitError(RuntimeError):
    """Base class for git-related failures."""


class NotAGitRepositoryError(GitError):
    """Raised when the working directory is not inside a git repository."""


class BranchNotFoundError(GitError):
    """Raised when a ref exists neither locally nor on ``origin``."""


class WorktreeCreationError(GitError):
    """Raised when ``git worktree add`` fails."""


def run_git(*args: str, cwd: str | Path | None = None) -> subprocess.CompletedProcess:
    """Run a git command and return the result without raising."""
    cmd = ["git", *args]
    logger.debug("git %s", " ".join(args))
    return subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        stdin=subprocess.DEVNULL,
        check=False,
    )


def combined_output(result: subprocess.CompletedProcess) -> str:
    return f"{result.stdout or ''}{result.stderr or ''}".strip()


@dataclass
class Worktree:
    """A checked-out copy of a ref under the temp root.

    :meth:`release` is the worktree's release handle. The first call removes
    it; subsequent calls do nothing.
    """

    path: Path
    ref: str
    detached: bool = False
    repo_root: Path | None = None
    _released: bool = field(default=False, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            remove_worktree_path(self.path, repo_root=self.repo_root)


def remove_worktree_path(path: Path, *, repo_root: Path | None = None) -> bool:
    """Remove a worktree via git, then from disk. Failures are logged only.

    Returns ``True`` when nothing is left at ``path``.
    """

    result = run_git("worktree", "remove", str(path), "--force", cwd=repo_root)
    if result.returncode != 0:
        logger.warning("Failed to remove git worktree %s: %s", path, combined_output(result))
    if path.exists():
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Failed to remove worktree directory %s: %s", path, exc)
            return False
    return True


class WorktreeManager:
    """Resolves refs and creates disposable worktrees for them."""

    def __init__(
        self,
        *,
        temp_root: Path,
        base_ref_override: str | None = None,
        repo_root: Path | None = None,
    ) -> None:
        self._temp_root = Path(temp_root)
        self._base_ref_override = base_ref_override
        self._repo_root = repo_root

    @classmethod
    def from_settings(
        cls, settings: RatchetSettings, *, repo_root: Path | None = None
    ) -> "WorktreeManager":
        return cls(
            temp_root=settings.temp_root,
            base_ref_override=settings.github_base_ref,
            repo_root=repo_root,
        )

    @property
    def temp_root(self) -> Path:
        return self._temp_root

    def is_repository(self) -> bool:
        return run_git("rev-parse", "--git-dir", cwd=self._repo_root).returncode == 0

    def require_repository(self) -> None:
        if not self.is_repository():
            raise NotAGitRepositoryError("not a git repository")

    def current_branch(self) -> str:
        """Return the checked-out branch name, or ``HEAD`` when it cannot be resolved."""

        result = run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=self._repo_root)
        name = result.stdout.strip() if result.returncode == 0 else ""
        return name or "HEAD"

    def ref_exists(self, ref: str) -> bool:
        return run_git("rev-parse", "--verify", "--quiet", ref, cwd=self._repo_root).returncode == 0

    def ensure_branch(self, ref: str) -> str:
        """Make sure ``ref`` can be checked out, fetching it from ``origin`` if needed.

        Returns the ref to hand to :meth:`create_worktree`. When the local
        lookup fails for ``main`` and a CI base-ref override is configured,
        the override is fetched instead so pull-request targets are respected.
        """

        if self.ref_exists(ref):
            return ref

        if ref == "main" and self._base_ref_override:
            logger.info("Using CI base ref %s in place of main", self._base_ref_override)
            ref = self._base_ref_override
            if self.ref_exists(ref):
                return ref

        name = ref.removeprefix("origin/")
        remote_ref = f"origin/{name}"
        fetch = run_git("fetch", "origin", name, cwd=self._repo_root)
        if fetch.returncode != 0:
            raise BranchNotFoundError(
                f"failed to fetch branch {ref}: {combined_output(fetch)}"
            )
        if not self.ref_exists(remote_ref):
            raise BranchNotFoundError(f"branch {ref} not found locally or on remote")
        return ref

    def new_worktree_path(self) -> Path:
        return self._temp_root / f"{WORKTREE_PREFIX}{os.getpid()}-{time.time_ns()}"

    def create_worktree(self, ref: str) -> Worktree:
        """Check ``ref`` out into a fresh directory under the temp root.

        A branch that is already checked out elsewhere (commonly the invoking
        worktree itself) is checked out detached at the same commit instead.
        """

        path = self.new_worktree_path()
        target = ref
        if not ref.startswith("origin/") and not self.ref_exists(ref):
            target = f"origin/{ref}"

        result = run_git("worktree", "add", str(path), target, cwd=self._repo_root)
        detached = False
        if result.returncode != 0:
            output = combined_output(result)
            if not any(marker in output for marker in _ALREADY_CHECKED_OUT):
                raise WorktreeCreationError(f"failed to create worktree: {output}")
            logger.debug("%s is checked out elsewhere; retrying detached", target)
            retry = run_git("worktree", "add", "--detach", str(path), target, cwd=self._repo_root)
            if retry.returncode != 0:
                raise WorktreeCreationError(
                    f"failed to create worktree: {combined_output(retry)}"
                )
            detached = True

        logger.info("Created worktree for %s at %s", target, path)
        return Worktree(path=path, ref=target, detached=detached, repo_root=self._repo_root)


__all__ = [
    "BranchNotFoundError",
    "GitError",
    "NotAGitRepositoryError",
    "WORKTREE_PREFIX",
    "Worktree",
    "WorktreeCreationError",
    "WorktreeManager",
    "remove_worktree_path",
]
