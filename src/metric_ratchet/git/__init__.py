"""Git worktree management for base-ref evaluation."""

from .cleanup import CleanupReport, cleanup_orphans, find_orphans
from .worktree import (
    BranchNotFoundError,
    GitError,
    NotAGitRepositoryError,
    Worktree,
    WorktreeCreationError,
    WorktreeManager,
)

__all__ = [
    "BranchNotFoundError",
    "CleanupReport",
    "GitError",
    "NotAGitRepositoryError",
    "Worktree",
    "WorktreeCreationError",
    "WorktreeManager",
    "cleanup_orphans",
    "find_orphans",
]
