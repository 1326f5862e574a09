"""Sweep worktrees left behind by runs that never reached their cleanup."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .worktree import WORKTREE_PREFIX, combined_output, run_git

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CleanupReport:
    """Outcome of an orphan sweep."""

    cleaned: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def find_orphans(temp_root: Path) -> list[Path]:
    return sorted(Path(temp_root).glob(f"{WORKTREE_PREFIX}*"))


def cleanup_orphans(
    temp_root: Path,
    *,
    repo_root: Path | None = None,
    dry_run: bool = False,
) -> CleanupReport:
    """Remove every ``ratchet-worktree-*`` directory under ``temp_root``.

    Each path is first removed through git and, when that fails, deleted from
    disk. A failing path is recorded in the report and the sweep moves on.
    """

    report = CleanupReport()
    for path in find_orphans(temp_root):
        if dry_run:
            report.cleaned.append(path)
            continue

        result = run_git("worktree", "remove", str(path), "--force", cwd=repo_root)
        if result.returncode != 0:
            logger.debug("git could not remove %s: %s", path, combined_output(result))
            try:
                shutil.rmtree(path)
            except OSError as exc:
                report.errors.append(f"failed to remove {path}: {exc}")
                continue
        report.cleaned.append(path)

    if report.errors:
        logger.warning("Orphan cleanup finished with %d error(s)", len(report.errors))
    return report


__all__ = ["CleanupReport", "cleanup_orphans", "find_orphans"]
