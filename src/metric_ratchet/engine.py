"""Orchestrates metric evaluation on the base ref and the current checkout."""

from __future__ import annotations

import asyncio
import enum
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from .config import RatchetSettings
from .execution import CommandFailedError, CommandInterruptedError, CommandRunner
from .git import BranchNotFoundError, WorktreeCreationError, WorktreeManager
from .numbers import NonNumericOutputError, format_number, parse_number
from .options import Options
from .progress import CURRENT_LABEL, ProgressState
from .signals import CancellationCoordinator

logger = logging.getLogger(__name__)

METRIC_TEST_FAILED = "metric test failed"


class MetricTestFailedError(RuntimeError):
    """Raised by :func:`run` when the ratchet fails or could not be evaluated."""

    def __init__(self, outcome: "RunOutcome | None" = None) -> None:
        super().__init__(METRIC_TEST_FAILED)
        self.outcome = outcome


class FailureReason(enum.Enum):
    PRE_FAILED = "pre_failed"
    METRIC_FAILED = "metric_failed"
    POST_FAILED = "post_failed"
    BRANCH_NOT_FOUND = "branch_not_found"
    WORKTREE_FAILED = "worktree_failed"
    NON_NUMERIC = "non_numeric"
    COMPARISON_NOT_SATISFIED = "comparison_not_satisfied"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """Terminal result of one run."""

    status: str
    value: float | None = None
    base_value: float | None = None
    reason: FailureReason | None = None
    branch: str | None = None

    @classmethod
    def reported(cls, value: float) -> "RunOutcome":
        return cls(status="reported", value=value)

    @classmethod
    def passed(cls, value: float, base_value: float) -> "RunOutcome":
        return cls(status="passed", value=value, base_value=base_value)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        *,
        branch: str | None = None,
        value: float | None = None,
        base_value: float | None = None,
    ) -> "RunOutcome":
        return cls(
            status="failed", value=value, base_value=base_value, reason=reason, branch=branch
        )

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class Phase(enum.Enum):
    NOT_STARTED = "not_started"
    PRE_RUNNING = "pre_running"
    PRE_DONE = "pre_done"
    PRE_FAILED = "pre_failed"
    METRIC_RUNNING = "metric_running"
    METRIC_DONE = "metric_done"
    METRIC_FAILED = "metric_failed"
    POST_RUNNING = "post_running"
    POST_DONE = "post_done"
    POST_FAILED = "post_failed"
    COMPLETE = "complete"


# A skipped stage moves straight to its done phase.
_TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.NOT_STARTED: frozenset({Phase.PRE_RUNNING, Phase.PRE_DONE}),
    Phase.PRE_RUNNING: frozenset({Phase.PRE_DONE, Phase.PRE_FAILED}),
    Phase.PRE_DONE: frozenset({Phase.METRIC_RUNNING}),
    Phase.METRIC_RUNNING: frozenset({Phase.METRIC_DONE, Phase.METRIC_FAILED}),
    Phase.METRIC_DONE: frozenset({Phase.POST_RUNNING, Phase.POST_DONE}),
    Phase.POST_RUNNING: frozenset({Phase.POST_DONE, Phase.POST_FAILED}),
    Phase.POST_DONE: frozenset({Phase.COMPLETE}),
}


class Stage(enum.Enum):
    PRE = "pre"
    METRIC = "metric"
    POST = "post"

    @property
    def running(self) -> Phase:
        return Phase(f"{self.value}_running")

    @property
    def done(self) -> Phase:
        return Phase(f"{self.value}_done")

    @property
    def failed(self) -> Phase:
        return Phase(f"{self.value}_failed")

    @property
    def failure_reason(self) -> FailureReason:
        return FailureReason(f"{self.value}_failed")

    def describe_failure(self, command: str, branch: str) -> str:
        if self is Stage.METRIC:
            return f"Metric command '{command}' failed in {branch}"
        return f"Command '{command}' failed in {branch}"


@dataclass(slots=True)
class CodeState:
    """One side of the comparison: where to run and how far it got."""

    label: str
    branch: str
    working_dir: Path | None
    progress: ProgressState
    phase: Phase = Phase.NOT_STARTED
    output: str = field(default="", repr=False)

    def advance(self, phase: Phase) -> None:
        if phase not in _TRANSITIONS.get(self.phase, frozenset()):
            raise RuntimeError(
                f"illegal transition {self.phase.name} -> {phase.name} for {self.label}"
            )
        logger.debug("%s: %s -> %s", self.label, self.phase.name, phase.name)
        self.phase = phase


class RatchetEngine:
    """Runs pre, metric and post on the base ref and then on the current checkout."""

    def __init__(
        self,
        options: Options,
        *,
        worktrees: WorktreeManager,
        runner: CommandRunner | None = None,
        coordinator: CancellationCoordinator | None = None,
        working_dir: Path | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._options = options
        self._worktrees = worktrees
        self._runner = runner or CommandRunner()
        self._coordinator = coordinator or CancellationCoordinator()
        self._working_dir = working_dir
        self._stdout = stdout
        self._stderr = stderr
        self._branch_name: str | None = None

    @property
    def _cancel(self) -> asyncio.Event:
        return self._coordinator.cancelled

    @property
    def _show_progress(self) -> bool:
        return self._options.verbose and self._options.compares

    def _out(self, text: str = "", *, end: str = "\n") -> None:
        print(text, end=end, file=self._stdout or sys.stdout, flush=True)

    def _err(self, text: str) -> None:
        print(text, file=self._stderr or sys.stderr, flush=True)

    def _check_cancel(self) -> None:
        if self._cancel.is_set():
            raise CommandInterruptedError("command interrupted")

    async def _current_branch(self) -> str:
        if self._branch_name is None:
            self._branch_name = await asyncio.to_thread(self._worktrees.current_branch)
        return self._branch_name

    async def _display_branch(self, state: CodeState) -> str:
        if state.label == CURRENT_LABEL:
            return await self._current_branch()
        return state.branch

    def _new_progress(self) -> ProgressState:
        return ProgressState(has_pre=bool(self._options.pre), has_post=bool(self._options.post))

    def _stages(self) -> list[tuple[Stage, str]]:
        opts = self._options
        return [(Stage.PRE, opts.pre), (Stage.METRIC, opts.metric), (Stage.POST, opts.post)]

    async def evaluate(self) -> RunOutcome:
        """Run the whole comparison and return its outcome.

        Interrupts surface as ``SystemExit(130)`` from the coordinator after the
        base worktree has been released.
        """

        async with self._coordinator:
            if not self._options.compares:
                return await self._report_only()
            return await self._compare()

    async def _report_only(self) -> RunOutcome:
        current = CodeState(
            label=CURRENT_LABEL,
            branch=CURRENT_LABEL,
            working_dir=self._working_dir,
            progress=self._new_progress(),
        )
        failure = await self._evaluate(current)
        if failure is not None:
            return failure
        try:
            value = parse_number(current.output)
        except NonNumericOutputError:
            return await self._non_numeric(current)
        self._out(format_number(value))
        return RunOutcome.reported(value)

    async def _compare(self) -> RunOutcome:
        opts = self._options
        await asyncio.to_thread(self._worktrees.require_repository)
        self._check_cancel()

        try:
            ref = await asyncio.to_thread(self._worktrees.ensure_branch, opts.base_ref)
        except BranchNotFoundError as exc:
            self._err(f"Base branch '{opts.base_ref}' not found")
            self._err(str(exc))
            self._err("Failed")
            return RunOutcome.failed(FailureReason.BRANCH_NOT_FOUND, branch=opts.base_ref)
        self._check_cancel()

        try:
            worktree = await asyncio.to_thread(self._worktrees.create_worktree, ref)
        except WorktreeCreationError as exc:
            self._err(f"Failed to create worktree for branch '{opts.base_ref}'")
            self._err(str(exc))
            self._err("Failed")
            return RunOutcome.failed(FailureReason.WORKTREE_FAILED, branch=opts.base_ref)

        self._coordinator.register(worktree.release)
        try:
            self._check_cancel()
            return await self._compare_in(worktree.path)
        finally:
            self._coordinator.unregister(worktree.release)
            worktree.release()

    async def _compare_in(self, base_dir: Path) -> RunOutcome:
        opts = self._options
        base = CodeState(
            label=opts.base_ref,
            branch=opts.base_ref,
            working_dir=base_dir,
            progress=self._new_progress(),
        )
        current = CodeState(
            label=CURRENT_LABEL,
            branch=await self._current_branch(),
            working_dir=self._working_dir,
            progress=self._new_progress(),
        )

        failure = await self._evaluate(base, following=current)
        if failure is not None:
            return failure
        failure = await self._evaluate(current)
        if failure is not None:
            return failure

        try:
            base_value = parse_number(base.output)
        except NonNumericOutputError:
            return await self._non_numeric(base)
        try:
            current_value = parse_number(current.output)
        except NonNumericOutputError:
            return await self._non_numeric(current)

        return self._verdict(current.branch, current_value, base_value)

    async def _evaluate(
        self, state: CodeState, *, following: CodeState | None = None
    ) -> RunOutcome | None:
        """Drive one code state through pre, metric and post.

        Returns a failed outcome when a stage fails and ``None`` once the state
        is complete. ``following`` is the code state that will not get to run
        and is rendered untouched under a failing one.
        """

        base_label = self._options.base_ref
        show = self._show_progress
        if show:
            self._out(state.progress.render(state.label, base_label), end="")

        for stage, command in self._stages():
            self._check_cancel()
            if not command:
                state.advance(stage.done)
                continue

            state.advance(stage.running)
            try:
                output = await self._runner.execute(
                    command, state.working_dir, cancel=self._cancel
                )
            except CommandFailedError as exc:
                state.advance(stage.failed)
                if show:
                    self._out("\r" + state.progress.render(state.label, base_label))
                    if following is not None:
                        self._out(following.progress.render(following.label, base_label))
                    self._out()
                branch = await self._display_branch(state)
                self._err(stage.describe_failure(command, branch))
                self._err(str(exc))
                self._err("Failed")
                return RunOutcome.failed(stage.failure_reason, branch=branch)

            if stage is Stage.PRE:
                state.progress.pre_done = True
            elif stage is Stage.METRIC:
                state.progress.metric_done = True
                state.output = output
            else:
                state.progress.post_done = True
            state.advance(stage.done)
            if show:
                self._out("\r" + state.progress.render(state.label, base_label), end="")

        state.advance(Phase.COMPLETE)
        if show:
            self._out()
        return None

    async def _non_numeric(self, state: CodeState) -> RunOutcome:
        branch = await self._display_branch(state)
        self._err(f"command output from {branch} is not a number: '{state.output}'")
        self._err("Failed")
        return RunOutcome.failed(FailureReason.NON_NUMERIC, branch=branch)

    def _verdict(self, branch: str, current_value: float, base_value: float) -> RunOutcome:
        opts = self._options
        comparison = opts.comparison
        passed = comparison.holds(current_value, base_value)
        relation = comparison.relation if passed else f"NOT {comparison.relation}"
        detail = (
            f"{branch} metric ({format_number(current_value)}) is {relation} "
            f"{opts.base_ref} ({format_number(base_value)})"
        )

        if passed:
            if opts.verbose:
                self._out()
                self._out(detail)
            self._out("Succeeded")
            return RunOutcome.passed(current_value, base_value)

        if opts.verbose:
            self._out()
        self._err(detail)
        self._err("Failed")
        return RunOutcome.failed(
            FailureReason.COMPARISON_NOT_SATISFIED,
            branch=branch,
            value=current_value,
            base_value=base_value,
        )


async def run_async(
    options: Options,
    *,
    settings: RatchetSettings | None = None,
    worktrees: WorktreeManager | None = None,
    runner: CommandRunner | None = None,
    working_dir: Path | None = None,
) -> RunOutcome:
    settings = settings or RatchetSettings()
    engine = RatchetEngine(
        options,
        worktrees=worktrees or WorktreeManager.from_settings(settings, repo_root=working_dir),
        runner=runner,
        working_dir=working_dir,
    )
    return await engine.evaluate()


def run(
    options: Options,
    *,
    settings: RatchetSettings | None = None,
    worktrees: WorktreeManager | None = None,
    runner: CommandRunner | None = None,
    working_dir: Path | None = None,
) -> None:
    """Run the ratchet and raise :class:`MetricTestFailedError` unless it passed.

    Report-only runs and passing comparisons return ``None``. Anything that
    is not a failed ratchet (a missing repository, for example) propagates
    as its own exception type.
    """

    outcome = asyncio.run(
        run_async(
            options,
            settings=settings,
            worktrees=worktrees,
            runner=runner,
            working_dir=working_dir,
        )
    )
    if not outcome.ok:
        raise MetricTestFailedError(outcome)


__all__ = [
    "CodeState",
    "FailureReason",
    "METRIC_TEST_FAILED",
    "MetricTestFailedError",
    "Phase",
    "RatchetEngine",
    "RunOutcome",
    "Stage",
    "run",
    "run_async",
]
