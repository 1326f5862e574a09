"""Async runner for user-supplied shell commands."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .platform import ProcessGroup, default_process_group

logger = logging.getLogger(__name__)


class CommandRunnerError(RuntimeError):
    """Base class for command runner errors."""


class CommandFailedError(CommandRunnerError):
    """Raised when a command cannot be started or exits non-zero."""


class CommandInterruptedError(CommandRunnerError):
    """Raised when a command is cancelled before it finishes."""


@dataclass(slots=True)
class CommandExecutionResult:
    """Holds the outcome of a shell command invocation."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _describe_exit(returncode: int) -> str:
    if returncode < 0:
        return f"terminated by signal {-returncode}"
    return f"exit status {returncode}"


class CommandRunner:
    """Execute shell commands in their own process group, one at a time."""

    def __init__(self, process_group: ProcessGroup | None = None) -> None:
        self._process_group = process_group or default_process_group()

    async def execute(
        self,
        command: str,
        working_dir: Path | str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Run ``command`` and return its trimmed stdout.

        Raises :class:`CommandFailedError` on a non-zero exit, with trimmed
        stderr appended when there is any, and :class:`CommandInterruptedError`
        when ``cancel`` is set before the command exits.
        """

        result = await self._invoke(command, working_dir, cancel)
        if not result.ok:
            message = f"command failed: {_describe_exit(result.returncode)}"
            stderr = result.stderr.strip()
            if stderr:
                message = f"{message}\nstderr: {stderr}"
            raise CommandFailedError(message)
        return result.stdout.strip()

    async def _invoke(
        self,
        command: str,
        working_dir: Path | str | None,
        cancel: asyncio.Event | None,
    ) -> CommandExecutionResult:
        if cancel is not None and cancel.is_set():
            raise CommandInterruptedError("command interrupted")

        argv = self._process_group.shell_argv(command)
        cwd = str(working_dir) if working_dir else None
        logger.debug("Running %r in %s", command, cwd or ".")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                **self._process_group.spawn_kwargs(),
            )
        except OSError as exc:
            raise CommandFailedError(f"failed to start command: {exc}") from exc

        wait_task = asyncio.ensure_future(process.communicate())
        cancel_task = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        try:
            pending = {wait_task} if cancel_task is None else {wait_task, cancel_task}
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._process_group.terminate(process)
            await wait_task
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        if wait_task not in done:
            await self._process_group.terminate(process)
            await wait_task
            raise CommandInterruptedError("command interrupted")

        stdout_bytes, stderr_bytes = wait_task.result()
        return CommandExecutionResult(
            command=command,
            returncode=process.returncode,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )


class FakeCommandRunner(CommandRunner):
    """Test double that returns scripted results instead of spawning processes."""

    def __init__(self, responses: Iterable[CommandExecutionResult] | None = None) -> None:
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, str | None]] = []

    async def _invoke(  # type: ignore[override]
        self,
        command: str,
        working_dir: Path | str | None,
        cancel: asyncio.Event | None,
    ) -> CommandExecutionResult:
        if cancel is not None and cancel.is_set():
            raise CommandInterruptedError("command interrupted")
        self._invocations.append((command, str(working_dir) if working_dir else None))
        if self._responses:
            return self._responses.pop(0)
        return CommandExecutionResult(command=command, returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, str | None]]:
        return self._invocations


__all__ = [
    "CommandExecutionResult",
    "CommandFailedError",
    "CommandInterruptedError",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
]
