"""Per-platform process-group handling for shell commands."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Pause between the graceful and the forceful signal.
TERMINATE_GRACE_SECONDS = 0.1


class ProcessGroup(Protocol):
    """Capability for starting a shell command in its own group and tearing it down."""

    def shell_argv(self, command: str) -> list[str]:
        ...

    def spawn_kwargs(self) -> dict[str, Any]:
        ...

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        ...


class PosixProcessGroup:
    """Runs commands under ``sh -c`` as session leaders and signals the whole group."""

    def __init__(self, *, grace_period: float = TERMINATE_GRACE_SECONDS) -> None:
        self._grace_period = grace_period

    def shell_argv(self, command: str) -> list[str]:
        return ["sh", "-c", command]

    def spawn_kwargs(self) -> dict[str, Any]:
        return {"start_new_session": True}

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        try:
            pgid = os.getpgid(process.pid)
        except ProcessLookupError:
            pgid = None

        if pgid is None:
            try:
                process.kill()
            except ProcessLookupError as exc:
                logger.warning("Failed to kill process %s: %s", process.pid, exc)
            return

        try:
            os.killpg(pgid, signal.SIGTERM)
        except OSError as exc:
            logger.warning("Failed to send SIGTERM to process group %s: %s", pgid, exc)
        await asyncio.sleep(self._grace_period)
        try:
            os.killpg(pgid, signal.SIGKILL)
        except OSError as exc:
            # the group usually exits on SIGTERM
            logger.warning("Failed to send SIGKILL to process group %s: %s", pgid, exc)


class WindowsProcessGroup:
    """Runs commands under ``cmd /C`` in a new process group."""

    def shell_argv(self, command: str) -> list[str]:
        return ["cmd", "/C", command]

    def spawn_kwargs(self) -> dict[str, Any]:
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError as exc:
            logger.warning("Failed to kill process %s: %s", process.pid, exc)


def default_process_group() -> ProcessGroup:
    """Return the process-group implementation for the running platform."""

    if os.name == "nt":
        return WindowsProcessGroup()
    return PosixProcessGroup()


__all__ = [
    "PosixProcessGroup",
    "ProcessGroup",
    "TERMINATE_GRACE_SECONDS",
    "WindowsProcessGroup",
    "default_process_group",
]
