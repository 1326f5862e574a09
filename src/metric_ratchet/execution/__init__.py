"""Shell command execution with process-group cancellation."""

from .platform import PosixProcessGroup, ProcessGroup, WindowsProcessGroup, default_process_group
from .runner import (
    CommandExecutionResult,
    CommandFailedError,
    CommandInterruptedError,
    CommandRunner,
    CommandRunnerError,
    FakeCommandRunner,
)

__all__ = [
    "CommandExecutionResult",
    "CommandFailedError",
    "CommandInterruptedError",
    "CommandRunner",
    "CommandRunnerError",
    "FakeCommandRunner",
    "PosixProcessGroup",
    "ProcessGroup",
    "WindowsProcessGroup",
    "default_process_group",
]
