from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from metric_ratchet.execution import platform
from metric_ratchet.execution.platform import (
    PosixProcessGroup,
    WindowsProcessGroup,
    default_process_group,
)
from metric_ratchet.execution.runner import (
    CommandExecutionResult,
    CommandFailedError,
    CommandInterruptedError,
    CommandRunner,
    FakeCommandRunner,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="requires a POSIX shell")


def _alive(pid: int) -> bool:
    stat = Path(f"/proc/{pid}/stat")
    if Path("/proc").is_dir():
        try:
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except (OSError, IndexError):
            return False
        # zombies are dead, just not yet reaped
        return state != "Z"
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@posix_only
def test_execute_returns_trimmed_stdout() -> None:
    runner = CommandRunner()
    output = asyncio.run(runner.execute("printf '  42  \\n\\n'"))

    assert output == "42"


@posix_only
def test_execute_supports_shell_syntax() -> None:
    runner = CommandRunner()
    output = asyncio.run(runner.execute("echo abc | tr a-c x-z && echo done"))

    assert output.splitlines() == ["xyz", "done"]


@posix_only
def test_execute_runs_in_working_dir(tmp_path: Path) -> None:
    (tmp_path / "marker.txt").write_text("7\n", encoding="utf-8")
    runner = CommandRunner()

    output = asyncio.run(runner.execute("cat marker.txt", tmp_path))

    assert output == "7"


@posix_only
def test_execute_empty_working_dir_uses_process_cwd(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "here.txt").write_text("yes", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    runner = CommandRunner()

    assert asyncio.run(runner.execute("cat here.txt", "")) == "yes"


@posix_only
def test_failed_command_embeds_stderr() -> None:
    runner = CommandRunner()

    with pytest.raises(CommandFailedError) as excinfo:
        asyncio.run(runner.execute("echo partial; echo '  boom  ' >&2; exit 3"))

    message = str(excinfo.value)
    assert "exit status 3" in message
    assert message.endswith("stderr: boom")


@posix_only
def test_failed_command_without_stderr() -> None:
    runner = CommandRunner()

    with pytest.raises(CommandFailedError) as excinfo:
        asyncio.run(runner.execute("exit 1"))

    assert str(excinfo.value) == "command failed: exit status 1"


def test_missing_working_dir_reports_start_failure(tmp_path: Path) -> None:
    runner = CommandRunner()

    with pytest.raises(CommandFailedError) as excinfo:
        asyncio.run(runner.execute("echo hi", tmp_path / "missing"))

    assert "failed to start command" in str(excinfo.value)


@posix_only
def test_cancel_terminates_whole_process_group(tmp_path: Path) -> None:
    pid_file = tmp_path / "child.pid"
    runner = CommandRunner()

    async def scenario() -> None:
        cancel = asyncio.Event()

        async def trip() -> None:
            while not pid_file.exists() or not pid_file.read_text().strip():
                await asyncio.sleep(0.02)
            cancel.set()

        tripper = asyncio.ensure_future(trip())
        try:
            await runner.execute(
                f"sleep 30 & echo $! > {pid_file}; wait", tmp_path, cancel=cancel
            )
        finally:
            tripper.cancel()

    started = time.monotonic()
    with pytest.raises(CommandInterruptedError):
        asyncio.run(scenario())
    assert time.monotonic() - started < 10

    grandchild = int(pid_file.read_text().strip())
    deadline = time.monotonic() + 3
    while _alive(grandchild) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not _alive(grandchild)


def test_already_cancelled_never_starts(tmp_path: Path) -> None:
    marker = tmp_path / "ran"
    runner = CommandRunner()

    async def scenario() -> None:
        cancel = asyncio.Event()
        cancel.set()
        await runner.execute(f"touch {marker}", tmp_path, cancel=cancel)

    with pytest.raises(CommandInterruptedError):
        asyncio.run(scenario())
    assert not marker.exists()


def test_interrupted_is_not_a_command_failure() -> None:
    assert not issubclass(CommandInterruptedError, CommandFailedError)


def test_fake_runner_records_invocations() -> None:
    fake = FakeCommandRunner(
        [
            CommandExecutionResult(command="metric", returncode=0, stdout=" 9 \n", stderr=""),
            CommandExecutionResult(command="post", returncode=2, stdout="", stderr="nope"),
        ]
    )

    async def scenario() -> str:
        value = await fake.execute("metric", "/tmp/base")
        with pytest.raises(CommandFailedError):
            await fake.execute("post")
        return value

    assert asyncio.run(scenario()) == "9"
    assert fake.invocations == [("metric", "/tmp/base"), ("post", None)]


def test_posix_process_group_spawns_session_leader() -> None:
    group = PosixProcessGroup()

    assert group.shell_argv("echo 1") == ["sh", "-c", "echo 1"]
    assert group.spawn_kwargs() == {"start_new_session": True}


def test_windows_process_group_uses_cmd() -> None:
    group = WindowsProcessGroup()

    assert group.shell_argv("echo 1") == ["cmd", "/C", "echo 1"]
    assert "creationflags" in group.spawn_kwargs()


def test_default_process_group_follows_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(platform.os, "name", "nt")
    assert isinstance(default_process_group(), WindowsProcessGroup)
    monkeypatch.setattr(platform.os, "name", "posix")
    assert isinstance(default_process_group(), PosixProcessGroup)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_terminate_tolerates_exited_group() -> None:
    group = PosixProcessGroup(grace_period=0)

    async def scenario() -> None:
        process = await asyncio.create_subprocess_exec(
            "true", **group.spawn_kwargs()
        )
        await process.wait()
        await group.terminate(process)

    asyncio.run(scenario())
