"""Interrupt handling for a single ratchet run."""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

# Conventional status for a process terminated by SIGINT.
INTERRUPTED_EXIT_CODE = 130

ReleaseHandle = Callable[[], None]


class CancellationCoordinator:
    """Owns the run's cancel event and the single registered release handle.

    Used as an async context manager around the whole run. On SIGINT or
    SIGTERM the cancel event is set and the registered handle is invoked.
    Leaving the context after a signal releases anything still registered and
    raises ``SystemExit(130)``.
    """

    def __init__(
        self,
        *,
        signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM),
        exit_code: int = INTERRUPTED_EXIT_CODE,
    ) -> None:
        self.cancelled = asyncio.Event()
        self.received: int | None = None
        self._signals = tuple(signals)
        self._exit_code = exit_code
        self._handle: ReleaseHandle | None = None
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[tuple[int, object]] = []

    def register(self, handle: ReleaseHandle) -> None:
        with self._lock:
            self._handle = handle

    def unregister(self, handle: ReleaseHandle | None = None) -> None:
        with self._lock:
            if handle is None or self._handle == handle:
                self._handle = None

    def release_registered(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            handle()

    def trigger(self, signum: int = signal.SIGINT) -> None:
        if self.cancelled.is_set():
            logger.debug("Ignoring repeated signal %s during teardown", signum)
            return
        self.received = signum
        logger.warning("Received %s, cleaning up", signal.Signals(signum).name)
        self.cancelled.set()
        self.release_registered()

    def _threadsafe_trigger(self, signum: int, frame: object) -> None:
        if self._loop is None:
            raise RuntimeError("coordinator is not active")
        self._loop.call_soon_threadsafe(self.trigger, signum)

    async def __aenter__(self) -> "CancellationCoordinator":
        self._loop = asyncio.get_running_loop()
        for signum in self._signals:
            try:
                self._loop.add_signal_handler(signum, self.trigger, signum)
                self._installed.append((signum, None))
                continue
            except (NotImplementedError, RuntimeError):
                pass
            try:
                previous = signal.signal(signum, self._threadsafe_trigger)
            except ValueError as exc:
                logger.debug("Cannot install handler for signal %s: %s", signum, exc)
                continue
            self._installed.append((signum, previous))
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        loop = asyncio.get_running_loop()
        for signum, previous in self._installed:
            if previous is None:
                loop.remove_signal_handler(signum)
            else:
                signal.signal(signum, previous)
        self._installed.clear()
        self._loop = None

        if self.cancelled.is_set():
            self.release_registered()
            raise SystemExit(self._exit_code)
        return False


__all__ = ["CancellationCoordinator", "INTERRUPTED_EXIT_CODE", "ReleaseHandle"]
