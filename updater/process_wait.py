"""Wait for the application process to exit before touching its files."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import psutil

from updater.models import ProcessWaitTimeout, UpdateCancelled

_LOGGER = logging.getLogger(__name__)


class ExitWaiter(Protocol):
    """Protocol describing the blocking wait performed before extraction."""

    def wait_for_exit(self, pid: int) -> None:
        """Return once ``pid`` is no longer running."""


@dataclass(frozen=True)
class WaitingForExit:
    """State of an in-progress wait on the application process."""

    pid: int
    deadline: float | None

    def remaining(self, now: float) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - now)

    def expired(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline


class ProcessExitWaiter:
    """Block until a process exits, then give the OS time to release file locks."""

    def __init__(
        self,
        *,
        timeout: float | None = None,
        grace_period: float = 2.0,
        poll_interval: float = 0.5,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self._timeout = timeout
        self._grace_period = max(0.0, grace_period)
        self._poll_interval = max(0.01, poll_interval)
        self._cancel_event = cancel_event or threading.Event()
        self._clock = clock
        # The grace delay returns early when cancellation is requested.
        self._sleep = sleep or self._cancel_event.wait

    def wait_for_exit(self, pid: int) -> None:
        deadline = None if self._timeout is None else self._clock() + self._timeout
        state = WaitingForExit(pid=pid, deadline=deadline)
        if self._block_until_exit(state):
            _LOGGER.info("Main application process has exited.")
        if self._grace_period:
            _LOGGER.debug("Waiting %.1f s for file handles to be released", self._grace_period)
            self._sleep(self._grace_period)
            if self._cancel_event.is_set():
                raise UpdateCancelled(
                    f"Cancelled while waiting for process {pid} to release its files"
                )

    def _block_until_exit(self, state: WaitingForExit) -> bool:
        if state.pid == os.getpid():
            _LOGGER.warning("Target PID %s is the updater itself; not waiting", state.pid)
            return False
        try:
            process = psutil.Process(state.pid)
        except psutil.NoSuchProcess:
            _LOGGER.info("Main application process was not found (already exited).")
            return False

        if state.deadline is None:
            _LOGGER.info("Waiting for main application process (PID: %s) to exit...", state.pid)
        else:
            _LOGGER.info(
                "Waiting up to %.0f s for main application process (PID: %s) to exit...",
                state.remaining(self._clock()) or 0.0,
                state.pid,
            )

        while True:
            if self._cancel_event.is_set():
                raise UpdateCancelled(f"Cancelled while waiting for process {state.pid} to exit")
            now = self._clock()
            if state.expired(now):
                raise ProcessWaitTimeout(
                    f"Process {state.pid} did not exit within {self._timeout:g} seconds"
                )
            remaining = state.remaining(now)
            interval = self._poll_interval
            if remaining is not None:
                interval = min(interval, remaining)
            try:
                process.wait(timeout=interval)
            except psutil.TimeoutExpired:
                continue
            except psutil.NoSuchProcess:
                pass
            return True


__all__ = ["ExitWaiter", "ProcessExitWaiter", "WaitingForExit"]
