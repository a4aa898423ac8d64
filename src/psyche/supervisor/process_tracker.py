"""Lifecycle tracking for backend child processes.

A PID is *active* from registration until it exits normally or its owner
gives up on it. Given-up PIDs become *abandoned* with a timestamp; once an
abandoned PID outlives the grace period the reaper sends it a single SIGTERM
if it is still alive, or simply forgets it if it already exited.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Set

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_REAPER_INTERVAL",
    "OsProcessKiller",
    "ProcessKiller",
    "ProcessTracker",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 10 * 60.0
DEFAULT_REAPER_INTERVAL = 60.0


class ProcessKiller(Protocol):
    def is_process_alive(self, pid: int) -> bool:
        ...

    def kill_process(self, pid: int, sig: int) -> None:
        ...


class OsProcessKiller:
    """Process probe and signal delivery through ``os.kill``."""

    def is_process_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by someone else.
            return True
        except OSError:
            return False
        return True

    def kill_process(self, pid: int, sig: int) -> None:
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            LOGGER.debug("PID %d exited before signal %d was delivered", pid, sig)


@dataclass(slots=True)
class _AbandonedProcess:
    pid: int
    abandoned_at: float


class ProcessTracker:
    """Thread-safe registry of active and abandoned backend PIDs."""

    def __init__(
        self,
        killer: Optional[ProcessKiller] = None,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        reaper_interval: Optional[float] = DEFAULT_REAPER_INTERVAL,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._killer = killer or OsProcessKiller()
        self._grace_period = grace_period
        self._reaper_interval = reaper_interval
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._active: Set[int] = set()
        self._abandoned: List[_AbandonedProcess] = []
        self._reaper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def active_pids(self) -> List[int]:
        with self._lock:
            return sorted(self._active)

    @property
    def abandoned_pids(self) -> List[int]:
        with self._lock:
            return [entry.pid for entry in self._abandoned]

    def register_pid(self, pid: int) -> None:
        with self._lock:
            self._active.add(pid)
            self._abandoned = [entry for entry in self._abandoned if entry.pid != pid]
        LOGGER.debug("Registered PID %d", pid)

    def on_process_exit(self, pid: int) -> None:
        with self._lock:
            self._active.discard(pid)
            self._abandoned = [entry for entry in self._abandoned if entry.pid != pid]
        LOGGER.debug("PID %d exited", pid)

    def abandon_pid(self, pid: int) -> None:
        with self._lock:
            if pid not in self._active:
                LOGGER.debug("PID %d is not active; ignoring abandon", pid)
                return
            self._active.discard(pid)
            self._abandoned.append(_AbandonedProcess(pid=pid, abandoned_at=self._clock()))
        LOGGER.info("Abandoned PID %d; reaping after %.0fs grace period", pid, self._grace_period)
        self.start_reaper()

    def reap(self) -> List[int]:
        """Signal abandoned PIDs past the grace period; return the PIDs that were signalled."""
        now = self._clock()
        due: List[int] = []
        with self._lock:
            waiting: List[_AbandonedProcess] = []
            for entry in self._abandoned:
                if now - entry.abandoned_at >= self._grace_period:
                    due.append(entry.pid)
                else:
                    waiting.append(entry)
            self._abandoned = waiting

        signalled: List[int] = []
        for pid in due:
            if not self._killer.is_process_alive(pid):
                LOGGER.debug("Abandoned PID %d already exited", pid)
                continue
            LOGGER.warning("Terminating abandoned PID %d (past grace period)", pid)
            try:
                self._killer.kill_process(pid, signal.SIGTERM)
            except OSError as error:
                LOGGER.warning("Failed to signal PID %d: %s", pid, error)
                continue
            signalled.append(pid)
        return signalled

    def start_reaper(self) -> None:
        """Reap now and, when an interval is configured, keep reaping on a daemon thread."""
        self.reap()
        if self._reaper_interval is None:
            return
        with self._lock:
            if self._reaper is not None and self._reaper.is_alive():
                return
            self._stop_event.clear()
            self._reaper = threading.Thread(target=self._run_reaper, name="psyche-reaper", daemon=True)
            self._reaper.start()

    def stop(self) -> None:
        self._stop_event.set()
        reaper = self._reaper
        if reaper is not None and reaper is not threading.current_thread():
            reaper.join(timeout=5)
        self._reaper = None

    def _run_reaper(self) -> None:
        assert self._reaper_interval is not None
        while not self._stop_event.wait(self._reaper_interval):
            self.reap()
            with self._lock:
                if not self._abandoned:
                    self._reaper = None
                    return
