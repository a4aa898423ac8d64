"""Session launch contract shared by every reasoning backend."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .stream_json import LogEntryCallback

__all__ = [
    "LaunchOptions",
    "SessionLauncher",
    "SessionRequest",
    "SessionResult",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionRequest:
    """Prompt pair sent to a backend for a single role turn."""

    system_prompt: str
    message: str


@dataclass(slots=True)
class LaunchOptions:
    """Per-launch knobs; defaults mean a single attempt with no retry."""

    max_retries: int = 1
    retry_delay_ms: int = 1000
    cwd: Optional[Path] = None
    on_log_entry: Optional[LogEntryCallback] = None
    model: Optional[str] = None
    continue_session: bool = False


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Outcome of one launch attempt. ``success`` holds exactly when ``exit_code == 0``."""

    raw_output: str
    exit_code: int
    duration_ms: int
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class SessionLauncher:
    """Base class that owns the sequential retry loop.

    Subclasses implement :meth:`_attempt`, which must return a
    :class:`SessionResult` for transport failures rather than raising.
    """

    def __init__(
        self,
        *,
        sleep: Optional[Callable[[float], None]] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        self._sleep = sleep or time.sleep
        self._monotonic = monotonic or time.monotonic

    def launch(self, request: SessionRequest, options: Optional[LaunchOptions] = None) -> SessionResult:
        """Run up to ``options.max_retries`` attempts and return the first success or the last failure."""
        opts = options or LaunchOptions()
        attempts = max(1, opts.max_retries)
        last_result: Optional[SessionResult] = None

        for attempt in range(1, attempts + 1):
            if attempt > 1 and opts.retry_delay_ms > 0:
                self._sleep(opts.retry_delay_ms / 1000.0)

            last_result = self._attempt(request, opts)
            if last_result.success:
                return last_result
            LOGGER.warning(
                "%s attempt %d/%d failed (exit %d): %s",
                type(self).__name__,
                attempt,
                attempts,
                last_result.exit_code,
                (last_result.error or "no error output")[:200],
            )

        assert last_result is not None
        return last_result

    def _attempt(self, request: SessionRequest, options: LaunchOptions) -> SessionResult:
        """Perform one backend invocation. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _attempt().")

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._monotonic() - started) * 1000))
