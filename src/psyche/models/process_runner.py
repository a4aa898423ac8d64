"""Subprocess execution with streaming stdout, hard and idle timeouts."""

from __future__ import annotations

import codecs
import logging
import os
import queue
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, List, Optional, Sequence, Tuple

from ..supervisor.process_tracker import ProcessTracker

__all__ = [
    "DEFAULT_IDLE_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "ProcessResult",
    "ProcessRunner",
    "ProcessRunnerError",
    "ProcessSpawnError",
    "ProcessTimeoutError",
    "SubprocessRunner",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30 * 60.0
DEFAULT_IDLE_TIMEOUT = 5 * 60.0

StdoutCallback = Callable[[str], None]


class ProcessRunnerError(RuntimeError):
    """Base error raised when a backend process cannot be driven to completion."""


class ProcessSpawnError(ProcessRunnerError):
    """Raised when the backend executable cannot be started."""


class ProcessTimeoutError(ProcessRunnerError):
    """Raised when a backend process exceeds its hard or idle timeout."""


@dataclass(slots=True)
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int


class ProcessRunner:
    """Abstract process runner; one ``run`` call per launch attempt."""

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        on_stdout_chunk: Optional[StdoutCallback] = None,
        timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
    ) -> ProcessResult:
        raise NotImplementedError("Subclasses must implement run().")


class SubprocessRunner(ProcessRunner):
    """Run a child process, streaming stdout chunks to a callback as they arrive.

    Every child is registered with the process tracker. A child that is given up
    on (timeout, callback failure) receives SIGTERM; if it is still running after
    ``terminate_wait`` seconds it is handed to the tracker as abandoned.
    """

    def __init__(
        self,
        tracker: Optional[ProcessTracker] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        terminate_wait: float = 5.0,
    ) -> None:
        self._tracker = tracker
        self._timeout = timeout
        self._idle_timeout = idle_timeout
        self._terminate_wait = terminate_wait

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        on_stdout_chunk: Optional[StdoutCallback] = None,
        timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
    ) -> ProcessResult:
        hard_limit = timeout if timeout is not None else self._timeout
        idle_limit = idle_timeout if idle_timeout is not None else self._idle_timeout

        try:
            process = subprocess.Popen(  # noqa: S603 - command comes from configuration
                [command, *args],
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as error:
            raise ProcessSpawnError(f"Failed to start {command}: {error}") from error

        if self._tracker is not None:
            self._tracker.register_pid(process.pid)
        LOGGER.debug("Started %s (pid %d)", command, process.pid)

        try:
            stdout, stderr = self._collect(process, on_stdout_chunk, hard_limit, idle_limit)
            exit_code = process.wait(timeout=self._terminate_wait)
        except subprocess.TimeoutExpired as error:
            self._give_up(process)
            raise ProcessTimeoutError(f"Process {process.pid} did not exit after closing its output") from error
        except BaseException:
            self._give_up(process)
            raise

        if self._tracker is not None:
            self._tracker.on_process_exit(process.pid)
        return ProcessResult(stdout=stdout, stderr=stderr, exit_code=exit_code)

    def _collect(
        self,
        process: subprocess.Popen,
        on_stdout_chunk: Optional[StdoutCallback],
        hard_limit: float,
        idle_limit: float,
    ) -> Tuple[str, str]:
        events: "queue.Queue[Tuple[str, Optional[str]]]" = queue.Queue()
        for name, stream in (("stdout", process.stdout), ("stderr", process.stderr)):
            thread = threading.Thread(
                target=_pump,
                args=(stream, name, events),
                name=f"psyche-{name}-{process.pid}",
                daemon=True,
            )
            thread.start()

        stdout_parts: List[str] = []
        stderr_parts: List[str] = []
        started = time.monotonic()
        last_activity = started
        open_streams = 2

        while open_streams:
            now = time.monotonic()
            if now - started >= hard_limit:
                raise ProcessTimeoutError(f"Process timed out after {hard_limit:.0f}s")
            if now - last_activity >= idle_limit:
                raise ProcessTimeoutError(f"Process idle for {idle_limit:.0f}s with no output")
            wait = min(started + hard_limit, last_activity + idle_limit) - now
            try:
                name, chunk = events.get(timeout=max(wait, 0.01))
            except queue.Empty:
                continue
            if chunk is None:
                open_streams -= 1
                continue
            last_activity = time.monotonic()
            if name == "stdout":
                stdout_parts.append(chunk)
                if on_stdout_chunk is not None:
                    on_stdout_chunk(chunk)
            else:
                stderr_parts.append(chunk)

        return "".join(stdout_parts), "".join(stderr_parts)

    def _give_up(self, process: subprocess.Popen) -> None:
        if process.poll() is None:
            try:
                process.terminate()
            except OSError:
                pass
            try:
                process.wait(timeout=self._terminate_wait)
            except subprocess.TimeoutExpired:
                LOGGER.warning("Process %d ignored SIGTERM; abandoning to the reaper", process.pid)
                if self._tracker is not None:
                    self._tracker.abandon_pid(process.pid)
                return
        if self._tracker is not None:
            self._tracker.on_process_exit(process.pid)


def _pump(stream: Optional[IO[bytes]], name: str, events: "queue.Queue[Tuple[str, Optional[str]]]") -> None:
    if stream is None:
        events.put((name, None))
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    fd = stream.fileno()
    try:
        while True:
            data = os.read(fd, 65536)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                events.put((name, text))
        tail = decoder.decode(b"", final=True)
        if tail:
            events.put((name, tail))
    except OSError as error:
        LOGGER.debug("Reading %s failed: %s", name, error)
    finally:
        try:
            stream.close()
        except OSError:
            pass
        events.put((name, None))
