from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

from psyche.models.process_runner import ProcessSpawnError, ProcessTimeoutError, SubprocessRunner
from psyche.supervisor.process_tracker import ProcessTracker


def test_runner_streams_stdout_and_collects_stderr(tmp_path: Path) -> None:
    tracker = ProcessTracker(reaper_interval=None)
    runner = SubprocessRunner(tracker)
    chunks: List[str] = []
    script = "import sys; print('hello'); sys.stderr.write('warn'); sys.exit(3)"

    result = runner.run(sys.executable, ["-c", script], cwd=tmp_path, on_stdout_chunk=chunks.append)

    assert result.exit_code == 3
    assert result.stdout.strip() == "hello"
    assert "".join(chunks) == result.stdout
    assert result.stderr == "warn"
    assert tracker.active_pids == []
    assert tracker.abandoned_pids == []


def test_runner_raises_spawn_error_for_missing_command() -> None:
    runner = SubprocessRunner()

    with pytest.raises(ProcessSpawnError):
        runner.run("definitely-not-a-real-command-psyche", [])


def test_runner_enforces_idle_timeout_and_releases_the_child() -> None:
    tracker = ProcessTracker(reaper_interval=None)
    runner = SubprocessRunner(tracker, terminate_wait=5.0)

    with pytest.raises(ProcessTimeoutError, match="idle"):
        runner.run(sys.executable, ["-c", "import time; time.sleep(30)"], idle_timeout=0.5)

    assert tracker.active_pids == []
    assert tracker.abandoned_pids == []
