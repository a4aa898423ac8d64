from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import FIXED_NOW, SAMPLE_PLAN, read, write_plan
from psyche.loop.rate_limit_state import RateLimitStateManager
from psyche.loop.state_store import LoopStateStore, PersistedLoopState
from psyche.loop.timer import ImmediateTimer, LoopTimer
from psyche.substrate.store import SubstrateStore
from psyche.substrate.templates import get_template
from psyche.substrate.types import SubstrateFileType


def test_state_store_round_trips(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path / "state" / "loop-state.json")
    state = PersistedLoopState(cycle_number=12, last_cycle_at=FIXED_NOW, rate_limit_until=None)

    store.save(state)

    assert store.load() == state


def test_state_store_missing_file_is_fresh(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        state = LoopStateStore(tmp_path / "absent.json").load()

    assert state == PersistedLoopState()
    assert caplog.records == []


@pytest.mark.parametrize("payload", ["{broken", '{"cycle_number": -3}', '{"cycle_number": "many"}'])
def test_state_store_invalid_file_warns_and_starts_fresh(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, payload: str
) -> None:
    path = tmp_path / "loop-state.json"
    path.write_text(payload, encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        state = LoopStateStore(path).load()

    assert state.cycle_number == 0
    assert "starting fresh" in caplog.text


def test_hibernation_writes_restart_context_plan_note_and_progress(store: SubstrateStore) -> None:
    write_plan(store, SAMPLE_PLAN)
    reset_at = FIXED_NOW + timedelta(minutes=90)
    manager = RateLimitStateManager(store, clock=lambda: FIXED_NOW)

    manager.save_state_before_sleep(reset_at, current_task_id="task-2.1")

    context = read(store, SubstrateFileType.RESTART_CONTEXT)
    assert context.startswith("# Restart Context\n\n## Hibernation\n")
    assert f"- Expected reset: {reset_at.isoformat()}" in context
    assert "- Duration: ~90 minutes" in context
    assert "Task ID: task-2.1" in context
    assert "## Current Goal\nShip the first release" in context
    assert "```markdown\n# Plan\n" in context

    plan = read(store, SubstrateFileType.PLAN)
    assert (
        f'## Current Goal\n[RATE LIMITED - resuming at {reset_at.isoformat()}] Task "task-2.1" was interrupted. '
        "Ship the first release\n"
    ) in plan
    assert "- [ ] Tag the commit" in plan

    progress = read(store, SubstrateFileType.PROGRESS)
    assert "[SYSTEM] Rate limit hibernation starting." in progress
    assert "(in ~90 minutes). State saved to restart-context.md." in progress


def test_hibernation_without_task_or_goal_section(store: SubstrateStore) -> None:
    write_plan(store, "## Tasks\n- [ ] something\n")
    reset_at = FIXED_NOW - timedelta(minutes=5)

    RateLimitStateManager(store, clock=lambda: FIXED_NOW).save_state_before_sleep(reset_at)

    assert "No specific task was in progress (idle or between tasks)." in read(store, SubstrateFileType.RESTART_CONTEXT)
    assert "- Duration: ~0 minutes" in read(store, SubstrateFileType.RESTART_CONTEXT)
    assert read(store, SubstrateFileType.PLAN).startswith(
        f"## Current Goal\n[RATE LIMITED - resuming at {reset_at.isoformat()}]\n\n## Tasks\n"
    )


def test_clear_restart_context_restores_template(store: SubstrateStore) -> None:
    manager = RateLimitStateManager(store, clock=lambda: FIXED_NOW)
    manager.save_state_before_sleep(FIXED_NOW + timedelta(hours=1))

    manager.clear_restart_context()

    assert read(store, SubstrateFileType.RESTART_CONTEXT) == get_template(SubstrateFileType.RESTART_CONTEXT)


def test_loop_timer_wakes_early() -> None:
    timer = LoopTimer()
    timer.wake()

    assert timer.delay(5.0) is True
    assert timer.delay(0.0) is False


def test_immediate_timer_records_delays() -> None:
    timer = ImmediateTimer()

    assert timer.delay(1.5) is False
    timer.wake()

    assert timer.delays == [1.5]
    assert timer.wakes == 1


def test_state_store_reads_naive_timestamps_as_utc(tmp_path: Path) -> None:
    path = tmp_path / "loop-state.json"
    path.write_text(
        '{"cycle_number": 2, "last_cycle_at": "2026-03-01T12:00:00", "rate_limit_until": "2026-03-01T14:00:00"}',
        encoding="utf-8",
    )

    state = LoopStateStore(path).load()

    assert state.rate_limit_until == datetime(2026, 3, 1, 14, 0, tzinfo=timezone.utc)
    assert state.rate_limit_until.tzinfo is not None
    assert state.last_cycle_at == FIXED_NOW
    assert FIXED_NOW < state.rate_limit_until
