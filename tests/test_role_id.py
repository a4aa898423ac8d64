from __future__ import annotations

import logging

import pytest

from conftest import SAMPLE_PLAN, ScriptedLauncher, write_plan
from psyche.roles.base import RoleRuntime
from psyche.roles.id import Id


@pytest.mark.parametrize(
    "plan, idle, reason",
    [
        ("# Plan\n\n## Tasks\n", True, "Plan is empty: no tasks defined"),
        ("## Tasks\n- [x] one\n- [x] two\n  - [x] nested\n", True, "All tasks are complete"),
        (SAMPLE_PLAN, False, "Plan has pending tasks"),
    ],
)
def test_detect_idle(runtime: RoleRuntime, plan: str, idle: bool, reason: str) -> None:
    write_plan(runtime.store, plan)

    detection = Id(runtime).detect_idle()

    assert detection.idle is idle
    assert detection.reason == reason


def test_generate_drives_parses_candidates(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_json(
        {
            "goalCandidates": [
                {"title": "Write docs", "description": "Document the CLI", "priority": "high", "confidence": 80},
                {"title": "Add tests"},
            ]
        }
    )

    candidates = Id(runtime).generate_drives()

    assert [candidate.title for candidate in candidates] == ["Write docs", "Add tests"]
    assert candidates[0].priority == "high"
    assert candidates[1].priority == "medium"
    assert candidates[1].confidence == 50
    assert "--- VALUES.md ---" in launcher.requests[0].message


@pytest.mark.parametrize(
    "reply",
    [
        '{"goalCandidates": "write docs"}',
        '{"somethingElse": []}',
        '{"goalCandidates": [{"description": "no title"}]}',
        "nothing useful",
    ],
)
def test_generate_drives_returns_empty_on_bad_reply(
    runtime: RoleRuntime, launcher: ScriptedLauncher, caplog: pytest.LogCaptureFixture, reply: str
) -> None:
    launcher.queue(reply)

    with caplog.at_level(logging.WARNING, logger="psyche.roles.id"):
        assert Id(runtime).generate_drives() == []

    assert caplog.records


def test_generate_drives_returns_empty_on_session_failure(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_failure()

    assert Id(runtime).generate_drives() == []
