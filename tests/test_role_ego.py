from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import SAMPLE_PLAN, ScriptedLauncher, read, write_plan
from psyche.agents.permissions import PermissionChecker, PermissionDeniedError
from psyche.agents.types import AgentRole
from psyche.planning.triggers import StaticTriggerEvaluator
from psyche.roles.base import RoleRuntime
from psyche.roles.ego import Ego
from psyche.roles.schema import EgoDecision
from psyche.substrate.types import SubstrateFileType


def test_decide_parses_the_reply(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue('Sure.\n{"action": "dispatch", "reason": "work remains", "taskId": "task-2.1"}')

    decision = Ego(runtime).decide()

    assert decision.action == "dispatch"
    assert decision.task_id == "task-2.1"
    assert decision.reason == "work remains"
    request = launcher.requests[0]
    assert request.system_prompt.startswith("You are the Ego")
    assert "--- PLAN.md ---" in request.message


def test_decide_includes_pending_messages(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_json({"action": "converse", "entry": "Hello!"})

    Ego(runtime).decide(["hi there", "how is it going?"])

    message = launcher.requests[0].message
    assert "hi there\n\n---\n\nhow is it going?" in message


def test_decide_falls_back_to_idle_on_session_failure(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_failure("rate limited")

    decision = Ego(runtime).decide()

    assert decision.action == "idle"
    assert decision.reason == "Session error: rate limited"


@pytest.mark.parametrize("reply", ["no json at all", '{"action": "dance"}'])
def test_decide_falls_back_to_idle_on_bad_output(
    runtime: RoleRuntime, launcher: ScriptedLauncher, reply: str
) -> None:
    launcher.queue(reply)

    decision = Ego(runtime).decide()

    assert decision.action == "idle"
    assert decision.reason.startswith("Decision failed:")


def test_dispatch_next_is_deterministic(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    write_plan(runtime.store, SAMPLE_PLAN)

    dispatch = Ego(runtime).dispatch_next()

    assert dispatch is not None
    assert dispatch.target_role is AgentRole.SUBCONSCIOUS
    assert dispatch.task_id == "task-2.1"
    assert dispatch.description == "Tag the commit"
    assert launcher.requests == []


def test_dispatch_next_uses_trigger_evaluator(runtime: RoleRuntime) -> None:
    write_plan(runtime.store, "## Tasks\n- [x] done\n- [~] later WHEN `ready`\n")
    ego = Ego(runtime)

    assert ego.dispatch_next() is None
    dispatch = ego.dispatch_next(StaticTriggerEvaluator({"ready"}))
    assert dispatch is not None
    assert dispatch.task_id == "task-2"


def test_apply_decision_writes_plan_or_conversation(runtime: RoleRuntime) -> None:
    ego = Ego(runtime)

    assert ego.apply_decision(EgoDecision(action="update_plan", plan="# Plan\n\n## Tasks\n- [ ] new\n"))
    assert ego.apply_decision(EgoDecision(action="converse", entry="Working on it."))
    assert not ego.apply_decision(EgoDecision(action="idle", reason="nothing"))
    assert not ego.apply_decision(EgoDecision(action="update_plan"))

    assert read(runtime.store, SubstrateFileType.PLAN) == "# Plan\n\n## Tasks\n- [ ] new\n"
    assert "[EGO] Working on it." in read(runtime.store, SubstrateFileType.CONVERSATION)


def test_ego_cannot_touch_files_outside_its_grant(runtime: RoleRuntime) -> None:
    restricted = replace(runtime, checker=PermissionChecker({AgentRole.EGO: []}))

    with pytest.raises(PermissionDeniedError):
        Ego(restricted).write_plan("# Plan\n")
    assert read(runtime.store, SubstrateFileType.PLAN).startswith("# Plan\n\n## Current Goal")
