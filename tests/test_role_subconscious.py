from __future__ import annotations

import pytest

from conftest import FIXED_NOW, SAMPLE_PLAN, ScriptedLauncher, read, write_plan
from psyche.planning.plan_parser import TaskNotFoundError
from psyche.roles.base import RoleRuntime
from psyche.roles.schema import Proposal, TaskAssignment, TaskResult
from psyche.roles.subconscious import Subconscious, compute_drive_rating
from psyche.substrate.types import SubstrateFileType

TASK = TaskAssignment(task_id="task-2.1", description="Tag the commit")


def test_execute_parses_task_result(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_json(
        {
            "result": "success",
            "summary": "Tagged v1.0",
            "progressEntry": "Tagged release v1.0",
            "skillUpdates": "# Skills\n\n- git tagging\n",
            "proposals": [{"target": "HABITS", "content": "Tag every release."}],
        }
    )

    result = Subconscious(runtime).execute(TASK, pending_messages=["please hurry"])

    assert result.result == "success"
    assert result.progress_entry == "Tagged release v1.0"
    assert result.skill_updates == "# Skills\n\n- git tagging\n"
    assert result.memory_updates is None
    assert result.proposals == [Proposal(target="HABITS", content="Tag every release.")]
    message = launcher.requests[0].message
    assert "ID: task-2.1" in message
    assert "please hurry" in message


def test_execute_failure_embeds_cause(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_failure("process crashed")
    launcher.queue("I could not decide what to return")

    subconscious = Subconscious(runtime)
    crashed = subconscious.execute(TASK)
    garbled = subconscious.execute(TASK)

    assert crashed.result == "failure"
    assert crashed.summary == "Task execution failed: process crashed"
    assert garbled.result == "failure"
    assert garbled.summary.startswith("Task execution failed:")


def test_evaluate_outcome_keeps_good_scores(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_json(
        {
            "outcomeMatchesIntent": True,
            "qualityScore": 85,
            "issuesFound": [],
            "recommendedActions": [],
            "needsReassessment": False,
        }
    )

    evaluation = Subconscious(runtime).evaluate_outcome(TASK, TaskResult(result="success", summary="ok"))

    assert evaluation.quality_score == 85
    assert not evaluation.needs_reassessment
    assert "Summary: ok" in launcher.requests[0].message


@pytest.mark.parametrize(
    "matches, score, expected",
    [
        (True, 0, True),
        (False, 69, True),
        (False, 70, False),
        (True, 10, False),
    ],
)
def test_evaluate_outcome_forces_reassessment(
    runtime: RoleRuntime, launcher: ScriptedLauncher, matches: bool, score: int, expected: bool
) -> None:
    launcher.queue_json({"outcomeMatchesIntent": matches, "qualityScore": score, "needsReassessment": False})

    evaluation = Subconscious(runtime).evaluate_outcome(TASK, TaskResult(result="success"))

    assert evaluation.needs_reassessment is expected


def test_evaluate_outcome_threshold_is_configurable(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_json({"outcomeMatchesIntent": False, "qualityScore": 75})

    evaluation = Subconscious(runtime, reassessment_threshold=80).evaluate_outcome(TASK, TaskResult())

    assert evaluation.needs_reassessment


def test_evaluate_outcome_is_conservative_on_failure(runtime: RoleRuntime, launcher: ScriptedLauncher) -> None:
    launcher.queue_failure("timeout")

    evaluation = Subconscious(runtime).evaluate_outcome(TASK, TaskResult(result="success"))

    assert evaluation.quality_score == 0
    assert evaluation.needs_reassessment
    assert not evaluation.outcome_matches_intent
    assert evaluation.issues_found == ["Evaluation failed: timeout"]
    assert evaluation.recommended_actions == ["Re-attempt task", "Review error logs"]


def test_compute_drive_rating() -> None:
    assert compute_drive_rating(TaskResult(result="success")) == 5
    assert compute_drive_rating(TaskResult(result="failure")) == 3
    assert compute_drive_rating(TaskResult(result="success", memory_updates="# Memory\n")) == 8
    assert compute_drive_rating(TaskResult(result="success", progress_entry="Opened a pull request")) == 9
    assert (
        compute_drive_rating(
            TaskResult(result="success", skill_updates="x", progress_entry="Published the blog post")
        )
        == 10
    )


def test_bookkeeping_writes_through_permissions(runtime: RoleRuntime) -> None:
    write_plan(runtime.store, SAMPLE_PLAN)
    subconscious = Subconscious(runtime)

    subconscious.mark_task_complete("task-2.1")
    subconscious.log_progress("Tagged")
    subconscious.log_conversation("task-2.1 done")
    subconscious.update_skills("# Skills\n\n- tagging\n")
    subconscious.update_memory("# Memory\n\n- v1.0 tagged\n")

    assert "  - [x] Tag the commit" in read(runtime.store, SubstrateFileType.PLAN)
    assert f"[{FIXED_NOW.isoformat()}] [SUBCONSCIOUS] Tagged" in read(runtime.store, SubstrateFileType.PROGRESS)
    assert "[SUBCONSCIOUS] task-2.1 done" in read(runtime.store, SubstrateFileType.CONVERSATION)
    assert read(runtime.store, SubstrateFileType.SKILLS) == "# Skills\n\n- tagging\n"
    assert read(runtime.store, SubstrateFileType.MEMORY) == "# Memory\n\n- v1.0 tagged\n"


def test_mark_task_complete_unknown_id_raises(runtime: RoleRuntime) -> None:
    write_plan(runtime.store, SAMPLE_PLAN)

    with pytest.raises(TaskNotFoundError):
        Subconscious(runtime).mark_task_complete("task-42")
