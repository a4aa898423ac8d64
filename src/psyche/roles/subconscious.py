"""Worker role: executes dispatched tasks and reconsiders its own output."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from ..agents.types import AgentRole
from ..models.json_extract import JsonExtractionError, extract_json
from ..models.stream_json import LogEntryCallback
from ..planning.plan_parser import mark_complete
from ..substrate.store import SubstrateError
from ..substrate.types import SubstrateFileType
from .base import RoleRuntime
from .schema import OutcomeEvaluation, TaskAssignment, TaskResult

__all__ = ["DEFAULT_REASSESSMENT_THRESHOLD", "Subconscious", "compute_drive_rating"]

LOGGER = logging.getLogger(__name__)

_ROLE = AgentRole.SUBCONSCIOUS

DEFAULT_REASSESSMENT_THRESHOLD = 70

_EVALUATION_INSTRUCTIONS = """Now perform a reconsideration evaluation. Assess:
1. Did this task achieve its intended outcome?
2. What is the quality of the work (0-100)?
3. Were there any issues or gaps?
4. What follow-up actions are recommended?
5. Does the goal need reassessment?

Respond with ONLY a JSON object:
{
  "outcomeMatchesIntent": boolean,
  "qualityScore": number (0-100),
  "issuesFound": string[],
  "recommendedActions": string[],
  "needsReassessment": boolean
}"""


def compute_drive_rating(result: TaskResult) -> int:
    """Heuristic 0-10 quality rating for a finished task, without a backend call."""
    score = 5
    if result.memory_updates or result.skill_updates:
        score += 3
    if result.result == "failure":
        score -= 2
    progress = result.progress_entry.lower()
    if "blog" in progress or " pr " in progress or "pull request" in progress:
        score += 4
    return max(0, min(10, score))


def _failed(summary: str) -> TaskResult:
    return TaskResult(result="failure", summary=f"Task execution failed: {summary}")


def _conservative_evaluation(issue: str) -> OutcomeEvaluation:
    return OutcomeEvaluation(
        outcome_matches_intent=False,
        quality_score=0,
        issues_found=[issue],
        recommended_actions=["Re-attempt task", "Review error logs"],
        needs_reassessment=True,
    )


class Subconscious:
    def __init__(
        self,
        runtime: RoleRuntime,
        *,
        reassessment_threshold: float = DEFAULT_REASSESSMENT_THRESHOLD,
    ) -> None:
        self._rt = runtime
        self._reassessment_threshold = reassessment_threshold

    def execute(
        self,
        task: TaskAssignment,
        on_log_entry: Optional[LogEntryCallback] = None,
        pending_messages: Sequence[str] = (),
    ) -> TaskResult:
        """Run one task; failures come back as a ``failure`` result carrying the cause."""
        instruction = f"Execute this task:\nID: {task.task_id}\nDescription: {task.description}"
        if pending_messages:
            joined = "\n\n---\n\n".join(pending_messages)
            instruction += f"\n\nMessages received while you were working:\n{joined}"

        try:
            message = self._rt.prompts.build_message(_ROLE, instruction)
            result = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            return _failed(str(error))

        if not result.success:
            return _failed(result.raw_output or result.error or "session error")

        try:
            return TaskResult.model_validate(extract_json(result.raw_output))
        except (JsonExtractionError, ValidationError) as error:
            LOGGER.warning("Task %s reply could not be parsed: %s", task.task_id, error)
            return _failed(str(error))

    def evaluate_outcome(
        self,
        task: TaskAssignment,
        result: TaskResult,
        on_log_entry: Optional[LogEntryCallback] = None,
    ) -> OutcomeEvaluation:
        """Self-score a finished task, then enforce the reassessment rules on the score."""
        instruction = (
            "You just completed this task:\n"
            f"ID: {task.task_id}\n"
            f"Description: {task.description}\n\n"
            "The execution result was:\n"
            f"Result: {result.result}\n"
            f"Summary: {result.summary}\n"
            f"Progress Entry: {result.progress_entry}\n\n"
            f"{_EVALUATION_INSTRUCTIONS}"
        )
        try:
            message = self._rt.prompts.build_message(_ROLE, instruction)
            session = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            return _conservative_evaluation(f"Evaluation error: {error}")

        if not session.success:
            return _conservative_evaluation(f"Evaluation failed: {session.error or 'unknown error'}")

        try:
            evaluation = OutcomeEvaluation.model_validate(extract_json(session.raw_output))
        except (JsonExtractionError, ValidationError) as error:
            return _conservative_evaluation(f"Evaluation error: {error}")

        needs_reassessment = evaluation.needs_reassessment
        if evaluation.quality_score == 0:
            needs_reassessment = True
        if not evaluation.outcome_matches_intent and evaluation.quality_score < self._reassessment_threshold:
            needs_reassessment = True
        return evaluation.model_copy(update={"needs_reassessment": needs_reassessment})

    def mark_task_complete(self, task_id: str) -> None:
        self._rt.checker.assert_can_write(_ROLE, SubstrateFileType.PLAN)
        plan = self._rt.store.read(SubstrateFileType.PLAN).raw_markdown
        self._rt.store.write(SubstrateFileType.PLAN, mark_complete(plan, task_id))

    def log_progress(self, entry: str) -> None:
        self._rt.checker.assert_can_append(_ROLE, SubstrateFileType.PROGRESS)
        self._rt.store.append(SubstrateFileType.PROGRESS, f"[{_ROLE.value}] {entry}")

    def log_conversation(self, entry: str) -> None:
        self._rt.checker.assert_can_append(_ROLE, SubstrateFileType.CONVERSATION)
        self._rt.store.append(SubstrateFileType.CONVERSATION, f"[{_ROLE.value}] {entry}")

    def update_skills(self, content: str) -> None:
        self._rt.checker.assert_can_write(_ROLE, SubstrateFileType.SKILLS)
        self._rt.store.write(SubstrateFileType.SKILLS, content)

    def update_memory(self, content: str) -> None:
        self._rt.checker.assert_can_write(_ROLE, SubstrateFileType.MEMORY)
        self._rt.store.write(SubstrateFileType.MEMORY, content)
