"""Planner role: reads the plan, decides the next move, dispatches work."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from ..agents.types import AgentRole
from ..models.json_extract import JsonExtractionError, extract_json
from ..models.stream_json import LogEntryCallback
from ..planning.plan_parser import TriggerEvaluator, find_next_actionable, parse_tasks
from ..substrate.store import SubstrateError
from ..substrate.types import SubstrateFileType
from .base import RoleRuntime
from .schema import DispatchResult, EgoDecision

__all__ = ["Ego"]

LOGGER = logging.getLogger(__name__)

_ROLE = AgentRole.EGO


class Ego:
    def __init__(self, runtime: RoleRuntime) -> None:
        self._rt = runtime

    def decide(
        self,
        pending_messages: Sequence[str] = (),
        on_log_entry: Optional[LogEntryCallback] = None,
    ) -> EgoDecision:
        """Ask the backend for one planning decision; any failure decides ``idle``."""
        instruction = "Analyze the current context. What should we do next?"
        if pending_messages:
            joined = "\n\n---\n\n".join(pending_messages)
            instruction = f"New messages from the user:\n{joined}\n\n{instruction}"

        try:
            message = self._rt.prompts.build_message(_ROLE, instruction)
            result = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            LOGGER.warning("Ego could not assemble its context: %s", error)
            return EgoDecision(action="idle", reason=f"Decision failed: {error}")

        if not result.success:
            return EgoDecision(action="idle", reason=f"Session error: {result.error or 'unknown'}")

        try:
            return EgoDecision.model_validate(extract_json(result.raw_output))
        except (JsonExtractionError, ValidationError) as error:
            LOGGER.warning("Ego reply could not be parsed: %s", error)
            return EgoDecision(action="idle", reason=f"Decision failed: {error}")

    def apply_decision(self, decision: EgoDecision) -> bool:
        """Carry out plan rewrites and conversation entries; return whether anything was written."""
        if decision.action == "update_plan" and decision.plan:
            self.write_plan(decision.plan)
            return True
        if decision.action == "converse" and decision.entry:
            self.append_conversation(decision.entry)
            return True
        return False

    def dispatch_next(self, evaluator: Optional[TriggerEvaluator] = None) -> Optional[DispatchResult]:
        """Pick the next actionable task for the worker without consulting the backend."""
        tasks = parse_tasks(self.read_plan())
        next_task = find_next_actionable(tasks, evaluator)
        if next_task is None:
            return None
        return DispatchResult(
            target_role=AgentRole.SUBCONSCIOUS,
            task_id=next_task.id,
            description=next_task.title,
        )

    def read_plan(self) -> str:
        self._rt.checker.assert_can_read(_ROLE, SubstrateFileType.PLAN)
        return self._rt.store.read(SubstrateFileType.PLAN).raw_markdown

    def write_plan(self, content: str) -> None:
        self._rt.checker.assert_can_write(_ROLE, SubstrateFileType.PLAN)
        self._rt.store.write(SubstrateFileType.PLAN, content)

    def append_conversation(self, entry: str) -> None:
        self._rt.checker.assert_can_append(_ROLE, SubstrateFileType.CONVERSATION)
        self._rt.store.append(SubstrateFileType.CONVERSATION, f"[{_ROLE.value}] {entry}")
