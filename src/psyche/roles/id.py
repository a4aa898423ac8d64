"""Drive generator role: notices idleness and proposes new goals."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from ..agents.types import AgentRole
from ..models.json_extract import JsonExtractionError, extract_json
from ..models.stream_json import LogEntryCallback
from ..planning.plan_parser import is_complete, is_empty, parse_tasks
from ..substrate.store import SubstrateError
from ..substrate.types import SubstrateFileType
from .base import RoleRuntime
from .schema import GoalCandidate, IdleDetectionResult

__all__ = ["Id"]

LOGGER = logging.getLogger(__name__)

_ROLE = AgentRole.ID

_CANDIDATES_ADAPTER = TypeAdapter(List[GoalCandidate])

_DRIVE_INSTRUCTION = (
    "The plan is empty or complete. Based on the agent's values, drives and recent progress, "
    "propose new goal candidates."
)


class Id:
    def __init__(self, runtime: RoleRuntime) -> None:
        self._rt = runtime

    def detect_idle(self) -> IdleDetectionResult:
        self._rt.checker.assert_can_read(_ROLE, SubstrateFileType.PLAN)
        tasks = parse_tasks(self._rt.store.read(SubstrateFileType.PLAN).raw_markdown)
        if is_empty(tasks):
            return IdleDetectionResult(idle=True, reason="Plan is empty: no tasks defined")
        if is_complete(tasks):
            return IdleDetectionResult(idle=True, reason="All tasks are complete")
        return IdleDetectionResult(idle=False, reason="Plan has pending tasks")

    def generate_drives(self, on_log_entry: Optional[LogEntryCallback] = None) -> List[GoalCandidate]:
        """Ask for goal candidates; every failure yields an empty list."""
        try:
            message = self._rt.prompts.build_message(_ROLE, _DRIVE_INSTRUCTION)
            result = self._rt.launch(_ROLE, message, on_log_entry)
        except SubstrateError as error:
            LOGGER.warning("Drive generation could not assemble its context: %s", error)
            return []

        if not result.success:
            LOGGER.warning("Drive generation failed: %s", result.error or "session error")
            return []

        try:
            payload = extract_json(result.raw_output)
            candidates = payload.get("goalCandidates")
            if not isinstance(candidates, list):
                LOGGER.warning("Drive generation reply has no goalCandidates list")
                return []
            return _CANDIDATES_ADAPTER.validate_python(candidates)
        except (JsonExtractionError, ValidationError) as error:
            LOGGER.warning("Drive generation reply could not be parsed: %s", error)
            return []
