"""Restart context written before the loop hibernates on a usage limit."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Optional

from ..planning.plan_parser import parse_current_goal
from ..substrate.store import SubstrateFileNotFoundError, SubstrateStore, utc_now
from ..substrate.templates import get_template
from ..substrate.types import SubstrateFileType

__all__ = ["RateLimitStateManager"]

LOGGER = logging.getLogger(__name__)

_GOAL_LINE_RE = re.compile(r"(## Current Goal[ \t]*\n)([^\n]*)")


class RateLimitStateManager:
    """Snapshot what the loop was doing so the next session can pick it up."""

    def __init__(self, store: SubstrateStore, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._store = store
        self._clock = clock or utc_now

    def save_state_before_sleep(self, reset_at: datetime, current_task_id: Optional[str] = None) -> None:
        now = self._clock()
        minutes = max(0, round((reset_at - now).total_seconds() / 60))
        plan = self._read_plan()
        goal = parse_current_goal(plan)

        self._store.write(
            SubstrateFileType.RESTART_CONTEXT,
            self._restart_context(now, reset_at, minutes, current_task_id, goal, plan),
        )

        note = f"[RATE LIMITED - resuming at {reset_at.isoformat()}]"
        if current_task_id:
            note += f' Task "{current_task_id}" was interrupted.'
        self._store.write(SubstrateFileType.PLAN, self._annotate_plan(plan, note))

        self._store.append(
            SubstrateFileType.PROGRESS,
            f"[SYSTEM] Rate limit hibernation starting. Reset expected at {reset_at.isoformat()} "
            f"(in ~{minutes} minutes). State saved to restart-context.md.",
        )
        LOGGER.info("Saved restart context; hibernating until %s", reset_at.isoformat())

    def clear_restart_context(self) -> None:
        self._store.write(
            SubstrateFileType.RESTART_CONTEXT,
            get_template(SubstrateFileType.RESTART_CONTEXT),
        )

    def _read_plan(self) -> str:
        try:
            return self._store.read(SubstrateFileType.PLAN).raw_markdown
        except SubstrateFileNotFoundError:
            return ""

    @staticmethod
    def _annotate_plan(plan: str, note: str) -> str:
        match = _GOAL_LINE_RE.search(plan)
        if match is None:
            return f"## Current Goal\n{note}\n\n{plan}"
        goal_line = f"{note} {match.group(2).strip()}".rstrip()
        return plan[: match.start(2)] + goal_line + plan[match.end(2) :]

    @staticmethod
    def _restart_context(
        now: datetime,
        reset_at: datetime,
        minutes: int,
        task_id: Optional[str],
        goal: str,
        plan: str,
    ) -> str:
        if task_id:
            interrupted = f"Task ID: {task_id}"
        else:
            interrupted = "No specific task was in progress (idle or between tasks)."
        return (
            "# Restart Context\n\n"
            "## Hibernation\n"
            f"- Started: {now.isoformat()}\n"
            f"- Expected reset: {reset_at.isoformat()}\n"
            f"- Duration: ~{minutes} minutes\n\n"
            "## Interrupted Task\n"
            f"{interrupted}\n\n"
            "## Current Goal\n"
            f"{goal or '(none)'}\n\n"
            "## Plan Snapshot\n"
            "```markdown\n"
            f"{plan.rstrip()}\n"
            "```\n\n"
            "## Resumption Strategy\n"
            "1. Re-read PLAN.md and this file.\n"
            "2. Resume the interrupted task if one is listed, otherwise dispatch the next pending task.\n"
            "3. Remove the RATE LIMITED note from the Current Goal once work resumes.\n"
        )
