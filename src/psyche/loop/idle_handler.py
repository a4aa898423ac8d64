"""Turn an idle plan into a fresh one: drives, review, then a new plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from ..models.stream_json import LogEntryCallback
from ..roles.ego import Ego
from ..roles.id import Id
from ..roles.schema import Proposal
from ..roles.superego import Superego
from ..substrate.store import SubstrateStore
from ..substrate.types import SubstrateFileType

__all__ = ["IdleHandler", "IdleHandlerResult"]

LOGGER = logging.getLogger(__name__)

IdleAction = Literal["plan_created", "no_goals", "all_rejected", "not_idle"]


@dataclass(slots=True)
class IdleHandlerResult:
    action: IdleAction
    goal_count: int = 0


class IdleHandler:
    def __init__(self, ego: Ego, id_role: Id, superego: Superego, store: SubstrateStore) -> None:
        self._ego = ego
        self._id = id_role
        self._superego = superego
        self._store = store

    def handle_idle(self, on_log_entry: Optional[LogEntryCallback] = None) -> IdleHandlerResult:
        detection = self._id.detect_idle()
        if not detection.idle:
            return IdleHandlerResult(action="not_idle")

        candidates = self._id.generate_drives(on_log_entry)
        if not candidates:
            LOGGER.info("Idle (%s) but no goal candidates were generated", detection.reason)
            return IdleHandlerResult(action="no_goals")

        self._store.append(
            SubstrateFileType.PROGRESS,
            f"[ID] Idle detected: {detection.reason}. Generated {len(candidates)} goal candidate(s).",
        )

        proposals = [
            Proposal(target="PLAN", content=f"{candidate.title}: {candidate.description}")
            for candidate in candidates
        ]
        evaluations = self._superego.evaluate_proposals(proposals, on_log_entry)
        approved = [
            candidate for candidate, evaluation in zip(candidates, evaluations) if evaluation.approved
        ]
        if not approved:
            LOGGER.info("All %d goal candidate(s) were rejected", len(candidates))
            return IdleHandlerResult(action="all_rejected")

        goal = ", ".join(candidate.title for candidate in approved)
        tasks = "\n".join(f"- [ ] {candidate.title}: {candidate.description}" for candidate in approved)
        self._ego.write_plan(f"# Plan\n\n## Current Goal\n{goal}\n\n## Tasks\n{tasks}\n")
        LOGGER.info("Created a new plan with %d goal(s)", len(approved))
        return IdleHandlerResult(action="plan_created", goal_count=len(approved))
