"""Recurring audit-finding detection and escalation bookkeeping.

Findings are identified by a content signature rather than object identity,
so the same wording reported by independent audits (or across restarts) is
recognised as one recurring issue. A finding escalates once it has been seen
``consecutive_threshold`` times with every gap between its most recent
occurrences no larger than ``max_cycle_gap`` cycles.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError
from pydantic.type_adapter import TypeAdapter

from ..utils.fs import atomic_write_text

__all__ = [
    "DEFAULT_CONSECUTIVE_THRESHOLD",
    "DEFAULT_MAX_CYCLE_GAP",
    "EscalationInfo",
    "Finding",
    "FindingTracker",
    "generate_signature",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CONSECUTIVE_THRESHOLD = 3
DEFAULT_MAX_CYCLE_GAP = 50

FindingSeverity = Literal["info", "warning", "critical"]

_HISTORY_ADAPTER = TypeAdapter(Dict[str, List[StrictInt]])


class Finding(BaseModel):
    """Single audit observation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    severity: FindingSeverity
    message: str


@dataclass(slots=True)
class EscalationInfo:
    finding_id: str
    severity: str
    message: str
    cycles: List[int]
    first_detected_cycle: int
    last_occurrence_cycle: int


def generate_signature(finding: Finding) -> str:
    """Return a stable 16-hex-character signature for ``finding``."""
    digest = hashlib.sha256(f"{finding.severity}{finding.message[:200]}".encode("utf-8"))
    return digest.hexdigest()[:16]


class FindingTracker:
    """Signature → cycle-number history with threshold-based escalation."""

    def __init__(
        self,
        *,
        consecutive_threshold: int = DEFAULT_CONSECUTIVE_THRESHOLD,
        max_cycle_gap: int = DEFAULT_MAX_CYCLE_GAP,
    ) -> None:
        if consecutive_threshold < 1:
            raise ValueError("consecutive_threshold must be at least 1")
        self._threshold = consecutive_threshold
        self._max_gap = max_cycle_gap
        self._history: Dict[str, List[int]] = {}

    @property
    def consecutive_threshold(self) -> int:
        return self._threshold

    @property
    def max_cycle_gap(self) -> int:
        return self._max_gap

    def track(self, finding: Finding, cycle_number: int) -> bool:
        """Record an occurrence and report whether the finding should escalate now."""
        signature = generate_signature(finding)
        self._history.setdefault(signature, []).append(cycle_number)
        return self.should_escalate(finding)

    def should_escalate(self, finding: Finding) -> bool:
        cycles = self._history.get(generate_signature(finding), [])
        if len(cycles) < self._threshold:
            return False
        recent = sorted(cycles[-self._threshold :])
        return all(later - earlier <= self._max_gap for earlier, later in zip(recent, recent[1:]))

    def get_escalation_info(self, finding: Finding) -> Optional[EscalationInfo]:
        signature = generate_signature(finding)
        cycles = self._history.get(signature, [])
        if len(cycles) < self._threshold:
            return None
        ordered = sorted(cycles)
        return EscalationInfo(
            finding_id=signature,
            severity=finding.severity,
            message=finding.message,
            cycles=ordered,
            first_detected_cycle=ordered[0],
            last_occurrence_cycle=ordered[-1],
        )

    def clear_finding(self, signature: str) -> None:
        self._history.pop(signature, None)

    def tracked_findings(self) -> List[str]:
        return list(self._history)

    def get_finding_history(self, signature: str) -> List[int]:
        return list(self._history.get(signature, []))

    def to_dict(self) -> Dict[str, List[int]]:
        return {signature: list(cycles) for signature, cycles in self._history.items()}

    def save(self, path: Path) -> None:
        atomic_write_text(Path(path), json.dumps(self.to_dict(), indent=2, sort_keys=True))

    @classmethod
    def load(
        cls,
        path: Path,
        *,
        consecutive_threshold: int = DEFAULT_CONSECUTIVE_THRESHOLD,
        max_cycle_gap: int = DEFAULT_MAX_CYCLE_GAP,
    ) -> "FindingTracker":
        """Load persisted history; every failure mode yields an empty tracker."""
        tracker = cls(consecutive_threshold=consecutive_threshold, max_cycle_gap=max_cycle_gap)
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return tracker
        except OSError as error:
            LOGGER.warning("Finding tracker could not load state from %s: %s", path, error)
            return tracker

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            LOGGER.warning("Finding tracker could not load state from %s: %s", path, error)
            return tracker

        try:
            history = _HISTORY_ADAPTER.validate_python(data)
        except ValidationError:
            return tracker

        tracker._history = {signature: list(cycles) for signature, cycles in history.items()}
        return tracker
