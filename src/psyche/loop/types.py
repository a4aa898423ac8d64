"""Loop state, configuration and per-cycle records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "CycleResult",
    "LoopConfig",
    "LoopEvent",
    "LoopMetrics",
    "LoopState",
    "LoopStateError",
    "FATAL_EXIT_CODE",
    "RESTART_EXIT_CODE",
]

RESTART_EXIT_CODE = 75
FATAL_EXIT_CODE = 1


class LoopState(str, Enum):
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"


class LoopStateError(RuntimeError):
    """Raised for a lifecycle call that is invalid in the current state."""


class LoopConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cycle_delay_ms: int = Field(default=30000, ge=0)
    audit_interval: int = Field(default=20, ge=1)
    max_consecutive_idle_cycles: int = Field(default=1, ge=1)
    evaluate_outcome_enabled: bool = True
    reconsideration_quality_threshold: float = Field(default=70, ge=0, le=100)


@dataclass(slots=True)
class LoopMetrics:
    total_cycles: int = 0
    successful_cycles: int = 0
    failed_cycles: int = 0
    idle_cycles: int = 0
    consecutive_idle_cycles: int = 0
    superego_audits: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class CycleResult:
    """What one cycle did. ``action`` is ``dispatch`` or ``idle``."""

    cycle_number: int
    action: str
    success: bool
    summary: str = ""
    task_id: Optional[str] = None


@dataclass(slots=True)
class LoopEvent:
    type: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)
