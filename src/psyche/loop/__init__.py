"""Cycle orchestration, idle handling and loop persistence."""

from .events import EventSink, InMemoryEventSink, LoggingEventSink
from .idle_handler import IdleHandler, IdleHandlerResult
from .orchestrator import LoopOrchestrator
from .rate_limit_state import RateLimitStateManager
from .state_store import LoopStateStore, PersistedLoopState
from .timer import ImmediateTimer, LoopTimer
from .types import (
    FATAL_EXIT_CODE,
    RESTART_EXIT_CODE,
    CycleResult,
    LoopConfig,
    LoopEvent,
    LoopMetrics,
    LoopState,
    LoopStateError,
)

__all__ = [
    "CycleResult",
    "EventSink",
    "IdleHandler",
    "IdleHandlerResult",
    "ImmediateTimer",
    "InMemoryEventSink",
    "LoggingEventSink",
    "LoopConfig",
    "LoopEvent",
    "LoopMetrics",
    "LoopOrchestrator",
    "LoopState",
    "LoopStateError",
    "LoopStateStore",
    "PersistedLoopState",
    "FATAL_EXIT_CODE",
    "RESTART_EXIT_CODE",
    "RateLimitStateManager",
]
