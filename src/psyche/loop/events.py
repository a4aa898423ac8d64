"""Sinks for loop lifecycle and cycle events."""

from __future__ import annotations

import logging
import threading
from typing import List, Protocol

from .types import LoopEvent

__all__ = ["EventSink", "InMemoryEventSink", "LoggingEventSink"]

EVENT_LOGGER = logging.getLogger("psyche.events")


class EventSink(Protocol):
    def emit(self, event: LoopEvent) -> None:
        ...


class InMemoryEventSink:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[LoopEvent] = []

    def emit(self, event: LoopEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[LoopEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> List[LoopEvent]:
        return [event for event in self.events if event.type == event_type]


class LoggingEventSink:
    """Mirror events into the ``psyche.events`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def emit(self, event: LoopEvent) -> None:
        EVENT_LOGGER.log(self._level, "%s %s", event.type, event.data)
