"""Interruptible delays between cycles."""

from __future__ import annotations

import threading
from typing import List


class LoopTimer:
    """Sleep that ends early when :meth:`wake` is called."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def delay(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return True when woken early."""
        woken = self._event.wait(max(0.0, seconds))
        self._event.clear()
        return woken

    def wake(self) -> None:
        self._event.set()


class ImmediateTimer(LoopTimer):
    """Timer that never blocks and records requested delays."""

    def __init__(self) -> None:
        super().__init__()
        self.delays: List[float] = []
        self.wakes = 0

    def delay(self, seconds: float) -> bool:
        self.delays.append(seconds)
        return False

    def wake(self) -> None:
        self.wakes += 1
