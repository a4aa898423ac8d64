"""Trigger evaluators for deferred plan tasks."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

__all__ = ["ShellTriggerEvaluator", "StaticTriggerEvaluator"]

LOGGER = logging.getLogger(__name__)


class ShellTriggerEvaluator:
    """Treat the trigger as a shell command; exit status 0 means the condition holds."""

    def __init__(self, *, cwd: Optional[Path] = None, timeout: float = 30.0) -> None:
        self._cwd = cwd
        self._timeout = timeout

    def evaluate(self, condition: str) -> bool:
        try:
            completed = subprocess.run(  # noqa: S602 - plan triggers are operator-authored shell
                condition,
                shell=True,
                cwd=self._cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as error:
            LOGGER.debug("Trigger %r could not be evaluated: %s", condition, error)
            return False
        return completed.returncode == 0


class StaticTriggerEvaluator:
    """Evaluator backed by a fixed set of satisfied conditions."""

    def __init__(self, satisfied: set[str] | None = None) -> None:
        self.satisfied = set(satisfied or ())
        self.calls: list[str] = []

    def evaluate(self, condition: str) -> bool:
        self.calls.append(condition)
        return condition in self.satisfied
