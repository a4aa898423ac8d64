"""
Plan model: markdown task parsing, dispatch ordering and trigger evaluation.
"""

from .plan_parser import (
    PlanTask,
    TaskNotFoundError,
    TaskStatus,
    TriggerEvaluator,
    find_next_actionable,
    find_task,
    flatten_tasks,
    is_complete,
    is_empty,
    mark_complete,
    parse_current_goal,
    parse_tasks,
)
from .triggers import ShellTriggerEvaluator, StaticTriggerEvaluator

__all__ = [
    "PlanTask",
    "ShellTriggerEvaluator",
    "StaticTriggerEvaluator",
    "TaskNotFoundError",
    "TaskStatus",
    "TriggerEvaluator",
    "find_next_actionable",
    "find_task",
    "flatten_tasks",
    "is_complete",
    "is_empty",
    "mark_complete",
    "parse_current_goal",
    "parse_tasks",
]
