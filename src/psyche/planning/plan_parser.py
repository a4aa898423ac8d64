"""Markdown plan parsing, dispatch ordering and checkbox completion.

The plan file is both a human-edited document and the task queue. Every call
parses the markdown afresh; completion produces new markdown text instead of
mutating a task tree, so external edits are never shadowed by stale state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence

__all__ = [
    "PlanTask",
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

_TASKS_HEADER_RE = re.compile(r"^## Tasks")
_TASK_LINE_RE = re.compile(r"^(\s*)- \[([ x~])\] (.+)$")
_CHECKBOX_RE = re.compile(r"- \[[ ~]\] ")
_TRIGGER_RE = re.compile(r"WHEN\s+`([^`]+)`")
_CURRENT_GOAL_RE = re.compile(r"## Current Goal\s*\n([^\n#]*)")


class TaskStatus(str, Enum):
    """Checkbox states recognised in the Tasks section."""

    PENDING = "PENDING"
    COMPLETE = "COMPLETE"
    DEFERRED = "DEFERRED"


class TaskNotFoundError(KeyError):
    """Raised when a task id does not resolve against the current plan."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(task_id)

    def __str__(self) -> str:
        return f"Task {self.task_id} not found"


class TriggerEvaluator(Protocol):
    """Decides whether a deferred task's ``WHEN`` condition currently holds."""

    def evaluate(self, condition: str) -> bool:
        ...


@dataclass(slots=True)
class PlanTask:
    """One checkbox line of the plan, with its nested sub-tasks."""

    id: str
    title: str
    status: TaskStatus
    children: List["PlanTask"] = field(default_factory=list)
    trigger_condition: Optional[str] = None
    line_index: int = field(default=-1, compare=False, repr=False)


@dataclass(slots=True)
class _RawTaskLine:
    line_index: int
    indent: int
    marker: str
    title: str


def parse_current_goal(markdown: str) -> str:
    match = _CURRENT_GOAL_RE.search(markdown)
    if not match:
        return ""
    return match.group(1).strip()


def parse_tasks(markdown: str) -> List[PlanTask]:
    """Build the task forest from the first ``## Tasks`` section."""
    raw_lines = _extract_task_lines(markdown.split("\n"))
    if not raw_lines:
        return []
    return _build_tree(raw_lines, None)


def find_next_actionable(
    tasks: Sequence[PlanTask],
    evaluator: Optional[TriggerEvaluator] = None,
) -> Optional[PlanTask]:
    """Return the first dispatchable leaf in depth-first, left-to-right order.

    Complete subtrees are skipped. Deferred tasks stay deferred unless an
    evaluator is supplied and reports their trigger as satisfied. Parents are
    never returned themselves, only their actionable descendants.
    """
    for task in tasks:
        if task.status is TaskStatus.COMPLETE:
            continue
        if task.status is TaskStatus.DEFERRED:
            if evaluator is None or not task.trigger_condition:
                continue
            if not evaluator.evaluate(task.trigger_condition):
                continue
        if task.children:
            child = find_next_actionable(task.children, evaluator)
            if child is not None:
                return child
        else:
            return task
    return None


def mark_complete(markdown: str, task_id: str) -> str:
    """Return ``markdown`` with the checkbox of ``task_id`` flipped to ``[x]``."""
    lines = markdown.split("\n")
    tasks = parse_tasks(markdown)
    task = find_task(tasks, task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    if task.status is TaskStatus.COMPLETE:
        return markdown

    line_index = task.line_index
    if not 0 <= line_index < len(lines):
        raise TaskNotFoundError(task_id)
    lines[line_index] = _CHECKBOX_RE.sub("- [x] ", lines[line_index], count=1)
    return "\n".join(lines)


def is_complete(tasks: Iterable[PlanTask]) -> bool:
    return all(
        task.status is TaskStatus.COMPLETE and (not task.children or is_complete(task.children))
        for task in tasks
    )


def is_empty(tasks: Sequence[PlanTask]) -> bool:
    return len(tasks) == 0


def find_task(tasks: Iterable[PlanTask], task_id: str) -> Optional[PlanTask]:
    for task in tasks:
        if task.id == task_id:
            return task
        found = find_task(task.children, task_id)
        if found is not None:
            return found
    return None


def flatten_tasks(tasks: Iterable[PlanTask]) -> List[PlanTask]:
    flattened: List[PlanTask] = []
    for task in tasks:
        flattened.append(task)
        flattened.extend(flatten_tasks(task.children))
    return flattened


def _extract_task_lines(lines: Sequence[str]) -> List[_RawTaskLine]:
    start = next((index for index, line in enumerate(lines) if _TASKS_HEADER_RE.match(line)), None)
    if start is None:
        return []

    collected: List[_RawTaskLine] = []
    for index in range(start + 1, len(lines)):
        line = lines[index]
        if line.startswith("#"):
            break
        match = _TASK_LINE_RE.match(line)
        if match:
            collected.append(
                _RawTaskLine(
                    line_index=index,
                    indent=len(match.group(1)),
                    marker=match.group(2),
                    title=match.group(3),
                )
            )
    return collected


def _build_tree(raw_lines: Sequence[_RawTaskLine], parent_id: Optional[str]) -> List[PlanTask]:
    # Siblings sit at the shallowest indentation of the range; deeper lines
    # belong to the closest preceding sibling. Leading orphans are dropped.
    level = min(raw.indent for raw in raw_lines)
    tasks: List[PlanTask] = []
    counter = 1
    index = 0
    while index < len(raw_lines):
        raw = raw_lines[index]
        if raw.indent != level:
            index += 1
            continue

        end = index + 1
        while end < len(raw_lines) and raw_lines[end].indent > level:
            end += 1

        task_id = f"task-{counter}" if parent_id is None else f"{parent_id}.{counter}"
        nested = raw_lines[index + 1 : end]
        trigger = _TRIGGER_RE.search(raw.title)
        tasks.append(
            PlanTask(
                id=task_id,
                title=raw.title,
                status=_status_for(raw.marker),
                children=_build_tree(nested, task_id) if nested else [],
                trigger_condition=trigger.group(1) if trigger else None,
                line_index=raw.line_index,
            )
        )
        counter += 1
        index = end
    return tasks


def _status_for(marker: str) -> TaskStatus:
    if marker == "x":
        return TaskStatus.COMPLETE
    if marker == "~":
        return TaskStatus.DEFERRED
    return TaskStatus.PENDING
