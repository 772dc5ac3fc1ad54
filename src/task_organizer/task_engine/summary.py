"""Project summary figures computed from a task list."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .model import Task, TaskPriority, TaskStatus, normalize_status


@dataclass
class ProjectSummary:
    """Counts shown on the project overview."""

    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    completion_rate: int = 0  # percent, rounded
    urgent: int = 0
    high_priority: int = 0
    overdue: int = 0
    assigned: int = 0
    unassigned: int = 0
    parent_tasks: int = 0
    subtasks: int = 0
    # Sum of days left (negative when late) over open top-level tasks with a due date.
    days_until_delivery: int = 0
    open_parents_with_due_date: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _days_until(due: datetime, now: datetime) -> int:
    return math.ceil((due.timestamp() - now.timestamp()) / 86400)


def summarize(tasks: Iterable[Task], now: Optional[datetime] = None) -> ProjectSummary:
    now = now or datetime.now(timezone.utc)
    tasks = list(tasks)
    summary = ProjectSummary(total=len(tasks))
    summary.by_status = {s.value: 0 for s in TaskStatus}
    done = TaskStatus.DONE.value

    for t in tasks:
        status = normalize_status(t.status)
        summary.by_status[status] = summary.by_status.get(status, 0) + 1
        if t.priority == TaskPriority.URGENT.value:
            summary.urgent += 1
        elif t.priority == TaskPriority.HIGH.value:
            summary.high_priority += 1
        if t.assignee_id:
            summary.assigned += 1
        if t.is_root:
            summary.parent_tasks += 1
        else:
            summary.subtasks += 1
        if t.due_date is not None and status != done:
            if t.due_date.timestamp() < now.timestamp():
                summary.overdue += 1
            if t.is_root:
                summary.days_until_delivery += _days_until(t.due_date, now)
                summary.open_parents_with_due_date += 1

    summary.unassigned = summary.total - summary.assigned
    if summary.total:
        summary.completion_rate = round(summary.by_status.get(done, 0) / summary.total * 100)
    return summary
