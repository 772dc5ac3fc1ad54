"""Gantt and calendar projections.

All day arithmetic happens on calendar dates obtained by normalizing each
instant to its local day first, so time-of-day components never shift a bar
by one column.  Durations count both endpoints.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Iterable, Optional, Union

from .model import Task
from .ordering import SortMode, sort_tasks
from .store import TaskStore


def local_day(value: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of *value* in *tz* (system local time when ``None``).

    Naive datetimes are taken to already be in the target zone.
    """
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(tz).date()


def end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def _month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


# ---------------------------------------------------------------------------
# Gantt layout
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GanttDay:
    index: int
    date: date

    @property
    def is_first_of_month(self) -> bool:
        return self.date.day == 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "date": self.date.isoformat(),
            "day_of_month": self.date.day,
            "is_first_of_month": self.is_first_of_month,
            "month": _month_key(self.date),
        }


@dataclass(frozen=True)
class MonthGroup:
    year: int
    month: int
    start_index: int
    day_count: int

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def name(self) -> str:
        return date(self.year, self.month, 1).strftime("%b %Y")

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "start_index": self.start_index,
            "day_count": self.day_count,
        }


@dataclass(frozen=True)
class GanttBar:
    start_index: int
    end_index: int

    @property
    def duration(self) -> int:
        return self.end_index - self.start_index + 1

    def to_dict(self) -> dict[str, Any]:
        return {"start_index": self.start_index, "end_index": self.end_index, "duration": self.duration}


@dataclass(frozen=True)
class GanttRow:
    task: Task
    depth: int
    bar: Optional[GanttBar]
    has_children: bool = False
    expanded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "depth": self.depth,
            "bar": self.bar.to_dict() if self.bar else None,
            "has_children": self.has_children,
            "expanded": self.expanded,
        }


@dataclass
class GanttLayout:
    start: Optional[date] = None
    end: Optional[date] = None
    days: list[GanttDay] = field(default_factory=list)
    months: list[MonthGroup] = field(default_factory=list)
    rows: list[GanttRow] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def total_days(self) -> int:
        return len(self.days)

    def row(self, task_id: str) -> Optional[GanttRow]:
        for r in self.rows:
            if r.task.id == task_id:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "total_days": self.total_days,
            "days": [d.to_dict() for d in self.days],
            "months": [m.to_dict() for m in self.months],
            "rows": [r.to_dict() for r in self.rows],
        }


def group_months(days: Iterable[GanttDay]) -> list[MonthGroup]:
    """Count consecutive days sharing a (year, month)."""
    groups: list[MonthGroup] = []
    for day in days:
        last = groups[-1] if groups else None
        if last is not None and (last.year, last.month) == (day.date.year, day.date.month):
            groups[-1] = MonthGroup(last.year, last.month, last.start_index, last.day_count + 1)
        else:
            groups.append(MonthGroup(day.date.year, day.date.month, day.index, 1))
    return groups


def _collect_rows(
    store: TaskStore,
    visible: list[Task],
    expanded: frozenset[str],
    sort_mode: SortMode,
) -> list[tuple[Task, int, bool, bool]]:
    visible_ids = {t.id for t in visible}
    rows: list[tuple[Task, int, bool, bool]] = []

    def _add(task: Task, depth: int, seen: frozenset[str]) -> None:
        children = [c for c in store.children_of(task.id) if c.id in visible_ids]
        is_open = task.id in expanded
        rows.append((task, depth, bool(children), is_open))
        if not is_open:
            return
        for child in children:
            if child.id not in seen:
                _add(child, depth + 1, seen | {child.id})

    roots = [t for t in visible if t.is_scheduled and (t.is_root or store.is_orphan(t))]
    for root in sort_tasks(roots, sort_mode):
        _add(root, 0, frozenset({root.id}))
    return rows


def project_gantt(
    store: TaskStore,
    visible: Optional[Iterable[Task]] = None,
    expanded: Iterable[str] = (),
    *,
    tz: Optional[tzinfo] = None,
    sort_mode: Union[str, SortMode] = SortMode.MANUAL,
) -> GanttLayout:
    """Lay the visible tasks out on a day grid.

    Only top-level tasks with both dates open a row.  An expanded row pulls in
    all of its visible subtasks, dated or not; undated rows carry no bar.  The
    range runs from the earliest start to the end of the month of the latest
    due date among the rows that have both dates.
    """
    visible = store.all() if visible is None else list(visible)
    entries = _collect_rows(store, visible, frozenset(expanded), SortMode.parse(sort_mode))
    if not entries:
        return GanttLayout()

    spans: dict[str, tuple[date, date]] = {}
    for task, _, _, _ in entries:
        if task.is_scheduled:
            first = local_day(task.start_date, tz)  # type: ignore[arg-type]
            last = local_day(task.due_date, tz)  # type: ignore[arg-type]
            spans[task.id] = (first, max(first, last))

    range_start = min(first for first, _ in spans.values())
    range_end = end_of_month(max(last for _, last in spans.values()))
    total = (range_end - range_start).days + 1
    days = [GanttDay(i, range_start + timedelta(days=i)) for i in range(total)]

    rows: list[GanttRow] = []
    for task, depth, has_children, is_open in entries:
        bar: Optional[GanttBar] = None
        span = spans.get(task.id)
        if span is not None:
            bar = GanttBar(
                start_index=(span[0] - range_start).days,
                end_index=(span[1] - range_start).days,
            )
        rows.append(GanttRow(task=task, depth=depth, bar=bar, has_children=has_children, expanded=is_open))

    return GanttLayout(
        start=range_start,
        end=range_end,
        days=days,
        months=group_months(days),
        rows=rows,
    )


def duration_days(task: Task, tz: Optional[tzinfo] = None) -> Optional[int]:
    """Inclusive day count between start and due, or ``None`` if unscheduled."""
    if not task.is_scheduled:
        return None
    first = local_day(task.start_date, tz)  # type: ignore[arg-type]
    last = local_day(task.due_date, tz)  # type: ignore[arg-type]
    return (last - first).days + 1


# ---------------------------------------------------------------------------
# Calendar timeline
# ---------------------------------------------------------------------------

@dataclass
class CalendarMonth:
    year: int
    month: int
    tasks: list[Task] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": date(self.year, self.month, 1).strftime("%B %Y"),
            "tasks": [t.to_dict() for t in self.tasks],
        }


def project_calendar(tasks: Iterable[Task], tz: Optional[tzinfo] = None) -> list[CalendarMonth]:
    """Group tasks that have any date by the month of ``start_date or due_date``."""
    dated = [t for t in tasks if t.start_date is not None or t.due_date is not None]
    anchored = sorted(
        ((t.start_date or t.due_date, t) for t in dated),
        key=lambda pair: pair[0].timestamp(),  # type: ignore[union-attr]
    )
    months: dict[tuple[int, int], CalendarMonth] = {}
    for when, task in anchored:
        day = local_day(when, tz)  # type: ignore[arg-type]
        bucket = months.setdefault((day.year, day.month), CalendarMonth(day.year, day.month))
        bucket.tasks.append(task)
    return [months[k] for k in sorted(months)]
