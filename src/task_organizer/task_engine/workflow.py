"""Kanban columns, drop gestures and expand/collapse rows.

The status workflow is a free graph: any status may move to any other.  A
drag gesture is resolved by the caller into :class:`DropOnTask` (reorder,
possibly crossing columns) or :class:`DropOnColumn` (status change only), and
:func:`resolve_drop` turns it into mutation requests.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from ..constants import DEFAULT_CUSTOM_COLUMN_COLOR, DEFAULT_ORDER_PRECISION, DEFAULT_ORDER_STEP
from .dependencies import is_blocked
from .errors import Failure
from .model import Column, Task, default_columns, is_built_in_status, normalize_status
from .ordering import SortMode, plan_move_to_column, plan_reorder, sort_tasks
from .requests import ColumnMigrationRequest, Outcome, ReorderScope
from .store import TaskStore


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

def build_columns(custom: Iterable[Column] = ()) -> list[Column]:
    """Merge stored columns with the synthesized built-in ones.

    A stored column whose key is built-in replaces the default in place; any
    built-in key without a record gets its default column.  The result is
    ordered by ``order`` (built-ins first on ties, then by name).
    """
    custom = list(custom)
    customized = {c.status_key for c in custom}
    remaining = [c for c in default_columns() if c.status_key not in customized]
    merged = custom + remaining
    return sorted(merged, key=lambda c: (c.order, not c.is_built_in, c.name))


def find_column(columns: Iterable[Column], column_key: str) -> Optional[Column]:
    """Look a column up by record id or status key."""
    for col in columns:
        if column_key in (col.id, col.status_key):
            return col
    return None


def slugify_status_key(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def new_column(
    columns: Iterable[Column],
    name: str,
    color: Optional[str] = None,
    status_key: Optional[str] = None,
) -> Column:
    """Draft a custom column placed after every existing one.

    Raises :class:`ValueError` for a blank name or a key already on the board.
    """
    if not name or not name.strip():
        raise ValueError("Column name is required")
    columns = list(columns) or default_columns()
    key = status_key or slugify_status_key(name)
    if any(c.status_key == key for c in columns):
        raise ValueError(f"A column with status key '{key}' already exists")
    max_order = max(c.order for c in columns)
    return Column(
        status_key=key,
        name=name.strip(),
        color=color or DEFAULT_CUSTOM_COLUMN_COLOR,
        order=max_order + 1,
        is_built_in=is_built_in_status(key),
    )


def reorder_columns(columns: Iterable[Column], column_key: str, new_order: int) -> list[Column]:
    """Move one column to slot *new_order*, shifting the ones in between.

    Returns the full column list with updated ``order`` values, sorted.
    Raises :class:`KeyError` when the column is unknown.
    """
    columns = sorted(columns, key=lambda c: c.order)
    moving = find_column(columns, column_key)
    if moving is None:
        raise KeyError(f"Column {column_key} not found")
    old_order = moving.order
    updated: list[Column] = []
    for col in columns:
        order = col.order
        if col is moving:
            order = new_order
        elif old_order < new_order and old_order < col.order <= new_order:
            order = col.order - 1
        elif old_order > new_order and new_order <= col.order < old_order:
            order = col.order + 1
        updated.append(Column(
            status_key=col.status_key,
            name=col.name,
            color=col.color,
            order=order,
            is_built_in=col.is_built_in,
            id=col.id,
        ))
    return sorted(updated, key=lambda c: c.order)


def plan_column_deletion(
    columns: Iterable[Column],
    store: TaskStore,
    column_key: str,
    fallback_status_key: Optional[str],
) -> Outcome:
    """Compute the migration for deleting a column.

    ``fallback_status_key`` is mandatory; every task in the deleted bucket is
    listed in the request so the collaborator can move it.
    """
    if not fallback_status_key or not fallback_status_key.strip():
        return Outcome.failed(Failure.invalid_argument(
            f"Deleting column {column_key} requires a fallback status key"
        ))
    column = find_column(columns, column_key)
    if column is None:
        return Outcome.failed(Failure.stale_reference(f"Column {column_key} not found"))
    fallback = normalize_status(fallback_status_key.strip())
    if fallback == column.status_key:
        return Outcome.failed(Failure.invalid_argument(
            f"Fallback status must differ from the deleted column's key '{column.status_key}'"
        ))
    moved = tuple(t.id for t in store if normalize_status(t.status) == column.status_key)
    return Outcome.of(ColumnMigrationRequest(
        column_id=column.key,
        status_key=column.status_key,
        fallback_status_key=fallback,
        task_ids=moved,
    ))


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------

@dataclass
class BoardColumn:
    column: Column
    tasks: list[Task] = field(default_factory=list)
    subtasks: dict[str, list[Task]] = field(default_factory=dict)
    # Ids of cards and listed subtasks that wait on an unfinished blocker.
    blocked: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.column.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
            "subtasks": {pid: [s.to_dict() for s in subs] for pid, subs in self.subtasks.items()},
            "blocked": sorted(self.blocked),
        }


@dataclass
class Board:
    columns: list[BoardColumn]
    unmapped: list[Task] = field(default_factory=list)

    def column(self, status_key: str) -> Optional[BoardColumn]:
        for bc in self.columns:
            if bc.column.status_key == status_key:
                return bc
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [bc.to_dict() for bc in self.columns],
            "unmapped": [t.to_dict() for t in self.unmapped],
        }


def build_board(
    store: TaskStore,
    visible: Iterable[Task],
    columns: Iterable[Column],
    sort_mode: Union[str, SortMode] = SortMode.MANUAL,
) -> Board:
    """Group the visible top-level tasks by column.

    Subtasks are not cards of their own; each card lists its visible children
    in manual order.  Tasks whose status matches no column land in
    ``unmapped``.
    """
    visible = list(visible)
    visible_ids = {t.id for t in visible}
    board = Board(columns=[BoardColumn(column=c) for c in columns])
    by_key = {bc.column.status_key: bc for bc in board.columns}

    cards = [t for t in visible if t.is_root or store.is_orphan(t)]
    for task in sort_tasks(cards, sort_mode):
        bucket = by_key.get(normalize_status(task.status))
        if bucket is None:
            board.unmapped.append(task)
            continue
        bucket.tasks.append(task)
        children = [c for c in store.children_of(task.id) if c.id in visible_ids]
        if children:
            bucket.subtasks[task.id] = children
        bucket.blocked.update(t.id for t in (task, *children) if is_blocked(store, t))
    return board


# ---------------------------------------------------------------------------
# Drop gestures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DropOnTask:
    task_id: str
    target_task_id: str


@dataclass(frozen=True)
class DropOnColumn:
    task_id: str
    status_key: str


DropGesture = Union[DropOnTask, DropOnColumn]


def resolve_drop(
    store: TaskStore,
    gesture: DropGesture,
    *,
    step: float = DEFAULT_ORDER_STEP,
    precision: float = DEFAULT_ORDER_PRECISION,
) -> Outcome:
    """Turn a board gesture into requests.

    A drop on a card reorders within the card's status bucket and, when the
    card sits in another column, also moves the task there.  A drop on an
    empty column body only changes status.
    """
    if isinstance(gesture, DropOnColumn):
        return plan_move_to_column(store, gesture.task_id, gesture.status_key)
    return plan_reorder(
        store,
        gesture.task_id,
        gesture.target_task_id,
        ReorderScope.SAME_STATUS_ONLY,
        step=step,
        precision=precision,
    )


# ---------------------------------------------------------------------------
# Expand / collapse
# ---------------------------------------------------------------------------

def toggle_expanded(expanded: Iterable[str], task_id: str) -> frozenset[str]:
    """Return a new expanded-set with *task_id* flipped."""
    current = set(expanded)
    if task_id in current:
        current.discard(task_id)
    else:
        current.add(task_id)
    return frozenset(current)


@dataclass(frozen=True)
class TreeRow:
    task: Task
    depth: int
    has_children: bool
    expanded: bool
    parent_missing: bool = False
    is_blocked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "depth": self.depth,
            "has_children": self.has_children,
            "expanded": self.expanded,
            "parent_missing": self.parent_missing,
            "is_blocked": self.is_blocked,
        }


def tree_rows(
    store: TaskStore,
    visible: Iterable[Task],
    expanded: Iterable[str] = (),
    sort_mode: Union[str, SortMode] = SortMode.MANUAL,
) -> list[TreeRow]:
    """Flatten the visible forest into display rows.

    Top-level rows are sorted by *sort_mode*; subtasks always follow their
    parent in manual order.  Collapsing a parent hides its rows without
    touching the filtered set.  A visible subtask is only reachable through a
    visible parent; tasks whose parent is missing from the snapshot are shown
    at the top level flagged ``parent_missing``.
    """
    visible = list(visible)
    visible_ids = {t.id for t in visible}
    expanded = frozenset(expanded)
    rows: list[TreeRow] = []

    def _walk(task: Task, depth: int, parent_missing: bool, seen: frozenset[str]) -> None:
        children = [c for c in store.children_of(task.id) if c.id in visible_ids]
        is_open = task.id in expanded
        rows.append(TreeRow(
            task=task,
            depth=depth,
            has_children=bool(children),
            expanded=is_open,
            parent_missing=parent_missing,
            is_blocked=is_blocked(store, task),
        ))
        if not is_open:
            return
        for child in children:
            if child.id not in seen:
                _walk(child, depth + 1, False, seen | {child.id})

    top = [t for t in visible if t.is_root or store.is_orphan(t)]
    for task in sort_tasks(top, sort_mode):
        _walk(task, 0, store.is_orphan(task), frozenset({task.id}))
    return rows
