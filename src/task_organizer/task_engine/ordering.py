"""Manual ordering and derived sort modes.

Manual order lives in each task's ``order`` float.  A reorder computes one new
value strictly between the neighbors at the insertion point; when the gap is
too small (or the scope already holds duplicate values) the whole scope is
renumbered with evenly spaced integers instead.

The derived sort modes never touch ``order``; they only rearrange the list
they are given.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from loguru import logger

from ..constants import DEFAULT_ORDER_PRECISION, DEFAULT_ORDER_STEP
from .errors import Failure
from .model import Task, TaskPriority, normalize_status
from .requests import Outcome, ReorderRequest, ReorderScope, StatusChangeRequest
from .store import TaskStore


class SortMode(str, Enum):
    MANUAL = "manual"
    PRIORITY = "priority"
    START_DATE = "startDate"
    DUE_DATE = "dueDate"

    @classmethod
    def parse(cls, value: Union[str, "SortMode", None]) -> "SortMode":
        if value is None or value == "":
            return cls.MANUAL
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown sort mode '{value}'. Valid: {[m.value for m in cls]}")


class Placement(str, Enum):
    BEFORE = "before"
    AFTER = "after"


# ---------------------------------------------------------------------------
# Derived sort modes
# ---------------------------------------------------------------------------

def _instant(value: Optional[datetime]) -> float:
    """Comparable key for a date; missing dates sort after every real one."""
    if value is None:
        return float("inf")
    return value.timestamp()


def sort_tasks(tasks: Iterable[Task], mode: Union[str, SortMode] = SortMode.MANUAL) -> list[Task]:
    """Return *tasks* sorted for display.  Stable, and ``order`` is untouched."""
    mode = SortMode.parse(mode)
    items = list(tasks)
    if mode is SortMode.MANUAL:
        return sorted(items, key=lambda t: t.order)
    if mode is SortMode.PRIORITY:
        return sorted(items, key=lambda t: TaskPriority.rank(t.priority))
    if mode is SortMode.START_DATE:
        return sorted(items, key=lambda t: _instant(t.start_date))
    return sorted(items, key=lambda t: _instant(t.due_date))


# ---------------------------------------------------------------------------
# Manual reordering
# ---------------------------------------------------------------------------

def scope_members(store: TaskStore, anchor: Task, scope: Union[str, ReorderScope]) -> list[Task]:
    """Tasks sharing *anchor*'s order scope, sorted by current ``order``.

    The scope is always the anchor's siblings; ``sameStatusOnly`` narrows it to
    the anchor's status bucket.
    """
    scope = ReorderScope.parse(scope)
    members = store.siblings(anchor)
    if scope is ReorderScope.SAME_STATUS_ONLY:
        status = normalize_status(anchor.status)
        members = [t for t in members if normalize_status(t.status) == status]
    return sorted(members, key=lambda t: t.order)


def renumber(tasks: Sequence[Task], step: float = DEFAULT_ORDER_STEP) -> dict[str, float]:
    """Evenly spaced orders for *tasks* in their given sequence."""
    return {t.id: float(i * step) for i, t in enumerate(tasks)}


def _between(
    prev: Optional[Task],
    nxt: Optional[Task],
    step: float,
    precision: float,
) -> Optional[float]:
    """A value strictly between the neighbors, or ``None`` if precision ran out."""
    if prev is not None and nxt is not None:
        gap = nxt.order - prev.order
        if gap <= precision:
            return None
        mid = prev.order + gap / 2
        if not prev.order < mid < nxt.order:
            return None
        return mid
    if prev is not None:
        return prev.order + step
    if nxt is not None:
        return nxt.order - step
    return 0.0


def plan_reorder(
    store: TaskStore,
    task_id: str,
    target_id: str,
    scope: Union[str, ReorderScope] = ReorderScope.ANY,
    placement: Optional[Placement] = None,
    *,
    step: float = DEFAULT_ORDER_STEP,
    precision: float = DEFAULT_ORDER_PRECISION,
) -> Outcome:
    """Compute the request that moves *task_id* next to *target_id*.

    Without an explicit *placement* the drag direction decides: a task that
    currently sits before the target lands after it, anything else lands
    before it.  When the target lives in another status bucket the outcome
    also carries a status change to the target's status.

    Stale ids produce a no-op outcome with a ``StaleReference`` failure; a
    fresh snapshot is expected to follow.
    """
    scope = ReorderScope.parse(scope)
    moved = store.get(task_id)
    if moved is None:
        logger.debug("Reorder dropped: task {} not in snapshot", task_id)
        return Outcome.failed(Failure.stale_reference(f"Task {task_id} not found", task_id))
    target = store.get(target_id)
    if target is None:
        logger.debug("Reorder dropped: target {} not in snapshot", target_id)
        return Outcome.failed(Failure.stale_reference(f"Target task {target_id} not found", task_id))
    if task_id == target_id:
        return Outcome()

    sequence = scope_members(store, target, scope)
    ids = [t.id for t in sequence]
    if placement is None:
        moved_idx = ids.index(task_id) if task_id in ids else None
        target_idx = ids.index(target_id)
        placement = Placement.AFTER if moved_idx is not None and moved_idx < target_idx else Placement.BEFORE

    rest = [t for t in sequence if t.id != task_id]
    insert_at = [t.id for t in rest].index(target_id)
    if placement is Placement.AFTER:
        insert_at += 1
    prev = rest[insert_at - 1] if insert_at > 0 else None
    nxt = rest[insert_at] if insert_at < len(rest) else None

    new_order: Optional[float] = None
    if len({t.order for t in rest}) == len(rest):
        new_order = _between(prev, nxt, step, precision)

    renumbered: dict[str, float] = {}
    if new_order is None:
        arrangement = rest[:insert_at] + [moved] + rest[insert_at:]
        values = renumber(arrangement, step)
        new_order = values.pop(task_id)
        renumbered = {tid: v for tid, v in values.items() if store.get(tid).order != v}  # type: ignore[union-attr]
        logger.info(
            "Renumbered {} tasks in scope of {} ({} candidates)",
            len(renumbered), target_id, len(arrangement),
        )

    requests: list = []
    if normalize_status(moved.status) != normalize_status(target.status):
        requests.append(StatusChangeRequest(task_id=task_id, status_key=normalize_status(target.status)))
    requests.append(
        ReorderRequest(
            task_id=task_id,
            target_id=target_id,
            scope=scope,
            order=new_order,
            renumbered=renumbered,
        )
    )
    return Outcome.of(*requests)


def plan_move_to_column(store: TaskStore, task_id: str, status_key: str) -> Outcome:
    """Status change for a drop on an empty column body; ``order`` is kept."""
    if not status_key or not status_key.strip():
        return Outcome.failed(Failure.invalid_argument("A target status key is required", task_id))
    task = store.get(task_id)
    if task is None:
        return Outcome.failed(Failure.stale_reference(f"Task {task_id} not found", task_id))
    status_key = normalize_status(status_key)
    if normalize_status(task.status) == status_key:
        return Outcome()
    return Outcome.of(StatusChangeRequest(task_id=task_id, status_key=status_key))
