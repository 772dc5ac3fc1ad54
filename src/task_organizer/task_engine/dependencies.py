"""Finish-to-start dependencies between tasks.

A task lists the tasks it waits on in ``blocked_by``.  It counts as blocked
while any of those blockers is present in the snapshot and not done; a
blocker missing from the snapshot is ignored.  Edges are only planned here;
the change itself travels to the sink as a ``blocked_by`` field update.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Optional

from .errors import Failure
from .model import Task, TaskStatus, normalize_status
from .requests import FieldUpdateRequest, Outcome
from .store import TaskStore


def dependency_graph(store: TaskStore, task_id: Optional[str] = None) -> dict[str, list[str]]:
    """Return adjacency list: ``{task_id: [blocked_by_ids]}``.

    If *task_id* is given, return only the connected subgraph around it,
    following edges in both directions.
    """
    graph: dict[str, list[str]] = {t.id: list(t.blocked_by) for t in store}
    if task_id is None:
        return graph
    dependents: dict[str, list[str]] = {}
    for tid, deps in graph.items():
        for dep_id in deps:
            dependents.setdefault(dep_id, []).append(tid)

    visited: set[str] = set()
    queue: deque[str] = deque([task_id])
    sub: dict[str, list[str]] = {}
    while queue:
        nid = queue.popleft()
        if nid in visited or nid not in graph:
            continue
        visited.add(nid)
        sub[nid] = graph[nid]
        queue.extend(graph[nid])
        queue.extend(dependents.get(nid, []))
    return sub


def dependents_of(store: TaskStore, task_id: str) -> list[Task]:
    """Tasks that list *task_id* as a blocker."""
    return [t for t in store if task_id in t.blocked_by]


def open_blockers(store: TaskStore, task: Task) -> list[Task]:
    """Blockers of *task* that exist and are not done yet."""
    blockers = (store.get(dep_id) for dep_id in task.blocked_by)
    return [b for b in blockers if b is not None and normalize_status(b.status) != TaskStatus.DONE.value]


def is_blocked(store: TaskStore, task: Task) -> bool:
    return bool(open_blockers(store, task))


def would_cycle(store: TaskStore, task_id: str, depends_on_id: str) -> bool:
    """True when making *task_id* wait on *depends_on_id* closes a loop.

    That is the case when *task_id* is already reachable from
    *depends_on_id* by following ``blocked_by`` edges.
    """
    visited: set[str] = set()
    queue: deque[str] = deque([depends_on_id])
    while queue:
        current = queue.popleft()
        if current == task_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        node = store.get(current)
        if node is not None:
            queue.extend(node.blocked_by)
    return False


def plan_add_dependency(store: TaskStore, task_id: str, depends_on_id: str) -> Outcome:
    """Resolve "*task_id* waits on *depends_on_id*" into a field update."""
    if not task_id or not depends_on_id:
        return Outcome.failed(Failure.invalid_argument("Both task ids are required", task_id or None))
    if task_id == depends_on_id:
        return Outcome.failed(Failure.invalid_argument("A task cannot depend on itself", task_id))
    task = store.get(task_id)
    if task is None:
        return Outcome.failed(Failure.stale_reference(f"Task {task_id} not found", task_id))
    blocker = store.get(depends_on_id)
    if blocker is None:
        return Outcome.failed(Failure.stale_reference(f"Task {depends_on_id} not found", depends_on_id))
    if task.project_id and blocker.project_id and task.project_id != blocker.project_id:
        return Outcome.failed(Failure.invalid_argument("Dependencies must stay within one project", task_id))
    if depends_on_id in task.blocked_by:
        return Outcome.failed(
            Failure.invalid_argument(f"Task {task_id} already depends on {depends_on_id}", task_id)
        )
    if would_cycle(store, task_id, depends_on_id):
        return Outcome.failed(
            Failure.invalid_argument(f"Adding dependency {task_id} → {depends_on_id} would create a cycle", task_id)
        )
    fields = {"blocked_by": [*task.blocked_by, depends_on_id]}
    return Outcome.of(FieldUpdateRequest(task_id=task_id, fields=fields))


def plan_remove_dependency(store: TaskStore, task_id: str, depends_on_id: str) -> Outcome:
    task = store.get(task_id)
    if task is None:
        return Outcome.failed(Failure.stale_reference(f"Task {task_id} not found", task_id))
    if depends_on_id not in task.blocked_by:
        return Outcome.failed(
            Failure.stale_reference(f"Task {task_id} does not depend on {depends_on_id}", task_id)
        )
    fields = {"blocked_by": [d for d in task.blocked_by if d != depends_on_id]}
    return Outcome.of(FieldUpdateRequest(task_id=task_id, fields=fields))


def describe_dependencies(store: TaskStore, task: Task) -> dict[str, Any]:
    """Indicator data for one task: its blockers, its dependents, and whether it can start."""
    return {
        "task_id": task.id,
        "blocked_by": [store.get(d).to_dict() for d in task.blocked_by if d in store],
        "dependents": [t.to_dict() for t in dependents_of(store, task.id)],
        "open_blockers": [b.id for b in open_blockers(store, task)],
        "is_blocked": is_blocked(store, task),
    }
