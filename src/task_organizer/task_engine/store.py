"""Snapshot index over a flat task list.

A :class:`TaskStore` is built once per snapshot delivered by the persistence
collaborator and is never mutated afterwards.  It gives O(1) parent lookup and
O(children) child lookup so that filters and projections do not rescan the
list for every predicate.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Iterator, Mapping, Optional

from .errors import Failure
from .model import Task


class TaskStore:
    """Read-only index: id → task, parent id → children, task id → tags.

    Parameters
    ----------
    tasks:
        The snapshot, in the collaborator's order.
    task_tags:
        Optional task-tag association (``TaskSource.get_tags_for_task``).
        When a task has an entry here it wins over the ``tag_ids`` embedded
        in the record.
    """

    def __init__(
        self,
        tasks: Iterable[Task],
        task_tags: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        self._tasks: list[Task] = list(tasks)
        self._by_id: dict[str, Task] = {t.id: t for t in self._tasks}
        children: dict[Optional[str], list[Task]] = defaultdict(list)
        for t in self._tasks:
            children[t.parent_id or None].append(t)
        self._children: dict[Optional[str], list[str]] = {
            parent_id: [c.id for c in sorted(kids, key=lambda c: c.order)]
            for parent_id, kids in children.items()
        }
        self._tags: dict[str, frozenset[str]] = {
            task_id: frozenset(tags) for task_id, tags in (task_tags or {}).items()
        }

    # -- basic access -------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id

    def all(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        return self._by_id.get(task_id)

    # -- hierarchy ----------------------------------------------------------

    def parent_of(self, task: Task) -> Optional[Task]:
        """Return the parent, or ``None`` for roots and for missing parents."""
        if not task.parent_id:
            return None
        return self._by_id.get(task.parent_id)

    def is_orphan(self, task: Task) -> bool:
        """True when ``parent_id`` points at a task absent from the snapshot."""
        return bool(task.parent_id) and task.parent_id not in self._by_id

    def children_of(self, task_id: Optional[str]) -> list[Task]:
        """Direct children ordered by ``order``; ``None`` yields the roots."""
        return [self._by_id[cid] for cid in self._children.get(task_id, [])]

    def has_children(self, task_id: str) -> bool:
        return bool(self._children.get(task_id))

    def roots(self) -> list[Task]:
        return self.children_of(None)

    def ancestors(self, task: Task) -> Iterator[Task]:
        """Yield parent, grandparent, … stopping at a missing link or a cycle."""
        seen = {task.id}
        current = self.parent_of(task)
        while current is not None and current.id not in seen:
            yield current
            seen.add(current.id)
            current = self.parent_of(current)

    def descendants(self, task_id: str) -> Iterator[Task]:
        stack = list(reversed(self.children_of(task_id)))
        seen: set[str] = {task_id}
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            yield node
            stack.extend(reversed(self.children_of(node.id)))

    def depth(self, task: Task) -> int:
        return sum(1 for _ in self.ancestors(task))

    def siblings(self, task: Task) -> list[Task]:
        """Tasks sharing ``task``'s parent (``task`` included), by order."""
        return self.children_of(task.parent_id or None)

    # -- tags ---------------------------------------------------------------

    def tags_of(self, task_id: str) -> frozenset[str]:
        if task_id in self._tags:
            return self._tags[task_id]
        task = self._by_id.get(task_id)
        return frozenset(task.tag_ids) if task is not None else frozenset()

    # -- integrity ----------------------------------------------------------

    def orphans(self) -> list[Task]:
        return [t for t in self._tasks if self.is_orphan(t)]

    def orphan_failures(self) -> list[Failure]:
        """``OrphanedParent`` failures for rendering "parent not found" placeholders."""
        return [Failure.orphaned_parent(t.id, str(t.parent_id)) for t in self.orphans()]
