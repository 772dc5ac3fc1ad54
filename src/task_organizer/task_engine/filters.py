"""Hierarchical filtering that never orphans a matching subtask.

Predicates are evaluated per task against the snapshot index:

* ``search`` matches a root on its own title only; a subtask matches on its own
  title or the title of any ancestor.
* ``status``, ``priority`` and ``assignee_id`` match on the task itself or on
  any *direct* child, so a parent stays visible while work happens below it.
* ``tag_ids`` (AND): the task carries every tag, or, for a subtask, each tag
  is carried by the task or some ancestor (each tag independently).

A task is kept only if every active predicate holds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from .model import Task, normalize_status
from .store import TaskStore

# Sentinel values the board UI sends for "no filter".
_UNSET_VALUES = {None, "", "all"}


@dataclass(frozen=True)
class TaskFilter:
    """Filter specification; unset fields are vacuously true."""

    search: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[str] = None
    tag_ids: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assignee_id: Optional[str] = None,
        tag_ids: Optional[Iterable[str]] = None,
    ) -> "TaskFilter":
        """Normalize raw query values.

        ``"all"`` and blanks become unset and priority is lowercased.  Search
        text is kept as typed unless it is entirely blank.
        """

        def _clean(value: Optional[str]) -> Optional[str]:
            if value is None:
                return None
            value = value.strip()
            return None if value in _UNSET_VALUES else value

        tags = tuple(t for t in (tag_ids or ()) if t not in _UNSET_VALUES)
        return cls(
            search=search if search and search.strip() else None,
            status=normalize_status(_clean(status)) or None,
            priority=(_clean(priority) or "").lower() or None,
            assignee_id=_clean(assignee_id),
            tag_ids=tags,
        )

    @property
    def is_active(self) -> bool:
        return any((self.search, self.status, self.priority, self.assignee_id, self.tag_ids))

    def to_dict(self) -> dict[str, Any]:
        return {
            "search": self.search,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "tag_ids": list(self.tag_ids),
        }


class _FilterPass:
    """One filter invocation; memoizes ancestor searches for its lifetime."""

    def __init__(self, store: TaskStore, spec: TaskFilter) -> None:
        self.store = store
        self.spec = spec
        self._needle = spec.search.lower() if spec.search else ""
        self._title_hit: dict[str, bool] = {}

    # -- search -------------------------------------------------------------

    def _title_matches(self, task: Task) -> bool:
        return self._needle in task.title.lower()

    def _ancestor_title_matches(self, task: Task) -> bool:
        """True if the parent or any further ancestor has a matching title."""
        cached = self._title_hit.get(task.id)
        if cached is not None:
            return cached
        parent = self.store.parent_of(task)
        if parent is None:
            result = False
        else:
            self._title_hit[task.id] = False  # cycle guard while recursing
            result = self._title_matches(parent) or self._ancestor_title_matches(parent)
        self._title_hit[task.id] = result
        return result

    def matches_search(self, task: Task) -> bool:
        if not self._needle:
            return True
        if self._title_matches(task):
            return True
        if task.is_root:
            return False
        return self._ancestor_title_matches(task)

    # -- attribute predicates with one-level child fallback ---------------------

    def _self_or_child(self, task: Task, test: Callable[[Task], bool]) -> bool:
        if test(task):
            return True
        return any(test(child) for child in self.store.children_of(task.id))

    def matches_status(self, task: Task) -> bool:
        wanted = self.spec.status
        if not wanted:
            return True
        return self._self_or_child(task, lambda t: normalize_status(t.status) == wanted)

    def matches_priority(self, task: Task) -> bool:
        wanted = self.spec.priority
        if not wanted:
            return True
        return self._self_or_child(task, lambda t: t.priority.lower() == wanted)

    def matches_assignee(self, task: Task) -> bool:
        wanted = self.spec.assignee_id
        if not wanted:
            return True
        return self._self_or_child(task, lambda t: t.assignee_id == wanted)

    # -- tags -----------------------------------------------------------------

    def _ancestor_has_tag(self, task: Task, tag_id: str) -> bool:
        return any(tag_id in self.store.tags_of(a.id) for a in self.store.ancestors(task))

    def matches_tags(self, task: Task) -> bool:
        selected = self.spec.tag_ids
        if not selected:
            return True
        own = self.store.tags_of(task.id)
        if all(tag in own for tag in selected):
            return True
        if task.is_root:
            return False
        return all(tag in own or self._ancestor_has_tag(task, tag) for tag in selected)

    # -- combined -------------------------------------------------------------

    def accepts(self, task: Task) -> bool:
        return (
            self.matches_search(task)
            and self.matches_status(task)
            and self.matches_priority(task)
            and self.matches_assignee(task)
            and self.matches_tags(task)
        )


def filter_tasks(store: TaskStore, spec: Optional[TaskFilter] = None) -> list[Task]:
    """Return the tasks of *store* that stay visible under *spec*.

    The snapshot order is preserved.  With no active predicate every task is
    returned.
    """
    if spec is None or not spec.is_active:
        return store.all()
    run = _FilterPass(store, spec)
    return [t for t in store if run.accepts(t)]


def task_matches(store: TaskStore, spec: TaskFilter, task: Task) -> bool:
    """Evaluate *spec* for a single task of *store*."""
    return _FilterPass(store, spec).accepts(task)
