"""Task engine: the entry point tying snapshots, views and gestures together.

The engine keeps only the most recent snapshot delivered by its
:class:`~.interfaces.TaskSource`.  Views are computed on demand from that
snapshot; gestures are turned into requests and handed to the
:class:`~.interfaces.MutationSink` without waiting for a result.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Hashable, Iterable, Optional, Union

from loguru import logger

from ..config import OrganizerSettings
from .autosave import DebouncedSaver, TimerFactory, _daemon_timer
from .dependencies import dependency_graph, describe_dependencies, plan_add_dependency, plan_remove_dependency
from .errors import EngineError, Failure
from .filters import TaskFilter, filter_tasks
from .interfaces import MutationSink, TaskSource, Unsubscribe
from .model import Column, Task
from .ordering import Placement, SortMode, plan_move_to_column, plan_reorder, sort_tasks
from .requests import (
    ColumnMigrationRequest,
    FieldUpdateRequest,
    Outcome,
    ReorderRequest,
    ReorderScope,
    StatusChangeRequest,
)
from .store import TaskStore
from .summary import ProjectSummary, summarize
from .timeline import CalendarMonth, GanttLayout, project_calendar, project_gantt
from .workflow import (
    Board,
    DropGesture,
    TreeRow,
    build_board,
    build_columns,
    plan_column_deletion,
    resolve_drop,
    tree_rows,
)


class TaskEngine:
    """Derived views and drag gestures over one project's task snapshot.

    Parameters
    ----------
    source:
        Read side of the persistence collaborator.
    sink:
        Write side of the persistence collaborator.
    settings:
        Ordering, auto-save and timeline settings.
    """

    def __init__(
        self,
        source: TaskSource,
        sink: MutationSink,
        settings: Optional[OrganizerSettings] = None,
        *,
        project_id: Optional[str] = None,
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        self.source = source
        self.sink = sink
        self.settings = settings or OrganizerSettings()
        self.project_id = project_id or self.settings.project_id
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._store: Optional[TaskStore] = None
        self._version: Optional[Hashable] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _index(self, tasks: list[Task]) -> TaskStore:
        tags = self.source.get_task_tags([t.id for t in tasks])
        return TaskStore(tasks, tags)

    def refresh(self) -> TaskStore:
        """Pull a fresh snapshot from the source."""
        version = self.source.snapshot_version(self.project_id)
        store = self._index(self.source.list_tasks(self.project_id))
        with self._lock:
            self._store = store
            self._version = version
        return store

    def attach(self) -> None:
        """Subscribe to snapshot re-delivery from the source."""
        if self._unsubscribe is None:
            self._unsubscribe = self.source.subscribe(self.project_id, self._on_snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, tasks: list[Task]) -> None:
        store = self._index(tasks)
        with self._lock:
            self._store = store
            # A pushed snapshot carries no stamp; the next read re-checks.
            self._version = None
        logger.debug("Snapshot received for project {}: {} tasks", self.project_id, len(store))

    @property
    def store(self) -> TaskStore:
        with self._lock:
            store, version = self._store, self._version
        if store is None:
            return self.refresh()
        current = self.source.snapshot_version(self.project_id)
        if current is not None and current != version:
            logger.debug("Stored tasks of project {} changed; reloading", self.project_id)
            return self.refresh()
        return store

    def columns(self) -> list[Column]:
        return build_columns(self.source.list_columns(self.project_id))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def filtered(self, spec: Optional[TaskFilter] = None) -> list[Task]:
        return filter_tasks(self.store, spec)

    def list_view(
        self,
        spec: Optional[TaskFilter] = None,
        sort_mode: Union[str, SortMode] = SortMode.MANUAL,
    ) -> list[Task]:
        """Flat filtered list in the requested sort mode."""
        return sort_tasks(self.filtered(spec), sort_mode)

    def tree(
        self,
        spec: Optional[TaskFilter] = None,
        expanded: Iterable[str] = (),
        sort_mode: Union[str, SortMode] = SortMode.MANUAL,
    ) -> list[TreeRow]:
        store = self.store
        return tree_rows(store, filter_tasks(store, spec), expanded, sort_mode)

    def board(
        self,
        spec: Optional[TaskFilter] = None,
        sort_mode: Union[str, SortMode] = SortMode.MANUAL,
    ) -> Board:
        store = self.store
        return build_board(store, filter_tasks(store, spec), self.columns(), sort_mode)

    def gantt(
        self,
        spec: Optional[TaskFilter] = None,
        expanded: Iterable[str] = (),
    ) -> GanttLayout:
        store = self.store
        return project_gantt(store, filter_tasks(store, spec), expanded, tz=self.settings.timezone)

    def calendar(self, spec: Optional[TaskFilter] = None) -> list[CalendarMonth]:
        return project_calendar(self.filtered(spec), tz=self.settings.timezone)

    def summary(self, spec: Optional[TaskFilter] = None) -> ProjectSummary:
        return summarize(self.filtered(spec))

    def orphan_failures(self) -> list[Failure]:
        return self.store.orphan_failures()

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def reorder(
        self,
        task_id: str,
        target_id: str,
        scope: Union[str, ReorderScope] = ReorderScope.ANY,
        placement: Optional[Placement] = None,
    ) -> Outcome:
        outcome = plan_reorder(
            self.store,
            task_id,
            target_id,
            scope,
            placement,
            step=self.settings.order_step,
            precision=self.settings.order_precision,
        )
        return self._dispatch(outcome)

    def move_to_column(self, task_id: str, status_key: str) -> Outcome:
        return self._dispatch(plan_move_to_column(self.store, task_id, status_key))

    def drop(self, gesture: DropGesture) -> Outcome:
        outcome = resolve_drop(
            self.store,
            gesture,
            step=self.settings.order_step,
            precision=self.settings.order_precision,
        )
        return self._dispatch(outcome)

    def delete_column(self, column_key: str, fallback_status_key: Optional[str]) -> Outcome:
        outcome = plan_column_deletion(self.columns(), self.store, column_key, fallback_status_key)
        return self._dispatch(outcome)

    def update_fields(self, task_id: str, fields: dict[str, Any]) -> Outcome:
        """Immediate (non-debounced) field update."""
        if not fields:
            return Outcome.failed(Failure.invalid_argument("No fields to update", task_id))
        if "blocked_by" in fields:
            return Outcome.failed(
                Failure.invalid_argument("Dependencies change through add_dependency / remove_dependency", task_id)
            )
        if task_id not in self.store:
            return Outcome.failed(Failure.stale_reference(f"Task {task_id} not found", task_id))
        return self._dispatch(Outcome.of(FieldUpdateRequest(task_id=task_id, fields=dict(fields))))

    def add_dependency(self, task_id: str, depends_on_id: str) -> Outcome:
        """Make *task_id* wait on *depends_on_id*; self edges and cycles fail."""
        return self._dispatch(plan_add_dependency(self.store, task_id, depends_on_id))

    def remove_dependency(self, task_id: str, depends_on_id: str) -> Outcome:
        return self._dispatch(plan_remove_dependency(self.store, task_id, depends_on_id))

    def dependency_graph(self, task_id: Optional[str] = None) -> dict[str, list[str]]:
        return dependency_graph(self.store, task_id)

    def dependencies_of(self, task_id: str) -> Optional[dict[str, Any]]:
        """Blockers, dependents and blocked flag of one task, ``None`` if unknown."""
        store = self.store
        task = store.get(task_id)
        return describe_dependencies(store, task) if task is not None else None

    def begin_edit(
        self,
        task_id: str,
        *,
        on_failure: Optional[Callable[[Failure], None]] = None,
        on_saved: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> DebouncedSaver:
        """Open a debounced edit session for *task_id*."""
        return DebouncedSaver(
            task_id,
            self.sink,
            delay=self.settings.autosave_delay,
            timer_factory=self._timer_factory,
            on_failure=on_failure,
            on_saved=on_saved,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _dispatch(self, outcome: Outcome) -> Outcome:
        """Send every request of *outcome*; stop at the first rejection."""
        if not outcome.ok:
            logger.info("Gesture not dispatched: {} ({})", outcome.failure.message, outcome.failure.kind.value)  # type: ignore[union-attr]
            return outcome
        for req in outcome.requests:
            try:
                self._send(req)
            except EngineError as exc:
                logger.warning("Request {} rejected: {}", type(req).__name__, exc.failure.message)
                return Outcome(requests=outcome.requests, failure=exc.failure)
        return outcome

    def _send(self, req: Any) -> None:
        if isinstance(req, StatusChangeRequest):
            self.sink.request_status_change(req.task_id, req.status_key)
        elif isinstance(req, ReorderRequest):
            self.sink.request_reorder(req)
        elif isinstance(req, ColumnMigrationRequest):
            self.sink.request_column_migration(req.column_id, req.fallback_status_key)
        elif isinstance(req, FieldUpdateRequest):
            self.sink.request_field_update(req.task_id, req.fields)
        else:
            raise TypeError(f"Unsupported request {req!r}")
        logger.debug("Dispatched {}", req.to_dict())
