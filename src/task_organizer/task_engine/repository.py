"""File-based persistence collaborator.

Stores tasks, custom columns and task-tag associations as YAML files inside
the project's ``.task_organizer/`` directory.  Every read-modify-write goes
through :meth:`FileTaskRepository.transaction`, which holds an exclusive
:class:`filelock.FileLock` for its duration.

After each applied request the repository re-delivers a fresh snapshot to
every subscriber, filtered to the subscriber's project.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from filelock import FileLock, Timeout
from loguru import logger

from ..constants import COLUMNS_FILE, LOCK_FILE, STATE_DIR_NAME, TASK_TAGS_FILE, TASKS_FILE
from ..io_utils import _atomic_write_yaml, _load_yaml_with_error
from .errors import MutationRejectedError
from .interfaces import MutationSink, SnapshotCallback, TaskSource, Unsubscribe
from .model import Column, Task, is_built_in_status, normalize_status
from .requests import ReorderRequest, ReorderScope

LOCK_TIMEOUT = 30  # seconds
STORE_VERSION = 1

# Fields a field update may touch.  Structural fields (id, parent, order) are
# changed through their own requests.
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "priority",
    "assignee_id",
    "start_date",
    "due_date",
    "tag_ids",
    "blocked_by",
})


class _RepoState:
    """In-memory copy of the state files held during a transaction."""

    def __init__(
        self,
        tasks: list[Task],
        columns: list[Column],
        task_tags: dict[str, list[str]],
    ) -> None:
        self.tasks = tasks
        self.columns = columns
        self.task_tags = task_tags
        self.dirty: set[str] = set()

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise MutationRejectedError(f"Task {task_id} not found", task_id)
        return task


class FileTaskRepository(TaskSource, MutationSink):
    """YAML-backed :class:`TaskSource` and :class:`MutationSink`.

    Parameters
    ----------
    project_dir:
        Project root; state lives in ``<project_dir>/.task_organizer/``.
    step:
        Spacing used when a colliding scope has to be renumbered.
    """

    def __init__(self, project_dir: Path, *, step: float = 1.0, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self.project_dir = Path(project_dir).resolve()
        self.state_dir = self.project_dir / STATE_DIR_NAME
        self._tasks_path = self.state_dir / TASKS_FILE
        self._columns_path = self.state_dir / COLUMNS_FILE
        self._tags_path = self.state_dir / TASK_TAGS_FILE
        self._lock = FileLock(str(self.state_dir / LOCK_FILE), timeout=lock_timeout)
        self._step = step
        self._subscribers: dict[str, list[SnapshotCallback]] = {}
        self._subscribers_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Low-level I/O
    # ------------------------------------------------------------------

    def _load(self) -> _RepoState:
        tasks_data, err = _load_yaml_with_error(self._tasks_path, {})
        if err:
            raise MutationRejectedError(f"Unreadable task store: {err}")
        columns_data, err = _load_yaml_with_error(self._columns_path, {})
        if err:
            raise MutationRejectedError(f"Unreadable column store: {err}")
        tags_data, err = _load_yaml_with_error(self._tags_path, {})
        if err:
            raise MutationRejectedError(f"Unreadable tag store: {err}")

        tasks: list[Task] = []
        for raw in tasks_data.get("tasks") or []:
            problems = Task.validate_dict(raw)
            if problems:
                logger.warning("Skipping invalid task record: {}", "; ".join(problems))
                continue
            tasks.append(Task.from_dict(raw))
        columns = [Column.from_dict(raw) for raw in columns_data.get("columns") or [] if raw.get("status_key")]
        task_tags = {
            str(task_id): [str(t) for t in tags or []]
            for task_id, tags in (tags_data.get("task_tags") or {}).items()
        }
        return _RepoState(tasks, columns, task_tags)

    def _save(self, state: _RepoState) -> None:
        if "tasks" in state.dirty:
            _atomic_write_yaml(
                self._tasks_path,
                {"version": STORE_VERSION, "tasks": [t.to_dict() for t in state.tasks]},
            )
        if "columns" in state.dirty:
            _atomic_write_yaml(
                self._columns_path,
                {"version": STORE_VERSION, "columns": [c.to_dict() for c in state.columns]},
            )
        if "task_tags" in state.dirty:
            _atomic_write_yaml(
                self._tags_path,
                {"version": STORE_VERSION, "task_tags": state.task_tags},
            )

    @contextmanager
    def transaction(self) -> Iterator[_RepoState]:
        """Acquire the lock, load state, yield it, and save dirty files on exit.

        Subscribers are notified after the lock is released.
        """
        self._ensure_state_dir()
        try:
            self._lock.acquire()
        except Timeout as exc:
            raise MutationRejectedError(f"State directory is locked: {exc}") from exc
        try:
            state = self._load()
            yield state
            if state.dirty:
                try:
                    self._save(state)
                except OSError as exc:
                    raise MutationRejectedError(f"Could not write task store: {exc}") from exc
        finally:
            self._lock.release()
        if state.dirty:
            self._notify(state)

    def _ensure_state_dir(self) -> None:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MutationRejectedError(f"Cannot create state directory {self.state_dir}: {exc}") from exc

    def _read(self) -> _RepoState:
        self._ensure_state_dir()
        with self._lock:
            return self._load()

    # ------------------------------------------------------------------
    # TaskSource
    # ------------------------------------------------------------------

    @staticmethod
    def _in_project(task: Task, project_id: str) -> bool:
        return not task.project_id or task.project_id == project_id

    def list_tasks(self, project_id: str) -> list[Task]:
        return [t for t in self._read().tasks if self._in_project(t, project_id)]

    def list_columns(self, project_id: str) -> list[Column]:
        return list(self._read().columns)

    @staticmethod
    def _tags_in(state: _RepoState, task: Optional[Task], task_id: str) -> list[str]:
        if task_id in state.task_tags:
            return list(state.task_tags[task_id])
        return list(task.tag_ids) if task is not None else []

    def get_tags_for_task(self, task_id: str) -> list[str]:
        state = self._read()
        return self._tags_in(state, state.get(task_id), task_id)

    def get_task_tags(self, task_ids: Iterable[str]) -> dict[str, list[str]]:
        state = self._read()
        by_id = {t.id: t for t in state.tasks}
        return {task_id: self._tags_in(state, by_id.get(task_id), task_id) for task_id in task_ids}

    def snapshot_version(self, project_id: str) -> tuple[Optional[tuple[int, int, int]], ...]:
        """Stat stamps of the state files.

        Writes replace files atomically, so another repository instance (a
        CLI run, a second server) writing the same directory changes the
        stamp even though it never notifies this instance's subscribers.
        """
        return tuple(_stat_stamp(p) for p in (self._tasks_path, self._columns_path, self._tags_path))

    def subscribe(self, project_id: str, callback: SnapshotCallback) -> Unsubscribe:
        with self._subscribers_lock:
            self._subscribers.setdefault(project_id, []).append(callback)

        def _unsubscribe() -> None:
            with self._subscribers_lock:
                callbacks = self._subscribers.get(project_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return _unsubscribe

    def _notify(self, state: _RepoState) -> None:
        with self._subscribers_lock:
            targets = {pid: list(cbs) for pid, cbs in self._subscribers.items() if cbs}
        for project_id, callbacks in targets.items():
            snapshot = [t for t in state.tasks if self._in_project(t, project_id)]
            for callback in callbacks:
                callback(list(snapshot))

    # ------------------------------------------------------------------
    # MutationSink
    # ------------------------------------------------------------------

    def request_status_change(self, task_id: str, status_key: str) -> None:
        if not status_key:
            raise MutationRejectedError("A status key is required", task_id)
        with self.transaction() as state:
            task = state.require(task_id)
            task.status = normalize_status(status_key)
            state.dirty.add("tasks")
        logger.info("Task {} moved to {}", task_id, status_key)

    def request_reorder(self, request: ReorderRequest) -> None:
        with self.transaction() as state:
            moved = state.require(request.task_id)
            for task_id, order in request.order_updates.items():
                task = state.get(task_id)
                if task is None:
                    logger.debug("Reorder skipped unknown task {}", task_id)
                    continue
                task.order = float(order)
            self._resolve_collisions(state, moved, request.scope)
            state.dirty.add("tasks")
        logger.info("Task {} reordered next to {}", request.task_id, request.target_id)

    def _resolve_collisions(self, state: _RepoState, moved: Task, scope: ReorderScope) -> None:
        """Renumber *moved*'s scope when its new order collides with a sibling."""
        siblings = [
            t for t in state.tasks
            if (t.parent_id or None) == (moved.parent_id or None) and t.project_id == moved.project_id
        ]
        if scope is ReorderScope.SAME_STATUS_ONLY:
            status = normalize_status(moved.status)
            siblings = [t for t in siblings if normalize_status(t.status) == status]
        if len({t.order for t in siblings}) == len(siblings):
            return
        # The moved task goes first among equal values.
        arranged = sorted(siblings, key=lambda t: (t.order, t.id != moved.id))
        for index, task in enumerate(arranged):
            task.order = float(index * self._step)
        logger.info("Renumbered {} tasks after an order collision on {}", len(arranged), moved.id)

    def request_column_migration(self, column_id: str, fallback_status_key: str) -> None:
        if not fallback_status_key:
            raise MutationRejectedError(f"Deleting column {column_id} requires a fallback status key")
        fallback = normalize_status(fallback_status_key)
        with self.transaction() as state:
            record = next((c for c in state.columns if column_id in (c.id, c.status_key)), None)
            if record is None:
                if is_built_in_status(column_id):
                    raise MutationRejectedError(f"Built-in column {column_id} cannot be deleted")
                raise MutationRejectedError(f"Column {column_id} not found")
            if record.is_built_in:
                raise MutationRejectedError(f"Built-in column {record.status_key} cannot be deleted")
            if fallback == record.status_key:
                raise MutationRejectedError("Fallback status must differ from the deleted column")
            moved = 0
            for task in state.tasks:
                if normalize_status(task.status) == record.status_key:
                    task.status = fallback
                    moved += 1
            state.columns = [c for c in state.columns if c is not record]
            state.dirty.update({"tasks", "columns"})
        logger.info("Deleted column {}; moved {} tasks to {}", record.status_key, moved, fallback)

    def request_field_update(self, task_id: str, fields: dict[str, Any]) -> None:
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise MutationRejectedError(f"Fields not editable: {', '.join(unknown)}", task_id)
        with self.transaction() as state:
            task = state.require(task_id)
            merged = {**task.to_dict(), **fields}
            problems = Task.validate_dict(merged)
            if problems:
                raise MutationRejectedError("; ".join(problems), task_id)
            updated = Task.from_dict(merged)
            state.tasks = [updated if t.id == task_id else t for t in state.tasks]
            state.dirty.add("tasks")
            if "tag_ids" in fields and task_id in state.task_tags:
                state.task_tags[task_id] = list(updated.tag_ids)
                state.dirty.add("task_tags")
        logger.debug("Updated fields {} of task {}", sorted(fields), task_id)

    # ------------------------------------------------------------------
    # Seeding helpers (CLI, HTTP and tests)
    # ------------------------------------------------------------------

    def save_tasks(self, tasks: Iterable[Task]) -> None:
        """Replace the stored task list."""
        with self.transaction() as state:
            state.tasks = list(tasks)
            state.dirty.add("tasks")

    def save_columns(self, columns: Iterable[Column]) -> None:
        """Replace the stored custom column records."""
        with self.transaction() as state:
            state.columns = list(columns)
            state.dirty.add("columns")

    def add_column(self, column: Column) -> Column:
        """Store a new column record, assigning an id when it has none."""
        with self.transaction() as state:
            if any(c.status_key == column.status_key for c in state.columns):
                raise MutationRejectedError(f"A column with status key '{column.status_key}' already exists")
            if column.id is None:
                column = Column(
                    status_key=column.status_key,
                    name=column.name,
                    color=column.color,
                    order=column.order,
                    is_built_in=column.is_built_in,
                    id=f"col-{column.status_key}",
                )
            state.columns.append(column)
            state.dirty.add("columns")
        return column

    def set_task_tags(self, task_id: str, tag_ids: Iterable[str]) -> None:
        with self.transaction() as state:
            state.task_tags[task_id] = [str(t) for t in tag_ids]
            state.dirty.add("task_tags")


def _stat_stamp(path: Path) -> Optional[tuple[int, int, int]]:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_ino, st.st_mtime_ns, st.st_size)
