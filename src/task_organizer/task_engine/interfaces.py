from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Hashable, Iterable, Optional

from .model import Column, Task
from .requests import ReorderRequest

SnapshotCallback = Callable[[list[Task]], None]
Unsubscribe = Callable[[], None]


class TaskSource(ABC):
    """Read side of the persistence collaborator."""

    @abstractmethod
    def list_tasks(self, project_id: str) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    def list_columns(self, project_id: str) -> list[Column]:
        raise NotImplementedError

    @abstractmethod
    def get_tags_for_task(self, task_id: str) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, project_id: str, callback: SnapshotCallback) -> Unsubscribe:
        raise NotImplementedError

    def get_task_tags(self, task_ids: Iterable[str]) -> dict[str, list[str]]:
        """Tags for many tasks at once.

        Sources backed by a single read should override this; the default
        asks :meth:`get_tags_for_task` once per id.
        """
        return {task_id: self.get_tags_for_task(task_id) for task_id in task_ids}

    def snapshot_version(self, project_id: str) -> Optional[Hashable]:
        """Token that changes whenever stored data may have changed.

        ``None`` means the source cannot tell; subscribers then only see
        changes delivered through :meth:`subscribe`.
        """
        return None


class MutationSink(ABC):
    """Write side of the persistence collaborator.

    Every method is fire-and-forget from the engine's point of view.  A sink
    that refuses a request raises
    :class:`~task_organizer.task_engine.errors.MutationRejectedError`.
    """

    @abstractmethod
    def request_status_change(self, task_id: str, status_key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def request_reorder(self, request: ReorderRequest) -> None:
        raise NotImplementedError

    @abstractmethod
    def request_column_migration(self, column_id: str, fallback_status_key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def request_field_update(self, task_id: str, fields: dict[str, Any]) -> None:
        raise NotImplementedError
