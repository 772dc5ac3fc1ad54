"""Mutation intents emitted by the engine.

The engine never writes.  Every gesture resolves into one or more of the
request values below, which are handed to a
:class:`~task_organizer.task_engine.interfaces.MutationSink` and then
forgotten; the collaborator answers by re-delivering a snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .errors import Failure


class ReorderScope(str, Enum):
    """Which tasks share the ``order`` comparison scope."""

    SAME_STATUS_ONLY = "sameStatusOnly"
    ANY = "any"

    @classmethod
    def parse(cls, value: Union[str, "ReorderScope"]) -> "ReorderScope":
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown reorder scope '{value}'. Valid: {[m.value for m in cls]}")


@dataclass(frozen=True)
class StatusChangeRequest:
    task_id: str
    status_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "status_change", "task_id": self.task_id, "status_key": self.status_key}


@dataclass(frozen=True)
class ReorderRequest:
    """Place ``task_id`` next to ``target_id``.

    ``order`` is the value computed for the moved task.  ``renumbered`` holds
    every other task whose order had to change because the scope ran out of
    precision; it is empty in the common bisecting case.
    """

    task_id: str
    target_id: str
    scope: ReorderScope
    order: float
    renumbered: dict[str, float] = field(default_factory=dict)

    @property
    def order_updates(self) -> dict[str, float]:
        updates = dict(self.renumbered)
        updates[self.task_id] = self.order
        return updates

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "reorder",
            "task_id": self.task_id,
            "target_id": self.target_id,
            "scope": self.scope.value,
            "order": self.order,
            "renumbered": dict(self.renumbered),
        }


@dataclass(frozen=True)
class ColumnMigrationRequest:
    """Delete a column and move its tasks into ``fallback_status_key``."""

    column_id: str
    status_key: str
    fallback_status_key: str
    task_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "column_migration",
            "column_id": self.column_id,
            "status_key": self.status_key,
            "fallback_status_key": self.fallback_status_key,
            "task_ids": list(self.task_ids),
        }


@dataclass(frozen=True)
class FieldUpdateRequest:
    task_id: str
    fields: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": "field_update", "task_id": self.task_id, "fields": dict(self.fields)}


MutationRequest = Union[StatusChangeRequest, ReorderRequest, ColumnMigrationRequest, FieldUpdateRequest]


@dataclass(frozen=True)
class Outcome:
    """Result of a mutating operation: the requests it produced, or why not."""

    requests: tuple[MutationRequest, ...] = ()
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def is_noop(self) -> bool:
        return not self.requests

    @classmethod
    def of(cls, *requests: MutationRequest) -> "Outcome":
        return cls(requests=tuple(requests))

    @classmethod
    def failed(cls, failure: Failure) -> "Outcome":
        return cls(failure=failure)

    def first(self, request_type: type) -> Optional[Any]:
        for req in self.requests:
            if isinstance(req, request_type):
                return req
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "requests": [r.to_dict() for r in self.requests],
            "failure": self.failure.to_dict() if self.failure else None,
        }
