"""Task and column model for the organization engine.

Tasks arrive as snapshots from the persistence collaborator; the engine never
creates one from scratch.  Status and priority are stored as plain strings so
that custom column keys and unknown priorities survive a round trip; the
enums below give the built-in vocabulary and the priority ranking.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..constants import (
    BUILT_IN_STATUSES,
    DEFAULT_COLUMNS,
    DEFAULT_CUSTOM_COLUMN_COLOR,
    STATUS_ALIASES,
)
from ..utils import _format_iso, _parse_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Built-in board statuses.  Custom columns add keys outside this set."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    """Priority level, ``urgent`` being the most pressing."""

    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def sort_key(self) -> int:
        return {"urgent": 0, "high": 1, "medium": 2, "low": 3}[self.value]

    @classmethod
    def rank(cls, value: Optional[str]) -> int:
        """Sort rank for a raw priority string; unknown values rank last."""
        try:
            return cls(str(value).lower()).sort_key
        except ValueError:
            return len(cls)


def normalize_status(value: Optional[str]) -> str:
    """Map legacy human labels (``"To Do"``) onto their status key."""
    if value is None:
        return ""
    return STATUS_ALIASES.get(value, value)


def is_built_in_status(status_key: str) -> bool:
    return status_key in BUILT_IN_STATUSES


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A work item as delivered by the persistence collaborator."""

    id: str
    title: str = ""
    description: str = ""
    project_id: str = ""
    parent_id: Optional[str] = None

    status: str = TaskStatus.TODO.value
    priority: str = TaskPriority.MEDIUM.value
    assignee_id: Optional[str] = None

    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None

    order: float = 0.0
    tag_ids: list[str] = field(default_factory=list)
    # Ids of tasks that must be done before this one can start.
    blocked_by: list[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return not self.parent_id

    @property
    def is_scheduled(self) -> bool:
        """True when both dates are set, which is what the Gantt view needs."""
        return self.start_date is not None and self.due_date is not None

    def with_changes(self, **changes: Any) -> "Task":
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "project_id": self.project_id,
            "parent_id": self.parent_id,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "start_date": _format_iso(self.start_date),
            "due_date": _format_iso(self.due_date),
            "order": self.order,
            "tag_ids": list(self.tag_ids),
            "blocked_by": list(self.blocked_by),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing bad values to defaults."""
        d = dict(data)
        try:
            order = float(d.get("order") or 0.0)
        except (TypeError, ValueError):
            order = 0.0
        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            description=str(d.get("description") or ""),
            project_id=str(d.get("project_id") or ""),
            parent_id=d.get("parent_id") or None,
            status=normalize_status(str(d.get("status") or TaskStatus.TODO.value)),
            priority=str(d.get("priority") or TaskPriority.MEDIUM.value),
            assignee_id=d.get("assignee_id") or None,
            start_date=_parse_iso(d.get("start_date")),
            due_date=_parse_iso(d.get("due_date")),
            order=order,
            tag_ids=[str(t) for t in (d.get("tag_ids") or [])],
            blocked_by=[str(b) for b in (d.get("blocked_by") or [])],
        )

    @classmethod
    def validate_dict(cls, data: dict[str, Any]) -> list[str]:
        """Lightweight validation of a task dict.  Returns error strings."""
        errors: list[str] = []
        if not isinstance(data, dict):
            return ["Expected a dict"]
        if not data.get("id"):
            errors.append("'id' is required and must be non-empty")
        for date_field in ("start_date", "due_date"):
            raw = data.get(date_field)
            if raw not in (None, "") and _parse_iso(raw) is None:
                errors.append(f"'{date_field}' must be an ISO 8601 timestamp, got '{raw}'")
        order = data.get("order")
        if order is not None and not isinstance(order, (int, float)):
            errors.append("'order' must be a number")
        tags = data.get("tag_ids")
        if tags is not None and not isinstance(tags, list):
            errors.append("'tag_ids' must be an array")
        blocked_by = data.get("blocked_by")
        if blocked_by is not None and not isinstance(blocked_by, list):
            errors.append("'blocked_by' must be an array")
        elif blocked_by and data.get("id") in blocked_by:
            errors.append("'blocked_by' must not reference the task itself")
        if data.get("parent_id") is not None and data.get("parent_id") == data.get("id"):
            errors.append("'parent_id' must not reference the task itself")
        return errors


# ---------------------------------------------------------------------------
# Column dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Column:
    """A status bucket on the board.

    Built-in columns exist even without a stored record; a custom record with
    the same ``status_key`` overrides their name, color and position.
    """

    status_key: str
    name: str
    color: str = DEFAULT_CUSTOM_COLUMN_COLOR
    order: float = 0
    is_built_in: bool = False
    id: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable handle: the record id for stored columns, else the status key."""
        return self.id or self.status_key

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status_key": self.status_key,
            "name": self.name,
            "color": self.color,
            "order": self.order,
            "is_built_in": self.is_built_in,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Column":
        status_key = str(data["status_key"])
        return cls(
            status_key=status_key,
            name=str(data.get("name") or status_key),
            color=str(data.get("color") or DEFAULT_CUSTOM_COLUMN_COLOR),
            order=data.get("order", 0) or 0,
            is_built_in=is_built_in_status(status_key),
            id=data.get("id") or None,
        )


def default_columns() -> list[Column]:
    return [Column(is_built_in=True, **spec) for spec in DEFAULT_COLUMNS]
