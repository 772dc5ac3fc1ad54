"""Typed failure values that cross the engine boundary.

Engine operations never raise for expected conditions (stale references,
missing parents, caller mistakes); they return a :class:`Failure` inside an
:class:`~task_organizer.task_engine.requests.Outcome`.  Exceptions are kept for
collaborator faults, which the caller is expected to surface.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class FailureKind(str, Enum):
    ORPHANED_PARENT = "OrphanedParent"
    STALE_REFERENCE = "StaleReference"
    INVALID_ARGUMENT = "InvalidArgument"
    MUTATION_REJECTED = "MutationRejected"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    task_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "task_id": self.task_id}

    @classmethod
    def orphaned_parent(cls, task_id: str, parent_id: str) -> "Failure":
        return cls(FailureKind.ORPHANED_PARENT, f"Parent task {parent_id} not found", task_id)

    @classmethod
    def stale_reference(cls, message: str, task_id: Optional[str] = None) -> "Failure":
        return cls(FailureKind.STALE_REFERENCE, message, task_id)

    @classmethod
    def invalid_argument(cls, message: str, task_id: Optional[str] = None) -> "Failure":
        return cls(FailureKind.INVALID_ARGUMENT, message, task_id)

    @classmethod
    def mutation_rejected(cls, message: str, task_id: Optional[str] = None) -> "Failure":
        return cls(FailureKind.MUTATION_REJECTED, message, task_id)


class EngineError(Exception):
    """Base class for collaborator faults raised into the engine."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure


class MutationRejectedError(EngineError):
    """Raised by a :class:`MutationSink` that refuses a request."""

    def __init__(self, message: str, task_id: Optional[str] = None) -> None:
        super().__init__(Failure.mutation_rejected(message, task_id))
