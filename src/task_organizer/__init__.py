"""Provide the public `task_organizer` package exports."""

from __future__ import annotations

__version__ = "0.1.0"

from .task_engine.engine import TaskEngine
from .task_engine.filters import TaskFilter
from .task_engine.repository import FileTaskRepository

__all__ = ["FileTaskRepository", "TaskEngine", "TaskFilter", "__version__"]
