"""FastAPI web server for the task organizer."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .. import __version__
from ..config import OrganizerSettings
from ..task_engine.engine import TaskEngine
from ..task_engine.repository import FileTaskRepository
from .task_api import create_task_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Directory holding the ``.task_organizer/`` state.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Task Organizer",
        description="Hierarchical task views and drag gestures over a project's tasks",
        version=__version__,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    root = (project_dir or Path.cwd()).resolve()
    settings = OrganizerSettings.load(root)
    repository = FileTaskRepository(root, step=settings.order_step)
    app.state.project_dir = root
    app.state.repository = repository

    engines: dict[str, TaskEngine] = {}
    engines_lock = threading.Lock()

    def _get_engine(project_id: str) -> TaskEngine:
        """Return the engine for *project_id*, creating it on first use."""
        with engines_lock:
            engine = engines.get(project_id)
            if engine is None:
                engine = TaskEngine(repository, repository, settings, project_id=project_id)
                engine.attach()
                engines[project_id] = engine
                logger.info("Created engine for project {} in {}", project_id, root)
            return engine

    app.state.get_engine = _get_engine
    app.include_router(create_task_router(_get_engine))

    @app.get("/")
    async def index():
        """Root endpoint."""
        return {
            "name": "Task Organizer",
            "version": __version__,
            "project_dir": str(root),
            "default_project_id": settings.project_id,
        }

    return app
