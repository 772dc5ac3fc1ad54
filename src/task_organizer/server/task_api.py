"""Task organizer API endpoints.

This module provides a FastAPI router exposing the derived views (list, tree,
board, Gantt, calendar, summary), the drag gestures and the task
dependencies of one project.  It is mounted under
``/api/projects/{project_id}`` by the main ``create_app`` factory.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from ..task_engine.errors import Failure, FailureKind
from ..task_engine.filters import TaskFilter
from ..task_engine.model import Column
from ..task_engine.ordering import Placement, SortMode
from ..task_engine.requests import Outcome, ReorderScope
from ..task_engine.workflow import DropOnColumn, DropOnTask, new_column, reorder_columns

FAILURE_STATUS_CODES = {
    FailureKind.STALE_REFERENCE: 404,
    FailureKind.INVALID_ARGUMENT: 400,
    FailureKind.MUTATION_REJECTED: 409,
    FailureKind.ORPHANED_PARENT: 422,
}


# ---------------------------------------------------------------------------
# Pydantic request / response models
# ---------------------------------------------------------------------------

class DropRequest(BaseModel):
    """Exactly one of ``target_task_id`` (card) or ``status_key`` (column body)."""
    target_task_id: Optional[str] = None
    status_key: Optional[str] = None


class ReorderTaskRequest(BaseModel):
    target_id: str
    scope: str = ReorderScope.ANY.value
    placement: Optional[Placement] = None


class MoveRequest(BaseModel):
    status_key: str


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[str] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    tag_ids: Optional[list[str]] = None


class AddDependencyRequest(BaseModel):
    depends_on: str


class CreateColumnRequest(BaseModel):
    name: str
    color: Optional[str] = None
    status_key: Optional[str] = None


class ReorderColumnRequest(BaseModel):
    order: int


class TaskListResponse(BaseModel):
    tasks: list[dict[str, Any]]
    total: int


class TreeResponse(BaseModel):
    rows: list[dict[str, Any]]


class BoardResponse(BaseModel):
    columns: list[dict[str, Any]]
    unmapped: list[dict[str, Any]]


class GanttResponse(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    total_days: int = 0
    days: list[dict[str, Any]] = Field(default_factory=list)
    months: list[dict[str, Any]] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)


class CalendarResponse(BaseModel):
    months: list[dict[str, Any]]


class SummaryResponse(BaseModel):
    summary: dict[str, Any]


class ColumnListResponse(BaseModel):
    columns: list[dict[str, Any]]


class DependencyGraphResponse(BaseModel):
    graph: dict[str, list[str]]


class TaskDependenciesResponse(BaseModel):
    task_id: str
    blocked_by: list[dict[str, Any]]
    dependents: list[dict[str, Any]]
    open_blockers: list[str]
    is_blocked: bool


class OutcomeResponse(BaseModel):
    ok: bool
    requests: list[dict[str, Any]]
    failure: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _filter_from_query(
    search: Optional[str],
    status: Optional[str],
    priority: Optional[str],
    assignee_id: Optional[str],
    tag_id: Optional[list[str]],
) -> TaskFilter:
    return TaskFilter.build(
        search=search,
        status=status,
        priority=priority,
        assignee_id=assignee_id,
        tag_ids=tag_id or (),
    )


def _sort_mode(raw: Optional[str]) -> SortMode:
    try:
        return SortMode.parse(raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _raise_for_failure(failure: Failure) -> None:
    raise HTTPException(status_code=FAILURE_STATUS_CODES[failure.kind], detail=failure.to_dict())


def _outcome_response(outcome: Outcome) -> OutcomeResponse:
    if outcome.failure is not None:
        _raise_for_failure(outcome.failure)
    data = outcome.to_dict()
    return OutcomeResponse(ok=data["ok"], requests=data["requests"], failure=data["failure"])


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_task_router(get_engine: Any) -> APIRouter:
    """Create the task organizer router.

    Parameters
    ----------
    get_engine:
        A callable ``(project_id: str) -> TaskEngine`` that resolves the
        engine for the request's project.
    """
    router = APIRouter(prefix="/api/projects/{project_id}", tags=["tasks"])

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @router.get("/tasks", response_model=TaskListResponse)
    async def list_tasks(
        project_id: str,
        search: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        tag_id: Optional[list[str]] = Query(None),
        sort: Optional[str] = Query(None),
    ) -> TaskListResponse:
        engine = get_engine(project_id)
        spec = _filter_from_query(search, status, priority, assignee_id, tag_id)
        tasks = engine.list_view(spec, _sort_mode(sort))
        data = [t.to_dict() for t in tasks]
        return TaskListResponse(tasks=data, total=len(data))

    @router.get("/tasks/tree", response_model=TreeResponse)
    async def get_tree(
        project_id: str,
        search: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        tag_id: Optional[list[str]] = Query(None),
        expanded: Optional[list[str]] = Query(None),
        sort: Optional[str] = Query(None),
    ) -> TreeResponse:
        engine = get_engine(project_id)
        spec = _filter_from_query(search, status, priority, assignee_id, tag_id)
        rows = engine.tree(spec, expanded or (), _sort_mode(sort))
        return TreeResponse(rows=[r.to_dict() for r in rows])

    @router.get("/board", response_model=BoardResponse)
    async def get_board(
        project_id: str,
        search: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        tag_id: Optional[list[str]] = Query(None),
        sort: Optional[str] = Query(None),
    ) -> BoardResponse:
        engine = get_engine(project_id)
        spec = _filter_from_query(search, status, priority, assignee_id, tag_id)
        board = engine.board(spec, _sort_mode(sort)).to_dict()
        return BoardResponse(columns=board["columns"], unmapped=board["unmapped"])

    @router.get("/gantt", response_model=GanttResponse)
    async def get_gantt(
        project_id: str,
        search: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        tag_id: Optional[list[str]] = Query(None),
        expanded: Optional[list[str]] = Query(None),
    ) -> GanttResponse:
        engine = get_engine(project_id)
        spec = _filter_from_query(search, status, priority, assignee_id, tag_id)
        layout = engine.gantt(spec, expanded or ())
        return GanttResponse(**layout.to_dict())

    @router.get("/calendar", response_model=CalendarResponse)
    async def get_calendar(
        project_id: str,
        search: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        tag_id: Optional[list[str]] = Query(None),
    ) -> CalendarResponse:
        engine = get_engine(project_id)
        spec = _filter_from_query(search, status, priority, assignee_id, tag_id)
        return CalendarResponse(months=[m.to_dict() for m in engine.calendar(spec)])

    @router.get("/summary", response_model=SummaryResponse)
    async def get_summary(project_id: str) -> SummaryResponse:
        engine = get_engine(project_id)
        return SummaryResponse(summary=engine.summary().to_dict())

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    @router.get("/columns", response_model=ColumnListResponse)
    async def list_columns(project_id: str) -> ColumnListResponse:
        engine = get_engine(project_id)
        return ColumnListResponse(columns=[c.to_dict() for c in engine.columns()])

    @router.post("/columns", response_model=ColumnListResponse, status_code=201)
    async def create_column(project_id: str, body: CreateColumnRequest) -> ColumnListResponse:
        engine = get_engine(project_id)
        try:
            column = new_column(engine.columns(), body.name, body.color, body.status_key)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        engine.source.add_column(column)
        return ColumnListResponse(columns=[c.to_dict() for c in engine.columns()])

    @router.post("/columns/{column_key}/reorder", response_model=ColumnListResponse)
    async def reorder_column(
        project_id: str,
        column_key: str,
        body: ReorderColumnRequest,
    ) -> ColumnListResponse:
        engine = get_engine(project_id)
        try:
            columns = reorder_columns(engine.columns(), column_key, body.order)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Column {column_key} not found")
        engine.source.save_columns(
            Column(
                status_key=c.status_key,
                name=c.name,
                color=c.color,
                order=c.order,
                is_built_in=c.is_built_in,
                id=c.id or f"col-{c.status_key}",
            )
            for c in columns
        )
        return ColumnListResponse(columns=[c.to_dict() for c in engine.columns()])

    @router.delete("/columns/{column_key}", response_model=OutcomeResponse)
    async def delete_column(
        project_id: str,
        column_key: str,
        fallback_status_key: Optional[str] = Query(None),
    ) -> OutcomeResponse:
        engine = get_engine(project_id)
        return _outcome_response(engine.delete_column(column_key, fallback_status_key))

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    @router.post("/tasks/{task_id}/drop", response_model=OutcomeResponse)
    async def drop_task(project_id: str, task_id: str, body: DropRequest) -> OutcomeResponse:
        engine = get_engine(project_id)
        if (body.target_task_id is None) == (body.status_key is None):
            raise HTTPException(
                status_code=400,
                detail="Provide exactly one of target_task_id or status_key",
            )
        if body.target_task_id is not None:
            gesture: Any = DropOnTask(task_id=task_id, target_task_id=body.target_task_id)
        else:
            gesture = DropOnColumn(task_id=task_id, status_key=body.status_key or "")
        logger.debug("Drop gesture on project {}: {}", project_id, gesture)
        return _outcome_response(engine.drop(gesture))

    @router.post("/tasks/{task_id}/reorder", response_model=OutcomeResponse)
    async def reorder_task(project_id: str, task_id: str, body: ReorderTaskRequest) -> OutcomeResponse:
        engine = get_engine(project_id)
        try:
            scope = ReorderScope.parse(body.scope)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _outcome_response(engine.reorder(task_id, body.target_id, scope, body.placement))

    @router.post("/tasks/{task_id}/move", response_model=OutcomeResponse)
    async def move_task(project_id: str, task_id: str, body: MoveRequest) -> OutcomeResponse:
        engine = get_engine(project_id)
        return _outcome_response(engine.move_to_column(task_id, body.status_key))

    @router.patch("/tasks/{task_id}", response_model=OutcomeResponse)
    async def update_task(project_id: str, task_id: str, body: UpdateTaskRequest) -> OutcomeResponse:
        engine = get_engine(project_id)
        changes = body.model_dump(exclude_unset=True)
        return _outcome_response(engine.update_fields(task_id, changes))

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    @router.get("/dependencies", response_model=DependencyGraphResponse)
    async def get_dependency_graph(
        project_id: str,
        task_id: Optional[str] = Query(None),
    ) -> DependencyGraphResponse:
        engine = get_engine(project_id)
        return DependencyGraphResponse(graph=engine.dependency_graph(task_id))

    @router.get("/tasks/{task_id}/dependencies", response_model=TaskDependenciesResponse)
    async def get_task_dependencies(project_id: str, task_id: str) -> TaskDependenciesResponse:
        engine = get_engine(project_id)
        info = engine.dependencies_of(task_id)
        if info is None:
            _raise_for_failure(Failure.stale_reference(f"Task {task_id} not found", task_id))
        return TaskDependenciesResponse(**info)

    @router.post("/tasks/{task_id}/dependencies", response_model=OutcomeResponse)
    async def add_dependency(project_id: str, task_id: str, body: AddDependencyRequest) -> OutcomeResponse:
        engine = get_engine(project_id)
        return _outcome_response(engine.add_dependency(task_id, body.depends_on))

    @router.delete("/tasks/{task_id}/dependencies/{dep_id}", response_model=OutcomeResponse)
    async def remove_dependency(project_id: str, task_id: str, dep_id: str) -> OutcomeResponse:
        engine = get_engine(project_id)
        return _outcome_response(engine.remove_dependency(task_id, dep_id))

    return router
