"""Tests for task dependencies (task_engine/dependencies.py)."""

from __future__ import annotations

import pytest

from task_organizer.task_engine.dependencies import (
    dependency_graph,
    dependents_of,
    describe_dependencies,
    is_blocked,
    open_blockers,
    plan_add_dependency,
    plan_remove_dependency,
    would_cycle,
)
from task_organizer.task_engine.errors import FailureKind
from task_organizer.task_engine.model import Task, default_columns
from task_organizer.task_engine.requests import FieldUpdateRequest
from task_organizer.task_engine.store import TaskStore
from task_organizer.task_engine.workflow import build_board, tree_rows


@pytest.fixture
def store() -> TaskStore:
    # design <- build <- ship, and docs stands alone.
    return TaskStore([
        Task(id="design", project_id="p1", status="done", order=0),
        Task(id="build", project_id="p1", status="in_progress", order=1, blocked_by=["design"]),
        Task(id="ship", project_id="p1", status="todo", order=2, blocked_by=["build"]),
        Task(id="docs", project_id="p1", status="todo", order=3),
        Task(id="other", project_id="p2", status="todo", order=0),
    ])


class TestGraph:
    def test_full_graph(self, store: TaskStore) -> None:
        assert dependency_graph(store) == {
            "design": [],
            "build": ["design"],
            "ship": ["build"],
            "docs": [],
            "other": [],
        }

    def test_subgraph_follows_both_directions(self, store: TaskStore) -> None:
        assert dependency_graph(store, "build") == {
            "build": ["design"],
            "design": [],
            "ship": ["build"],
        }
        assert dependency_graph(store, "docs") == {"docs": []}
        assert dependency_graph(store, "ghost") == {}

    def test_dependents(self, store: TaskStore) -> None:
        assert [t.id for t in dependents_of(store, "build")] == ["ship"]
        assert dependents_of(store, "docs") == []


class TestBlocked:
    def test_done_blocker_releases(self, store: TaskStore) -> None:
        assert not is_blocked(store, store.get("build"))
        assert is_blocked(store, store.get("ship"))
        assert [t.id for t in open_blockers(store, store.get("ship"))] == ["build"]

    def test_missing_blocker_ignored(self) -> None:
        store = TaskStore([Task(id="a", blocked_by=["gone"])])
        assert not is_blocked(store, store.get("a"))

    def test_legacy_done_label(self) -> None:
        store = TaskStore([Task(id="a", status="Done"), Task(id="b", blocked_by=["a"])])
        assert not is_blocked(store, store.get("b"))

    def test_describe(self, store: TaskStore) -> None:
        info = describe_dependencies(store, store.get("build"))
        assert [t["id"] for t in info["blocked_by"]] == ["design"]
        assert [t["id"] for t in info["dependents"]] == ["ship"]
        assert info["open_blockers"] == []
        assert info["is_blocked"] is False


class TestPlanAdd:
    def test_adds_edge_as_field_update(self, store: TaskStore) -> None:
        outcome = plan_add_dependency(store, "ship", "docs")
        assert outcome.ok
        req = outcome.first(FieldUpdateRequest)
        assert req.task_id == "ship"
        assert req.fields == {"blocked_by": ["build", "docs"]}

    def test_self_edge(self, store: TaskStore) -> None:
        outcome = plan_add_dependency(store, "docs", "docs")
        assert outcome.failure.kind == FailureKind.INVALID_ARGUMENT
        assert outcome.is_noop

    @pytest.mark.parametrize("task_id, depends_on", [("design", "ship"), ("build", "ship"), ("design", "build")])
    def test_cycle(self, store: TaskStore, task_id: str, depends_on: str) -> None:
        assert would_cycle(store, task_id, depends_on)
        outcome = plan_add_dependency(store, task_id, depends_on)
        assert outcome.failure.kind == FailureKind.INVALID_ARGUMENT
        assert "cycle" in outcome.failure.message

    def test_no_cycle_for_independent_tasks(self, store: TaskStore) -> None:
        assert not would_cycle(store, "docs", "ship")
        assert not would_cycle(store, "ship", "docs")

    def test_cross_project(self, store: TaskStore) -> None:
        outcome = plan_add_dependency(store, "docs", "other")
        assert outcome.failure.kind == FailureKind.INVALID_ARGUMENT
        assert "project" in outcome.failure.message

    def test_duplicate(self, store: TaskStore) -> None:
        outcome = plan_add_dependency(store, "ship", "build")
        assert outcome.failure.kind == FailureKind.INVALID_ARGUMENT

    def test_unknown_ids(self, store: TaskStore) -> None:
        assert plan_add_dependency(store, "ghost", "docs").failure.kind == FailureKind.STALE_REFERENCE
        assert plan_add_dependency(store, "docs", "ghost").failure.kind == FailureKind.STALE_REFERENCE
        assert plan_add_dependency(store, "", "docs").failure.kind == FailureKind.INVALID_ARGUMENT

    def test_cycle_through_missing_task_terminates(self) -> None:
        store = TaskStore([Task(id="a", blocked_by=["gone"]), Task(id="b")])
        assert plan_add_dependency(store, "b", "a").ok


class TestPlanRemove:
    def test_removes_edge(self, store: TaskStore) -> None:
        req = plan_remove_dependency(store, "ship", "build").first(FieldUpdateRequest)
        assert req.fields == {"blocked_by": []}

    def test_absent_edge(self, store: TaskStore) -> None:
        assert plan_remove_dependency(store, "ship", "docs").failure.kind == FailureKind.STALE_REFERENCE
        assert plan_remove_dependency(store, "ghost", "docs").failure.kind == FailureKind.STALE_REFERENCE


class TestRowFlags:
    def test_tree_rows(self, store: TaskStore) -> None:
        rows = {r.task.id: r for r in tree_rows(store, store.all())}
        assert rows["ship"].is_blocked
        assert not rows["build"].is_blocked
        assert rows["ship"].to_dict()["is_blocked"] is True

    def test_board_columns(self, store: TaskStore) -> None:
        board = build_board(store, store.all(), default_columns())
        assert board.column("todo").blocked == {"ship"}
        assert board.column("in_progress").blocked == set()
        assert board.column("todo").to_dict()["blocked"] == ["ship"]

    def test_board_flags_listed_subtasks(self) -> None:
        store = TaskStore([
            Task(id="p", status="todo"),
            Task(id="s", parent_id="p", status="todo", blocked_by=["q"]),
            Task(id="q", status="review"),
        ])
        board = build_board(store, store.all(), default_columns())
        assert board.column("todo").blocked == {"s"}
