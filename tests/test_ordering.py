"""Tests for manual ordering and sort modes (task_engine/ordering.py)."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest

from task_organizer.task_engine.errors import FailureKind
from task_organizer.task_engine.model import Task
from task_organizer.task_engine.ordering import (
    Placement,
    SortMode,
    plan_move_to_column,
    plan_reorder,
    scope_members,
    sort_tasks,
)
from task_organizer.task_engine.requests import (
    Outcome,
    ReorderRequest,
    ReorderScope,
    StatusChangeRequest,
)
from task_organizer.task_engine.store import TaskStore


def _apply(store: TaskStore, outcome: Outcome) -> TaskStore:
    """Apply an outcome's requests the way a collaborator would."""
    tasks = {t.id: t for t in store}
    for req in outcome.requests:
        if isinstance(req, StatusChangeRequest):
            tasks[req.task_id] = tasks[req.task_id].with_changes(status=req.status_key)
        elif isinstance(req, ReorderRequest):
            for task_id, order in req.order_updates.items():
                tasks[task_id] = tasks[task_id].with_changes(order=order)
    return TaskStore(tasks.values())


def _sequence(store: TaskStore, parent_id: str | None = None) -> list[str]:
    return [t.id for t in store.children_of(parent_id)]


@pytest.fixture
def store() -> TaskStore:
    return TaskStore([
        Task(id="a", order=0),
        Task(id="b", order=1),
        Task(id="c", order=2),
        Task(id="d", order=3),
    ])


# ---------------------------------------------------------------------------
# Sort modes
# ---------------------------------------------------------------------------

class TestSortModes:
    def test_parse(self) -> None:
        assert SortMode.parse(None) is SortMode.MANUAL
        assert SortMode.parse("dueDate") is SortMode.DUE_DATE
        assert SortMode.parse("due_date") is SortMode.DUE_DATE
        with pytest.raises(ValueError, match="Unknown sort mode"):
            SortMode.parse("alphabetical")

    def test_priority_is_stable_and_unknown_last(self) -> None:
        tasks = [
            Task(id="m1", priority="medium"),
            Task(id="x", priority="someday"),
            Task(id="u", priority="urgent"),
            Task(id="m2", priority="medium"),
            Task(id="l", priority="low"),
        ]
        assert [t.id for t in sort_tasks(tasks, SortMode.PRIORITY)] == ["u", "m1", "m2", "l", "x"]

    def test_dates_missing_last(self) -> None:
        tasks = [
            Task(id="none"),
            Task(id="late", due_date=datetime(2024, 5, 1, tzinfo=timezone.utc)),
            Task(id="early", due_date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ]
        assert [t.id for t in sort_tasks(tasks, "dueDate")] == ["early", "late", "none"]
        assert [t.id for t in sort_tasks(tasks, "startDate")] == ["none", "late", "early"]

    def test_manual(self) -> None:
        tasks = [Task(id="b", order=2), Task(id="a", order=-1.5)]
        assert [t.id for t in sort_tasks(tasks)] == ["a", "b"]

    @pytest.mark.parametrize("mode", list(SortMode))
    def test_sorting_is_pure(self, mode: SortMode) -> None:
        tasks = [
            Task(id="a", order=3, priority="low"),
            Task(id="b", order=1, priority="urgent", start_date=datetime(2024, 2, 1)),
        ]
        before = [t.to_dict() for t in tasks]
        sort_tasks(tasks, mode)
        assert [t.to_dict() for t in tasks] == before


# ---------------------------------------------------------------------------
# Reordering
# ---------------------------------------------------------------------------

class TestPlanReorder:
    def test_drag_down_lands_after_target(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "a", "c")
        assert outcome.ok
        req = outcome.first(ReorderRequest)
        assert req.order == 2.5
        assert req.renumbered == {}
        assert _sequence(_apply(store, outcome)) == ["b", "c", "a", "d"]

    def test_drag_up_lands_before_target(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "d", "b")
        assert _sequence(_apply(store, outcome)) == ["a", "d", "b", "c"]

    def test_onto_last_and_first(self, store: TaskStore) -> None:
        assert plan_reorder(store, "a", "d").first(ReorderRequest).order == 4.0
        assert plan_reorder(store, "d", "a").first(ReorderRequest).order == -1.0

    def test_explicit_placement(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "a", "c", placement=Placement.BEFORE)
        assert _sequence(_apply(store, outcome)) == ["b", "a", "c", "d"]

    def test_self_drop_is_noop(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "b", "b")
        assert outcome.ok
        assert outcome.is_noop

    def test_stale_target(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "a", "ghost")
        assert not outcome.ok
        assert outcome.failure.kind == FailureKind.STALE_REFERENCE
        assert outcome.is_noop

    def test_stale_task(self, store: TaskStore) -> None:
        outcome = plan_reorder(store, "ghost", "a")
        assert outcome.failure.kind == FailureKind.STALE_REFERENCE

    def test_duplicates_force_renumber(self) -> None:
        store = TaskStore([Task(id="a", order=0), Task(id="b", order=0), Task(id="c", order=0)])
        outcome = plan_reorder(store, "c", "a", placement=Placement.BEFORE)
        req = outcome.first(ReorderRequest)
        assert req.order == 0.0
        assert req.renumbered == {"a": 1.0, "b": 2.0}
        assert _sequence(_apply(store, outcome)) == ["c", "a", "b"]

    def test_precision_exhaustion_renumbers(self) -> None:
        store = TaskStore([Task(id="a", order=0), Task(id="b", order=1e-7), Task(id="c", order=1)])
        outcome = plan_reorder(store, "c", "b")
        req = outcome.first(ReorderRequest)
        assert req.order == 1.0
        assert req.renumbered == {"b": 2.0}
        assert _sequence(_apply(store, outcome)) == ["a", "c", "b"]

    def test_custom_step(self) -> None:
        store = TaskStore([Task(id="a", order=0), Task(id="b", order=0), Task(id="c", order=0)])
        outcome = plan_reorder(store, "c", "a", placement=Placement.BEFORE, step=10.0)
        assert outcome.first(ReorderRequest).renumbered == {"a": 10.0, "b": 20.0}

    def test_order_stays_total_and_adjacent(self, store: TaskStore) -> None:
        ids = [t.id for t in store]
        for moved, target in itertools.permutations(ids, 2):
            current = store
            for placement in (Placement.BEFORE, Placement.AFTER):
                outcome = plan_reorder(current, moved, target, placement=placement)
                current = _apply(current, outcome)
                orders = [t.order for t in current]
                assert len(set(orders)) == len(orders)
                seq = _sequence(current)
                offset = -1 if placement is Placement.BEFORE else 1
                assert seq.index(moved) == seq.index(target) + offset

    def test_subtask_scope_is_siblings(self) -> None:
        store = TaskStore([
            Task(id="p", order=0),
            Task(id="q", order=1),
            Task(id="s1", parent_id="p", order=0),
            Task(id="s2", parent_id="p", order=1),
        ])
        assert [t.id for t in scope_members(store, store.get("s1"), ReorderScope.ANY)] == ["s1", "s2"]
        outcome = plan_reorder(store, "s2", "s1")
        assert _sequence(_apply(store, outcome), "p") == ["s2", "s1"]
        assert _sequence(_apply(store, outcome)) == ["p", "q"]


class TestTwoHopReorder:
    """Reaching a slot in two moves ends where one direct move does."""

    @pytest.fixture(params=[(0.0, 1.0, 2.0, 3.0), (0.0, 1.0, 1.0 + 1e-7, 3.0)], ids=["spaced", "tight"])
    def abcd(self, request: pytest.FixtureRequest) -> TaskStore:
        return TaskStore([Task(id=i, order=o) for i, o in zip("abcd", request.param)])

    @staticmethod
    def _orders(store: TaskStore) -> dict[str, float]:
        return {t.id: t.order for t in store}

    def test_after_then_before_successor(self, abcd: TaskStore) -> None:
        first = _apply(abcd, plan_reorder(abcd, "a", "b", placement=Placement.AFTER))
        second = _apply(first, plan_reorder(first, "a", "c", placement=Placement.BEFORE))
        direct = _apply(abcd, plan_reorder(abcd, "a", "c", placement=Placement.BEFORE))

        assert _sequence(second) == _sequence(direct) == ["b", "a", "c", "d"]
        assert self._orders(second) == self._orders(direct)
        # The second hop targets the slot the task already holds.
        assert second.get("a").order == first.get("a").order

    def test_drag_from_left_then_explicit(self, abcd: TaskStore) -> None:
        first = _apply(abcd, plan_reorder(abcd, "a", "b"))
        second = _apply(first, plan_reorder(first, "a", "c", placement=Placement.BEFORE))
        direct = _apply(abcd, plan_reorder(abcd, "a", "b"))

        assert _sequence(second) == _sequence(direct) == ["b", "a", "c", "d"]
        assert self._orders(second) == self._orders(direct)

    def test_drag_from_right_then_explicit(self, abcd: TaskStore) -> None:
        first = _apply(abcd, plan_reorder(abcd, "d", "c"))
        second = _apply(first, plan_reorder(first, "d", "b", placement=Placement.AFTER))
        direct = _apply(abcd, plan_reorder(abcd, "d", "b", placement=Placement.AFTER))

        assert _sequence(second) == _sequence(direct) == ["a", "b", "d", "c"]
        assert self._orders(second) == self._orders(direct)
        orders = list(self._orders(second).values())
        assert len(set(orders)) == len(orders)


class TestStatusCoupling:
    @pytest.fixture
    def board(self) -> TaskStore:
        return TaskStore([
            Task(id="a", status="todo", order=0),
            Task(id="b", status="in_progress", order=0),
            Task(id="c", status="in_progress", order=1),
        ])

    def test_same_status_scope(self, board: TaskStore) -> None:
        members = scope_members(board, board.get("c"), ReorderScope.SAME_STATUS_ONLY)
        assert [t.id for t in members] == ["b", "c"]

    def test_cross_column_reorder_changes_status_first(self, board: TaskStore) -> None:
        outcome = plan_reorder(board, "a", "c", ReorderScope.SAME_STATUS_ONLY)
        assert isinstance(outcome.requests[0], StatusChangeRequest)
        assert outcome.requests[0].status_key == "in_progress"
        req = outcome.requests[1]
        assert isinstance(req, ReorderRequest)
        assert req.scope is ReorderScope.SAME_STATUS_ONLY
        assert req.order == 0.5
        after = _apply(board, outcome)
        assert after.get("a").status == "in_progress"
        column = [t.id for t in sorted(after, key=lambda t: t.order) if t.status == "in_progress"]
        assert column == ["b", "a", "c"]

    def test_same_column_has_no_status_change(self, board: TaskStore) -> None:
        outcome = plan_reorder(board, "b", "c", ReorderScope.SAME_STATUS_ONLY)
        assert outcome.first(StatusChangeRequest) is None

    def test_bad_scope_raises(self, board: TaskStore) -> None:
        with pytest.raises(ValueError, match="Unknown reorder scope"):
            plan_reorder(board, "a", "b", "everything")


class TestMoveToColumn:
    def test_status_only(self, store: TaskStore) -> None:
        outcome = plan_move_to_column(store, "a", "done")
        assert outcome.requests == (StatusChangeRequest(task_id="a", status_key="done"),)

    def test_alias_key(self, store: TaskStore) -> None:
        outcome = plan_move_to_column(store, "a", "In Progress")
        assert outcome.requests[0].status_key == "in_progress"

    def test_same_status_is_noop(self, store: TaskStore) -> None:
        outcome = plan_move_to_column(store, "a", "todo")
        assert outcome.ok and outcome.is_noop

    def test_blank_key(self, store: TaskStore) -> None:
        outcome = plan_move_to_column(store, "a", " ")
        assert outcome.failure.kind == FailureKind.INVALID_ARGUMENT

    def test_unknown_task(self, store: TaskStore) -> None:
        outcome = plan_move_to_column(store, "ghost", "done")
        assert outcome.failure.kind == FailureKind.STALE_REFERENCE
