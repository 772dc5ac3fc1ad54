"""Tests for the task and column model (task_engine/model.py)."""

from __future__ import annotations

from datetime import datetime, timezone

from task_organizer.task_engine.model import (
    Column,
    Task,
    TaskPriority,
    TaskStatus,
    default_columns,
    is_built_in_status,
    normalize_status,
)


class TestTaskDefaults:
    def test_default_values(self) -> None:
        t = Task(id="t1")
        assert t.status == TaskStatus.TODO.value
        assert t.priority == TaskPriority.MEDIUM.value
        assert t.parent_id is None
        assert t.tag_ids == []
        assert t.blocked_by == []
        assert t.is_root
        assert not t.is_scheduled

    def test_is_scheduled_needs_both_dates(self) -> None:
        start = datetime(2024, 3, 1)
        assert not Task(id="t1", start_date=start).is_scheduled
        assert Task(id="t1", start_date=start, due_date=start).is_scheduled

    def test_with_changes_leaves_original(self) -> None:
        t = Task(id="t1", order=1.0)
        moved = t.with_changes(order=2.5)
        assert moved.order == 2.5
        assert t.order == 1.0


class TestPriorityRank:
    def test_known_priorities(self) -> None:
        assert TaskPriority.rank("urgent") == 0
        assert TaskPriority.rank("high") == 1
        assert TaskPriority.rank("medium") == 2
        assert TaskPriority.rank("low") == 3

    def test_case_insensitive(self) -> None:
        assert TaskPriority.rank("HIGH") == 1

    def test_unknown_ranks_last(self) -> None:
        assert TaskPriority.rank("someday") == 4
        assert TaskPriority.rank(None) == 4


class TestStatusAliases:
    def test_legacy_labels(self) -> None:
        assert normalize_status("To Do") == "todo"
        assert normalize_status("To do") == "todo"
        assert normalize_status("In Progress") == "in_progress"
        assert normalize_status("Done") == "done"

    def test_custom_keys_pass_through(self) -> None:
        assert normalize_status("qa") == "qa"

    def test_none(self) -> None:
        assert normalize_status(None) == ""

    def test_built_in(self) -> None:
        assert is_built_in_status("review")
        assert not is_built_in_status("qa")


class TestSerialization:
    def test_from_dict_parses_and_normalizes(self) -> None:
        t = Task.from_dict({
            "id": "t1",
            "title": "Ship it",
            "status": "In Progress",
            "start_date": "2024-03-01T09:00:00Z",
            "order": "bad",
            "tag_ids": [1, "b"],
        })
        assert t.status == "in_progress"
        assert t.start_date == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
        assert t.order == 0.0
        assert t.tag_ids == ["1", "b"]

    def test_round_trip(self) -> None:
        original = Task(
            id="t1",
            title="Ship it",
            parent_id="p1",
            status="qa",
            priority="urgent",
            assignee_id="u1",
            start_date=datetime(2024, 3, 1, 9, tzinfo=timezone.utc),
            due_date=datetime(2024, 3, 4),
            order=2.5,
            tag_ids=["x"],
            blocked_by=["t0"],
        )
        assert Task.from_dict(original.to_dict()) == original

    def test_epoch_millis_accepted(self) -> None:
        t = Task.from_dict({"id": "t1", "due_date": 0})
        assert t.due_date == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_validate_dict(self) -> None:
        assert Task.validate_dict({"id": "t1"}) == []
        errors = Task.validate_dict({"id": "", "due_date": "tomorrow", "order": "x", "tag_ids": "a"})
        assert any("'id'" in e for e in errors)
        assert any("'due_date'" in e for e in errors)
        assert any("'order'" in e for e in errors)
        assert any("'tag_ids'" in e for e in errors)

    def test_validate_self_parent(self) -> None:
        errors = Task.validate_dict({"id": "t1", "parent_id": "t1"})
        assert errors == ["'parent_id' must not reference the task itself"]

    def test_validate_blocked_by(self) -> None:
        assert Task.validate_dict({"id": "t1", "blocked_by": ["t2"]}) == []
        assert Task.validate_dict({"id": "t1", "blocked_by": "t2"}) == ["'blocked_by' must be an array"]
        assert Task.validate_dict({"id": "t1", "blocked_by": ["t1"]}) == [
            "'blocked_by' must not reference the task itself"
        ]


class TestColumns:
    def test_default_columns(self) -> None:
        cols = default_columns()
        assert [c.status_key for c in cols] == ["todo", "in_progress", "review", "done", "blocked"]
        assert all(c.is_built_in for c in cols)
        assert all(c.id is None for c in cols)

    def test_key_prefers_record_id(self) -> None:
        assert Column(status_key="qa", name="QA").key == "qa"
        assert Column(status_key="qa", name="QA", id="col-1").key == "col-1"

    def test_from_dict_marks_built_in(self) -> None:
        col = Column.from_dict({"status_key": "done", "name": "Shipped", "order": 9, "id": "c1"})
        assert col.is_built_in
        assert col.name == "Shipped"
        custom = Column.from_dict({"status_key": "qa"})
        assert not custom.is_built_in
        assert custom.name == "qa"
