"""Tests for task normalization, dedup/merge and id assignment."""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app.schemas.analysis import Priority, RawTaskRecord, TaskStatus, infer_priority
from app.services.task_merger import (
    FALLBACK_TASK_CONTENT,
    assign_ids,
    dedup_key,
    ensure_minimum,
    format_estimated_time,
    merge_tasks,
)


def _raw(content, **kw):
    return RawTaskRecord.model_validate({"content": content, **kw})


def test_near_duplicates_merge_with_tag_union():
    merged = merge_tasks([
        _raw("Buy milk", tags=["errand"]),
        _raw("buy   milk.", tags=["shopping"]),
    ])
    assert len(merged) == 1
    assert set(merged[0].tags) == {"errand", "shopping"}
    assert merged[0].content == "Buy milk"


def test_dedup_key_normalization():
    assert dedup_key("  Call Bob, ASAP!! ") == "call bob asap"


def test_priority_uses_total_order():
    merged = merge_tasks([_raw("Ship it", priority="low"), _raw("ship it", priority="critical")])
    assert merged[0].priority == Priority.CRITICAL

    merged = merge_tasks([_raw("Ship it", priority="none"), _raw("ship it", priority="low")])
    assert merged[0].priority == Priority.LOW

    merged = merge_tasks([_raw("Ship it", priority="high"), _raw("ship it", priority="medium")])
    assert merged[0].priority == Priority.HIGH


def test_estimated_time_keeps_maximum():
    merged = merge_tasks([
        _raw("Write report", estimatedTime=30),
        _raw("write report", estimatedTime=None),
        _raw("Write report!", estimatedTime=90),
    ])
    assert merged[0].estimated_time == 90


def test_dependencies_union_and_subtasks_concatenated():
    merged = merge_tasks([
        _raw("Deploy", dependencies=["Build"], subtasks=[{"content": "Tag release"}]),
        _raw("deploy", dependencies=["Build", "Test"], subtasks=[{"content": "Tag release"}]),
    ])
    assert merged[0].dependencies == ["Build", "Test"]
    assert [s.content for s in merged[0].subtasks] == ["Tag release", "Tag release"]


def test_first_seen_order_is_preserved():
    merged = merge_tasks([_raw("A task"), _raw("B task"), _raw("a task"), _raw("C task")])
    assert [t.content for t in merged] == ["A task", "B task", "C task"]


def test_minimum_guarantee_injects_fallback():
    records, synthesized = ensure_minimum([])
    assert synthesized
    assert len(records) == 1
    assert records[0].content == FALLBACK_TASK_CONTENT
    assert records[0].priority == Priority.MEDIUM
    assert records[0].status == TaskStatus.TODO

    same, synthesized = ensure_minimum([_raw("Real task")])
    assert not synthesized
    assert same[0].content == "Real task"


def test_assign_ids_namespaces_subtasks():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    tasks = assign_ids(
        [_raw("First", subtasks=["step one", {"content": "step two"}]), _raw("Second")],
        now=now,
    )
    assert [t.id for t in tasks] == ["task-1", "task-2"]
    assert [s.id for s in tasks[0].subtasks] == ["task-1-1", "task-1-2"]
    assert all(not t.completed and t.created_at == now for t in tasks)


def test_record_normalization():
    record = _raw("Fix the login bug ASAP", priority="bogus", status="In Progress", estimatedTime="2 hours")
    assert record.priority == Priority.HIGH
    assert record.status == TaskStatus.IN_PROGRESS
    assert record.estimated_time == 120

    record = _raw("Water the plants", priority="HIGH", tags="garden", assignee="  ", deadline=None)
    assert record.priority == Priority.HIGH
    assert record.tags == ["garden"]
    assert record.assignee is None


def test_nested_subtasks_are_flattened_away():
    record = _raw("Parent", subtasks=[{"content": "Child", "subtasks": [{"content": "Grandchild"}]}, {"x": 1}])
    assert [s.content for s in record.subtasks] == ["Child"]
    assert not hasattr(record.subtasks[0], "subtasks")


def test_record_without_content_is_rejected():
    with pytest.raises(ValidationError):
        RawTaskRecord.model_validate({"priority": "high"})
    with pytest.raises(ValidationError):
        RawTaskRecord.model_validate({"content": "   "})


def test_format_estimated_time():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert format_estimated_time(assign_ids([_raw("a", estimatedTime=20), _raw("b")], now)) == "35 minutes"
    assert format_estimated_time(assign_ids([_raw("a", estimatedTime=90)], now)) == "1h 30m"
    assert format_estimated_time(assign_ids([_raw("a", estimatedTime=120)], now)) == "2 hours"


def test_unusable_estimates_become_none():
    assert _raw("Huge", estimatedTime=10 ** 400).estimated_time is None
    assert _raw("Endless", estimatedTime=float("inf")).estimated_time is None
    assert _raw("Unknown", estimatedTime=float("nan")).estimated_time is None
    assert _raw("Negative", estimatedTime=-5).estimated_time is None
    assert _raw("Long string", estimatedTime="9" * 400).estimated_time is None


def test_estimated_total_overflowing_float_is_unknown():
    tasks = assign_ids([_raw("a", estimatedTime=1e308), _raw("b", estimatedTime=1e308)])
    assert format_estimated_time(tasks) == "unknown"


def test_unicode_punctuation_is_ignored_for_dedup():
    merged = merge_tasks([_raw("Buy milk。"), _raw("“buy milk”"), _raw("buy milk")])
    assert len(merged) == 1


def test_priority_keyword_infers_high():
    assert infer_priority("Top priority: fix the build") == Priority.HIGH
    assert infer_priority("This is important") == Priority.HIGH
