"""Tests for taskcycle.data.models — Task and TaskHistory dataclasses."""

from dataclasses import asdict
from datetime import datetime, timezone

from taskcycle.data.models import ResetCycle, Task, TaskHistory


def test_task_defaults():
    task = Task(id=1, user_id=7, text="Drink water", category="Health")
    assert task.completed is False
    assert task.progress == 0
    assert task.has_limit is False
    assert task.current_value == 0
    assert task.target_value is None
    assert task.increment_value == 1
    assert task.reset_cycle is None
    assert task.per_check_enabled is False
    assert task.last_reset_at is None
    assert task.history == []


def test_task_with_limit():
    task = Task(
        id=2, user_id=7, text="Read Quran", category="Faith",
        has_limit=True, target_value=20, unit="pages", reset_cycle="daily",
    )
    assert task.target_value == 20
    assert task.unit == "pages"
    assert task.reset_cycle == "daily"


def test_history_entry():
    ts = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
    entry = TaskHistory(id=1, task_id=2, value=3, timestamp=ts)
    assert entry.note is None
    assert entry.timestamp == ts


def test_reset_cycle_is_str_enum():
    assert ResetCycle.WEEKLY == "weekly"
    assert ResetCycle("yearly") is ResetCycle.YEARLY
    assert [c.value for c in ResetCycle] == ["daily", "weekly", "monthly", "yearly"]


def test_task_serializable():
    d = asdict(Task(id=1, user_id=1, text="Test", category="Misc"))
    assert d["text"] == "Test"
    assert d["completed"] is False
