"""
TaskCycle — Data Models.

Tasks accumulate progress against an optional target and may reset on a
calendar cadence. History rows record check-ins only; a reset never writes one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ResetCycle(str, Enum):
    """Cadence at which a task's progress is zeroed."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class Task:
    """A user-owned task with progress tracking and an optional reset cycle."""

    id: int
    user_id: int
    text: str
    category: str
    completed: bool = False
    progress: int = 0                 # percentage, 0-100
    has_limit: bool = False
    current_value: int = 0
    target_value: int | None = None
    unit: str | None = None           # e.g. "pages", "km"
    increment_value: int = 1
    reset_cycle: str | None = None    # raw stored value, may be unknown
    per_check_enabled: bool = False
    last_reset_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0                  # bumped by every write
    history: list[TaskHistory] = field(default_factory=list)


@dataclass
class TaskHistory:
    """A single check-in recorded against a task."""

    id: int
    task_id: int
    value: int
    timestamp: datetime
    note: str | None = None
