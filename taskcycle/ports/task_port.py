"""Task storage port — abstract interface consumed by the reset engine.

Core modules depend on this protocol, never on a specific storage engine.
"""

from __future__ import annotations

from datetime import datetime
from typing import NamedTuple, Protocol

from taskcycle.data.models import Task


class StorageError(Exception):
    """Raised when the task store cannot be read or written."""


class TaskWriteError(StorageError):
    """Raised when a single task row cannot be written (e.g. constraint violation)."""


class TaskPage(NamedTuple):
    """One page of the reset scan.

    `next_after_id` is the id of the last row read from storage, decodable or
    not, and None once the scan is exhausted.
    """

    tasks: list[Task]
    next_after_id: int | None


class TaskRepository(Protocol):
    """Storage interface used by TaskResetService."""

    def fetch_resettable(self, after_id: int | None, limit: int) -> TaskPage:
        """Return up to `limit` tasks with a non-null reset cycle, ordered by id,
        starting after `after_id`."""
        ...

    def save_reset(self, task_id: int, expected_version: int, now: datetime) -> bool:
        """Zero the task's progress and set last_reset_at = now.

        Applies only if the task still has a reset cycle and its version
        still equals `expected_version`. Every write to a task bumps its
        version, so a check-in committed after the task was read makes this
        return False.
        """
        ...
