"""
TaskCycle — Task Reset Service.

Scans every task with a reset cycle, application-wide, and zeroes the progress
of those whose cycle boundary has been crossed since their last reset.

One "now" is captured per run so no task can cross a boundary mid-scan.
Each reset is a compare-and-set on the task's row version: running twice
inside the same cycle resets nothing the second time, two concurrent runs
never reset the same task twice, and a check-in that lands mid-scan is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from taskcycle.core.cycles import is_eligible_for_reset, to_utc, utc_now
from taskcycle.ports.task_port import TaskWriteError

if TYPE_CHECKING:
    from taskcycle.data.models import Task
    from taskcycle.ports.task_port import TaskRepository

logger = logging.getLogger(__name__)


@dataclass
class ResetReport:
    """Outcome of one reset run."""

    now: datetime
    scanned: int = 0
    reset: int = 0
    skipped: int = 0     # lost the compare-and-set to another writer
    failed: int = 0      # per-task write errors


class TaskResetService:
    """Resets recurring tasks whose cycle has rolled over."""

    def __init__(
        self,
        repository: TaskRepository,
        clock: Callable[[], datetime] = utc_now,
        page_size: int | None = None,
    ) -> None:
        if page_size is None:
            from taskcycle.config import settings
            page_size = settings.RESET_PAGE_SIZE
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        self._repo = repository
        self._clock = clock
        self._page_size = page_size

    def _now(self) -> datetime:
        return to_utc(self._clock())

    def run(self) -> ResetReport:
        """Reset all eligible tasks and return detailed counts.

        Raises:
            StorageError: if a page of tasks cannot be read or the store
                becomes unavailable mid-run.
        """
        report = ResetReport(now=self._now())
        after_id: int | None = None

        while True:
            page = self._repo.fetch_resettable(after_id, self._page_size)
            if page.next_after_id is None:
                break
            for task in page.tasks:
                report.scanned += 1
                self._process(task, report)
            after_id = page.next_after_id

        logger.info(
            "Reset run at %s: scanned=%d reset=%d skipped=%d failed=%d",
            report.now.isoformat(), report.scanned, report.reset,
            report.skipped, report.failed,
        )
        return report

    def _process(self, task: Task, report: ResetReport) -> None:
        if not is_eligible_for_reset(task.reset_cycle, task.last_reset_at, report.now):
            return
        try:
            saved = self._repo.save_reset(task.id, task.version, report.now)
        except TaskWriteError as exc:
            report.failed += 1
            logger.error("Failed to reset task #%d: %s", task.id, exc)
            return

        if saved:
            report.reset += 1
            logger.debug("Task #%d reset (cycle=%s)", task.id, task.reset_cycle)
        else:
            report.skipped += 1
            logger.warning(
                "Task #%d changed while the reset was in flight, left for the next run",
                task.id,
            )

    def reset_eligible_tasks(self) -> int:
        """Reset all eligible tasks and return how many were reset."""
        return self.run().reset

    def should_reset(self, task: Task, now: datetime | None = None) -> bool:
        """Check if a single task is due for a reset."""
        if not task.reset_cycle:
            return False
        return is_eligible_for_reset(
            task.reset_cycle, task.last_reset_at, to_utc(now) if now else self._now(),
        )

    def reset_task(self, task: Task, now: datetime | None = None) -> bool:
        """Reset a single task regardless of its cycle.

        Returns False if the task changed since it was read, has no reset
        cycle, or was last reset after `now`.
        """
        if not task.reset_cycle:
            return False
        now = to_utc(now) if now else self._now()
        if task.last_reset_at is not None and now < to_utc(task.last_reset_at):
            return False
        saved = self._repo.save_reset(task.id, task.version, now)
        if saved:
            task.completed = False
            task.current_value = 0
            task.progress = 0
            task.last_reset_at = now
            task.version += 1
            logger.info("Task #%d reset manually", task.id)
        return saved
