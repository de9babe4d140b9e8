"""
TaskCycle — Scheduled Reset Trigger.

Thin adapter between a scheduler tick (daily job, CLI run, operator /reset)
and TaskResetService. Reports the outcome to operators. Safe to invoke more
than once per day: the service is idempotent within a cycle.

This module is provider-agnostic: it depends on the OperatorNotifier
protocol, not on a specific messaging implementation.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import TYPE_CHECKING

from taskcycle.core.cycles import to_utc
from taskcycle.ports.task_port import StorageError

if TYPE_CHECKING:
    from taskcycle.core.reset_service import TaskResetService
    from taskcycle.ports.notification_port import OperatorNotifier

logger = logging.getLogger(__name__)


def format_reset_summary(count: int) -> str:
    """Human-readable result line for operators."""
    if count > 0:
        return f"Successfully reset {count} task(s)."
    return "No tasks required resetting."


async def run_scheduled_reset(
    service: TaskResetService,
    notifier: OperatorNotifier,
) -> int:
    """Run one reset pass and report it.

    Raises:
        StorageError: re-raised after operators are told the run failed.
    """
    logger.info("Starting task reset process...")
    try:
        # Blocking sqlite scan runs in a worker thread
        count = await asyncio.to_thread(service.reset_eligible_tasks)
    except StorageError as exc:
        logger.error("Task reset failed: %s", exc)
        try:
            await notifier.notify(f"Task reset failed: {exc}")
        except Exception as notify_exc:
            logger.error("Failed to notify operators of reset failure: %s", notify_exc)
        raise

    summary = format_reset_summary(count)
    logger.info(summary)
    try:
        await notifier.notify(summary)
    except Exception as exc:
        # Delivery failure does not undo a completed reset
        logger.warning("Failed to deliver reset summary: %s", exc)
    return count


def next_run_at(run_time: time, now: datetime) -> datetime:
    """Return the next UTC instant at which a daily job at `run_time` fires."""
    current = to_utc(now)
    candidate = datetime.combine(
        current.date(), run_time.replace(tzinfo=None), tzinfo=timezone.utc,
    )
    if candidate <= current:
        candidate += timedelta(days=1)
    return candidate
