"""Cycle boundary calculator — pure business logic.

Decides whether a task's current reset cycle has been crossed since its last
reset. Comparisons are calendar-based in UTC: a task reset at 23:59 is
eligible again at 00:01 the next day for the daily cycle. Weeks are ISO
weeks starting on Monday.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from taskcycle.data.models import ResetCycle

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_cycle(value: str | ResetCycle | None) -> ResetCycle | None:
    """Map a stored cycle value to ResetCycle.

    Returns None for a null value. Raises ValueError for an unknown kind.
    """
    if value is None:
        return None
    if isinstance(value, ResetCycle):
        return value
    return ResetCycle(value.strip().lower())


def _cycle_key(cycle: ResetCycle, at: datetime) -> tuple[int, ...]:
    d = at.date()
    if cycle is ResetCycle.DAILY:
        return (d.year, d.month, d.day)
    if cycle is ResetCycle.WEEKLY:
        iso = d.isocalendar()
        return (iso[0], iso[1])
    if cycle is ResetCycle.MONTHLY:
        return (d.year, d.month)
    return (d.year,)


def is_eligible_for_reset(
    cycle: str | ResetCycle | None,
    last_reset_at: datetime | None,
    now: datetime,
) -> bool:
    """Return True if a boundary of `cycle` lies between last_reset_at and now.

    Args:
        cycle: Stored reset cycle. Unknown kinds are never eligible.
        last_reset_at: Last reset instant, or None if never reset.
        now: Reference instant for the whole scan.
    """
    if cycle is None:
        return False
    try:
        kind = parse_cycle(cycle)
    except (ValueError, AttributeError):
        logger.warning("Unknown reset cycle %r, task skipped", cycle)
        return False

    if last_reset_at is None:
        return True

    last = to_utc(last_reset_at)
    current = to_utc(now)
    if current < last:
        # last_reset_at only moves forward
        logger.debug("now %s precedes last reset %s", current, last)
        return False

    return _cycle_key(kind, current) != _cycle_key(kind, last)


def cycle_start(cycle: str | ResetCycle, at: datetime) -> datetime:
    """Return the UTC instant at which the cycle containing `at` began."""
    kind = parse_cycle(cycle)
    d = to_utc(at).date()
    if kind is ResetCycle.DAILY:
        start = d
    elif kind is ResetCycle.WEEKLY:
        start = d - timedelta(days=d.weekday())
    elif kind is ResetCycle.MONTHLY:
        start = d.replace(day=1)
    else:
        start = date(d.year, 1, 1)
    return datetime(start.year, start.month, start.day, tzinfo=timezone.utc)


def next_boundary(cycle: str | ResetCycle, at: datetime) -> datetime:
    """Return the UTC instant at which the cycle following `at` begins."""
    kind = parse_cycle(cycle)
    start = cycle_start(kind, at)
    if kind is ResetCycle.DAILY:
        return start + timedelta(days=1)
    if kind is ResetCycle.WEEKLY:
        return start + timedelta(weeks=1)
    if kind is ResetCycle.MONTHLY:
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)
    return start.replace(year=start.year + 1)
