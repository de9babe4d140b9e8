"""Progress arithmetic shared by check-ins and history edits.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from taskcycle.data.models import Task


def compute_progress(value: int, target: int | None) -> int:
    """Percentage of `target` reached by `value`, rounded half-up, capped at 100.

    Returns 0 when there is no positive target.
    """
    if not target or target <= 0 or value <= 0:
        return 0
    return min(100, (value * 200 + target) // (2 * target))


def clamp_value(value: int, target: int | None) -> int:
    """Keep an accumulator within [0, target] (no upper bound without a target)."""
    value = max(0, value)
    if target is not None and target > 0:
        return min(value, target)
    return value


def apply_increment(task: Task, amount: int) -> tuple[int, int, bool]:
    """Return (current_value, progress, completed) after adding `amount`."""
    new_value = clamp_value(task.current_value + amount, task.target_value)
    progress = compute_progress(new_value, task.target_value)
    completed = bool(task.target_value) and new_value >= task.target_value
    return new_value, progress, completed


def recalculate(task: Task, total: int) -> tuple[int, int, bool]:
    """Rebuild (current_value, progress, completed) from a history total.

    Limited tasks track the total against their target; unlimited tasks are
    complete as soon as any positive check-in exists.
    """
    if task.has_limit and task.target_value and task.target_value > 0:
        value = clamp_value(total, task.target_value)
        return value, compute_progress(value, task.target_value), value >= task.target_value
    completed = total > 0
    return max(0, total), 100 if completed else 0, completed
