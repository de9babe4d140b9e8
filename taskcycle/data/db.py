"""
TaskCycle — Task Database.

SQLite-backed storage for tasks and their check-in history. Implements the
TaskRepository port consumed by the reset engine.

Writers that read-modify-write a task (check-ins, history edits, updates) run
inside BEGIN IMMEDIATE transactions. Every write bumps the row version. The
reset write is a single conditional UPDATE keyed on the version read by the
scan, so a check-in that lands mid-scan makes the reset lose instead of
being wiped.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from taskcycle.core.cycles import parse_cycle, to_utc, utc_now
from taskcycle.core.progress import apply_increment, clamp_value, compute_progress, recalculate
from taskcycle.data.models import Task, TaskHistory
from taskcycle.ports.task_port import StorageError, TaskPage, TaskWriteError

logger = logging.getLogger(__name__)

_UNSET = object()

# Accepted on input as "no reset cycle"
_ONE_TIME_ALIASES = {"", "one-time", "none"}

_UPDATABLE_FIELDS = {
    "text",
    "category",
    "reset_cycle",
    "has_limit",
    "target_value",
    "unit",
    "increment_value",
    "per_check_enabled",
}


def _format_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return to_utc(datetime.fromisoformat(value))


def _normalize_cycle(value: str | None) -> str | None:
    """Map an input cycle to its stored form. Raises ValueError if unknown."""
    if value is None or str(value).strip().lower() in _ONE_TIME_ALIASES:
        return None
    try:
        return parse_cycle(value).value
    except ValueError:
        raise ValueError(
            "Reset cycle must be one of: one-time, daily, weekly, monthly, yearly."
        ) from None


def _validate_task(
    text: str,
    category: str,
    has_limit: bool,
    target_value: int | None,
    unit: str | None,
    increment_value: int,
) -> None:
    if not text or not text.strip():
        raise ValueError("Task description is required.")
    if len(text) > 255:
        raise ValueError("Task description may not be greater than 255 characters.")
    if not category or not category.strip():
        raise ValueError("Category is required.")
    if increment_value is None or increment_value < 1:
        raise ValueError("Increment value must be at least 1.")
    if has_limit:
        if target_value is None or target_value <= 0:
            raise ValueError("Target value must be a positive number when has limit is enabled.")
        if not unit or not unit.strip():
            raise ValueError("Unit is required when has limit is enabled.")


class TaskDB:
    """SQLite-backed storage for tasks and check-in history."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from taskcycle.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection, closed on exit."""
        conn = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write-locked transaction: no other writer can interleave."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_db(self) -> None:
        """Create the tasks and history tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id           INTEGER NOT NULL,
                    text              TEXT    NOT NULL,
                    completed         INTEGER NOT NULL DEFAULT 0,
                    category          TEXT    NOT NULL,
                    progress          INTEGER NOT NULL DEFAULT 0
                                      CHECK (progress BETWEEN 0 AND 100),
                    has_limit         INTEGER NOT NULL DEFAULT 0,
                    current_value     INTEGER NOT NULL DEFAULT 0,
                    target_value      INTEGER,
                    unit              TEXT,
                    reset_cycle       TEXT,
                    per_check_enabled INTEGER NOT NULL DEFAULT 0,
                    increment_value   INTEGER NOT NULL DEFAULT 1,
                    last_reset_at     TEXT,
                    version           INTEGER NOT NULL DEFAULT 0,
                    created_at        TEXT    NOT NULL,
                    updated_at        TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_history (
                    id        INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id   INTEGER NOT NULL
                              REFERENCES tasks(id) ON DELETE CASCADE,
                    value     INTEGER NOT NULL,
                    note      TEXT,
                    timestamp TEXT    NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            if "increment_value" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN increment_value INTEGER NOT NULL DEFAULT 1"
                )
            if "last_reset_at" not in existing_cols:
                conn.execute("ALTER TABLE tasks ADD COLUMN last_reset_at TEXT")
            if "version" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN version INTEGER NOT NULL DEFAULT 0"
                )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_user_category ON tasks (user_id, category)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_user_cycle ON tasks (user_id, reset_cycle)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_cycle_id ON tasks (reset_cycle, id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_history_task ON task_history (task_id, timestamp)"
            )
        logger.debug("Task tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            text=row["text"],
            category=row["category"],
            completed=bool(row["completed"]),
            progress=row["progress"],
            has_limit=bool(row["has_limit"]),
            current_value=row["current_value"],
            target_value=row["target_value"],
            unit=row["unit"],
            increment_value=row["increment_value"],
            reset_cycle=row["reset_cycle"],
            per_check_enabled=bool(row["per_check_enabled"]),
            last_reset_at=_parse_ts(row["last_reset_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
        )

    @staticmethod
    def _row_to_history(row: sqlite3.Row) -> TaskHistory:
        return TaskHistory(
            id=row["id"],
            task_id=row["task_id"],
            value=row["value"],
            note=row["note"],
            timestamp=_parse_ts(row["timestamp"]),
        )

    @staticmethod
    def _fetch_task_row(
        conn: sqlite3.Connection, task_id: int, user_id: int | None,
    ) -> sqlite3.Row:
        query = "SELECT * FROM tasks WHERE id = ?"
        params: list = [task_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = conn.execute(query, params).fetchone()
        if row is None:
            raise ValueError(f"Task {task_id} not found")
        return row

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add_task(
        self,
        user_id: int,
        text: str,
        category: str,
        reset_cycle: str | None = None,
        has_limit: bool = False,
        target_value: int | None = None,
        unit: str | None = None,
        increment_value: int = 1,
        per_check_enabled: bool = False,
        now: datetime | None = None,
    ) -> Task:
        """Insert a new task with zeroed progress."""
        cycle = _normalize_cycle(reset_cycle)
        _validate_task(text, category, has_limit, target_value, unit, increment_value)
        stamp = _format_ts(now or utc_now())

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (user_id, text, completed, category, progress, has_limit,
                     current_value, target_value, unit, reset_cycle,
                     per_check_enabled, increment_value, last_reset_at,
                     created_at, updated_at)
                VALUES (?, ?, 0, ?, 0, ?, 0, ?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    user_id, text.strip(), category.strip(), int(has_limit),
                    target_value, unit, cycle, int(per_check_enabled),
                    increment_value, stamp, stamp,
                ),
            )
            task_id = cursor.lastrowid
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()

        task = self._row_to_task(row)
        logger.info("Task added: #%d '%s' (cycle=%s)", task_id, task.text, cycle)
        return task

    def get_task(
        self, task_id: int, user_id: int | None = None, with_history: bool = False,
    ) -> Task | None:
        """Fetch a single task, optionally scoped to its owner."""
        with self._connect() as conn:
            try:
                row = self._fetch_task_row(conn, task_id, user_id)
            except ValueError:
                return None
            task = self._row_to_task(row)
            if with_history:
                rows = conn.execute(
                    "SELECT * FROM task_history WHERE task_id = ? ORDER BY timestamp, id",
                    (task_id,),
                ).fetchall()
                task.history = [self._row_to_history(r) for r in rows]
        return task

    def list_tasks(
        self,
        user_id: int,
        category: str | None = None,
        search: str | None = None,
        cycle: str | None = None,
    ) -> list[Task]:
        """List a user's tasks, newest first, with optional filters."""
        query = "SELECT * FROM tasks WHERE user_id = ?"
        params: list = [user_id]
        if category:
            query += " AND category = ?"
            params.append(category)
        if search:
            query += " AND text LIKE ?"
            params.append(f"%{search}%")
        if cycle:
            stored = _normalize_cycle(cycle)
            if stored is None:
                query += " AND reset_cycle IS NULL"
            else:
                query += " AND reset_cycle = ?"
                params.append(stored)
        query += " ORDER BY created_at DESC, id DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_task(r) for r in rows]

    def update_task(self, task_id: int, user_id: int, now: datetime | None = None, **fields) -> Task:
        """Update editable fields of a task. Unknown fields raise ValueError.

        Lowering a target below the current accumulator clamps the accumulator.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._transaction() as conn:
            task = self._row_to_task(self._fetch_task_row(conn, task_id, user_id))
            if not fields:
                return task

            if "reset_cycle" in fields:
                fields["reset_cycle"] = _normalize_cycle(fields["reset_cycle"])
            for name, value in fields.items():
                setattr(task, name, value)
            _validate_task(
                task.text, task.category, task.has_limit,
                task.target_value, task.unit, task.increment_value,
            )

            if task.has_limit:
                task.current_value = clamp_value(task.current_value, task.target_value)
                task.progress = compute_progress(task.current_value, task.target_value)
                task.completed = task.current_value >= task.target_value

            task.updated_at = now or utc_now()
            task.version += 1
            conn.execute(
                """
                UPDATE tasks SET
                    text = ?, category = ?, reset_cycle = ?, has_limit = ?,
                    target_value = ?, unit = ?, increment_value = ?,
                    per_check_enabled = ?, current_value = ?, progress = ?,
                    completed = ?, updated_at = ?, version = version + 1
                WHERE id = ?
                """,
                (
                    task.text, task.category, task.reset_cycle, int(task.has_limit),
                    task.target_value, task.unit, task.increment_value,
                    int(task.per_check_enabled), task.current_value, task.progress,
                    int(task.completed), _format_ts(task.updated_at), task_id,
                ),
            )

        logger.info("Task #%d updated: %s", task_id, ", ".join(sorted(fields)))
        return task

    def delete_task(self, task_id: int, user_id: int) -> bool:
        """Permanently delete a task and its history."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task #%d deleted", task_id)
        return deleted

    # ------------------------------------------------------------------
    # Reset engine port
    # ------------------------------------------------------------------

    def fetch_resettable(self, after_id: int | None, limit: int) -> TaskPage:
        """Return one page of tasks with a non-null reset cycle, ordered by id.

        Rows that cannot be decoded are logged and skipped. The cursor still
        advances past them, so a page of bad rows does not end the scan.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM tasks
                    WHERE reset_cycle IS NOT NULL AND id > ?
                    ORDER BY id
                    LIMIT ?
                    """,
                    (after_id or 0, limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to fetch resettable tasks: {exc}") from exc

        tasks: list[Task] = []
        for row in rows:
            try:
                tasks.append(self._row_to_task(row))
            except (TypeError, ValueError) as exc:
                logger.error("Skipping malformed task row #%s: %s", row["id"], exc)
        return TaskPage(tasks, rows[-1]["id"] if rows else None)

    def save_reset(self, task_id: int, expected_version: int, now: datetime) -> bool:
        """Reset a task's progress if no other write landed since it was read."""
        stamp = _format_ts(now)
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE tasks SET
                        completed = 0, current_value = 0, progress = 0,
                        last_reset_at = ?, updated_at = ?, version = version + 1
                    WHERE id = ? AND reset_cycle IS NOT NULL AND version = ?
                    """,
                    (stamp, stamp, task_id, expected_version),
                )
        except sqlite3.IntegrityError as exc:
            raise TaskWriteError(f"Task {task_id} reset rejected: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to reset task {task_id}: {exc}") from exc
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    def _write_checkin(
        self,
        conn: sqlite3.Connection,
        task: Task,
        history_value: int,
        note: str | None,
        now: datetime,
    ) -> None:
        stamp = _format_ts(now)
        conn.execute(
            """
            UPDATE tasks SET current_value = ?, progress = ?, completed = ?,
                updated_at = ?, version = version + 1
            WHERE id = ?
            """,
            (task.current_value, task.progress, int(task.completed), stamp, task.id),
        )
        task.updated_at = now
        task.version += 1
        if task.per_check_enabled:
            conn.execute(
                "INSERT INTO task_history (task_id, value, note, timestamp) VALUES (?, ?, ?, ?)",
                (task.id, history_value, note, stamp),
            )

    def toggle_task(self, task_id: int, user_id: int, now: datetime | None = None) -> Task:
        """Check in on a task.

        Limited tasks advance by increment_value toward their target; other
        tasks flip their completed flag.
        """
        now = now or utc_now()
        with self._transaction() as conn:
            task = self._row_to_task(self._fetch_task_row(conn, task_id, user_id))
            if task.has_limit:
                amount = task.increment_value or 1
                task.current_value, task.progress, task.completed = apply_increment(task, amount)
                history_value = amount
            else:
                task.completed = not task.completed
                task.progress = 100 if task.completed else 0
                history_value = 1 if task.completed else 0
            self._write_checkin(conn, task, history_value, None, now)

        logger.info(
            "Task #%d checked in: value=%d progress=%d%% completed=%s",
            task_id, task.current_value, task.progress, task.completed,
        )
        return task

    def add_progress(
        self,
        task_id: int,
        user_id: int,
        value: int,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Task:
        """Add a custom amount to a limited task."""
        if value is None or value < 1:
            raise ValueError("Progress value must be at least 1.")
        if note is not None and len(note) > 500:
            raise ValueError("Note may not be greater than 500 characters.")

        now = now or utc_now()
        with self._transaction() as conn:
            task = self._row_to_task(self._fetch_task_row(conn, task_id, user_id))
            if not task.has_limit:
                raise ValueError("This task does not support progress tracking")
            task.current_value, task.progress, task.completed = apply_increment(task, value)
            self._write_checkin(conn, task, value, note, now)

        logger.info("Task #%d progressed by %d (now %d%%)", task_id, value, task.progress)
        return task

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def list_history(self, task_id: int, user_id: int) -> list[TaskHistory]:
        """Return a task's check-ins, oldest first."""
        with self._connect() as conn:
            self._fetch_task_row(conn, task_id, user_id)
            rows = conn.execute(
                "SELECT * FROM task_history WHERE task_id = ? ORDER BY timestamp, id",
                (task_id,),
            ).fetchall()
        return [self._row_to_history(r) for r in rows]

    def _recalculate(self, conn: sqlite3.Connection, task: Task) -> Task:
        """Rebuild progress from check-ins recorded since the last reset."""
        total = conn.execute(
            """
            SELECT COALESCE(SUM(value), 0) FROM task_history
            WHERE task_id = ? AND (? IS NULL OR timestamp >= ?)
            """,
            (task.id, _format_ts(task.last_reset_at), _format_ts(task.last_reset_at)),
        ).fetchone()[0]
        task.current_value, task.progress, task.completed = recalculate(task, total)
        conn.execute(
            """
            UPDATE tasks SET current_value = ?, progress = ?, completed = ?,
                version = version + 1
            WHERE id = ?
            """,
            (task.current_value, task.progress, int(task.completed), task.id),
        )
        task.version += 1
        return task

    def update_history(
        self,
        task_id: int,
        entry_id: int,
        user_id: int,
        value: int | object = _UNSET,
        note: str | None | object = _UNSET,
    ) -> TaskHistory:
        """Edit a check-in and recompute the task's progress."""
        if value is not _UNSET and (value is None or value < 0):
            raise ValueError("Value must be at least 0.")
        if note is not _UNSET and note is not None and len(note) > 500:
            raise ValueError("Note may not be greater than 500 characters.")

        with self._transaction() as conn:
            task = self._row_to_task(self._fetch_task_row(conn, task_id, user_id))
            row = conn.execute(
                "SELECT * FROM task_history WHERE id = ? AND task_id = ?",
                (entry_id, task_id),
            ).fetchone()
            if row is None:
                raise ValueError(f"History entry {entry_id} not found")

            entry = self._row_to_history(row)
            if value is not _UNSET:
                entry.value = value
            if note is not _UNSET:
                entry.note = note
            conn.execute(
                "UPDATE task_history SET value = ?, note = ? WHERE id = ?",
                (entry.value, entry.note, entry_id),
            )
            self._recalculate(conn, task)

        logger.info("History entry #%d of task #%d updated", entry_id, task_id)
        return entry

    def delete_history(self, task_id: int, entry_id: int, user_id: int) -> Task:
        """Delete a check-in and recompute the task's progress."""
        with self._transaction() as conn:
            task = self._row_to_task(self._fetch_task_row(conn, task_id, user_id))
            cursor = conn.execute(
                "DELETE FROM task_history WHERE id = ? AND task_id = ?",
                (entry_id, task_id),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"History entry {entry_id} not found")
            self._recalculate(conn, task)

        logger.info("History entry #%d of task #%d deleted", entry_id, task_id)
        return task
