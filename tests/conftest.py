"""Shared test fixtures and configuration.

Sets up fake environment variables before any taskcycle imports, and provides
common fixtures like a temp DB and a helper that forces raw task state.
"""

import os

# Patch env vars BEFORE any taskcycle imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("OPERATOR_CHAT_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("RESET_PAGE_SIZE", "500")

import sqlite3
from datetime import datetime

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_tasks.db")


@pytest.fixture
def task_db(tmp_db_path):
    """Return a TaskDB instance backed by a temp file."""
    from taskcycle.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def force_state(tmp_db_path):
    """Write raw column values onto a task row, bypassing validation.

    Datetime values are stored in the same canonical form TaskDB writes.
    """
    from taskcycle.data.db import _format_ts

    def _force(task_id: int, **columns) -> None:
        values = []
        for value in columns.values():
            if isinstance(value, datetime):
                value = _format_ts(value)
            elif isinstance(value, bool):
                value = int(value)
            values.append(value)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        conn = sqlite3.connect(tmp_db_path)
        try:
            with conn:
                conn.execute(
                    f"UPDATE tasks SET {assignments} WHERE id = ?", (*values, task_id),
                )
        finally:
            conn.close()

    return _force
