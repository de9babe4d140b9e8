"""
TaskCycle — Entry Point.

`python main.py reset` runs one reset pass (the tasks:reset job) and exits.
`python main.py serve` starts the operator bot with the daily reset job.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from taskcycle.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from taskcycle.adapters.log_notifier import LogNotifier
from taskcycle.core.reset_service import TaskResetService
from taskcycle.core.scheduler import run_scheduled_reset
from taskcycle.data.db import TaskDB
from taskcycle.ports.task_port import StorageError

logger = logging.getLogger("taskcycle")


def run_reset() -> int:
    """One-shot reset. Returns the process exit code."""
    service = TaskResetService(TaskDB())
    try:
        asyncio.run(run_scheduled_reset(service, LogNotifier()))
    except StorageError:
        return 1
    return 0


def serve() -> int:
    """Start the operator bot and block until it stops."""
    from taskcycle.bot.operator_bot import build_app

    logger.info("Starting TaskCycle operator bot...")
    app = build_app(TaskResetService(TaskDB()))
    app.run_polling()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="taskcycle", description=__doc__.strip().splitlines()[0])
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("reset", help="Reset recurring tasks based on their reset cycle")
    sub.add_parser("serve", help="Run the operator bot with the daily reset job")
    args = parser.parse_args(argv)

    if args.command == "reset":
        return run_reset()
    if args.command == "serve":
        return serve()
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
