"""
TaskCycle — Operator Bot.

Long-running host for the daily reset job. Telegram is the operator channel:
the job's summary is pushed to OPERATOR_CHAT_IDS, and operators can re-run
the reset (/reset) or inspect the schedule (/status).

Security-first: messages from anyone outside OPERATOR_CHAT_IDS are silently
ignored.
"""

from __future__ import annotations

import logging
from datetime import time as dt_time
from datetime import timezone
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes

from taskcycle.config import settings
from taskcycle.core.cycles import utc_now
from taskcycle.core.scheduler import next_run_at, run_scheduled_reset
from taskcycle.ports.task_port import StorageError

if TYPE_CHECKING:
    from taskcycle.core.reset_service import TaskResetService
    from taskcycle.ports.notification_port import OperatorNotifier

logger = logging.getLogger(__name__)

RESET_JOB_NAME = "tasks_reset"


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def operators_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from non-operators."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        if chat is None or chat.id not in settings.OPERATOR_CHAT_IDS:
            cid = chat.id if chat else "unknown"
            logger.warning("Unauthorized operator command from chat_id=%s", cid)
            return
        return await func(update, context)

    return wrapper


def _reset_time() -> dt_time:
    return dt_time(
        hour=settings.RESET_HOUR, minute=settings.RESET_MINUTE, tzinfo=timezone.utc,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@operators_only
async def cmd_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/reset — run the reset pass now."""
    service: TaskResetService = context.bot_data["reset_service"]
    notifier: OperatorNotifier = context.bot_data["notifier"]
    try:
        await run_scheduled_reset(service, notifier)
    except StorageError:
        # Already logged and reported to every operator chat
        return


@operators_only
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/status — show when the next daily reset will run."""
    upcoming = next_run_at(_reset_time(), utc_now())
    await update.message.reply_text(
        f"Next task reset: {upcoming.strftime('%Y-%m-%d %H:%M')} UTC"
    )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    service: TaskResetService,
    notifier: OperatorNotifier | None = None,
) -> Application:
    """Build the Telegram Application with operator commands and the daily job.

    Args:
        service: Reset service run by the job and by /reset.
        notifier: Operator notification port. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    if not settings.TELEGRAM_BOT_TOKEN:
        raise ValueError("TELEGRAM_BOT_TOKEN is required to run the operator bot")

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if notifier is None:
        from taskcycle.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot, settings.OPERATOR_CHAT_IDS)

    app.bot_data["reset_service"] = service
    app.bot_data["notifier"] = notifier

    app.add_handler(CommandHandler("reset", cmd_reset))
    app.add_handler(CommandHandler("status", cmd_status))

    _setup_reset_job(app, service, notifier)

    logger.info("Operator bot built with %d handlers", len(app.handlers[0]))
    return app


def _setup_reset_job(
    app: Application,
    service: TaskResetService,
    notifier: OperatorNotifier,
) -> None:
    """Register the daily reset job at RESET_HOUR:RESET_MINUTE UTC."""

    async def _reset_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await run_scheduled_reset(service, notifier)
        except StorageError:
            # Next tick retries; nothing was claimed as reset
            return

    app.job_queue.run_daily(
        _reset_job_callback,
        time=_reset_time(),
        name=RESET_JOB_NAME,
    )

    logger.info(
        "Task reset scheduled daily at %02d:%02d UTC",
        settings.RESET_HOUR,
        settings.RESET_MINUTE,
    )
