"""Log notification adapter — implements OperatorNotifier for headless runs."""

from __future__ import annotations

import logging

logger = logging.getLogger("taskcycle.operator")


class LogNotifier:
    """Writes operator messages to the `taskcycle.operator` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def notify(self, text: str) -> None:
        logger.log(self._level, text)
