"""Notification port — abstract interface for reaching operators.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class OperatorNotifier(Protocol):
    """Abstract operator notification interface used by core modules."""

    async def notify(self, text: str) -> None: ...
