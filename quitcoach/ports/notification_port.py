"""Notification port — abstract interface for delivering coaching nudges.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by the planner.

    Returns True when the provider accepted the message.
    """

    async def deliver(self, message: str) -> bool: ...
