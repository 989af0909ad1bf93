"""Tip publisher port — best-effort side channel for the latest coaching tip.

Widgets and other processes read the most recent nudge from here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TipPublisherPort(Protocol):
    """Abstract latest-tip publisher used by the planner."""

    async def publish_latest_tip(self, message: str, timestamp: datetime) -> None: ...
