"""Event and profile ports — read-only views used by the coaching core.

The core never writes through these; logging events is the host's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from quitcoach.data.models import SmokingEvent, UserProfile


class EventSourcePort(Protocol):
    """Chronological log of smoking events."""

    async def query_events(
        self, since: datetime | None = None
    ) -> list[SmokingEvent]: ...


class ProfileSourcePort(Protocol):
    """Source of the single active quit-plan profile."""

    async def get_active_profile(self) -> UserProfile | None: ...
