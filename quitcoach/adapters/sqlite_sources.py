"""SQLite adapters — implement EventSourcePort and ProfileSourcePort.

The stores are synchronous; queries run in a worker thread so a slow disk
never blocks the bot's event loop.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from quitcoach.data.db import EventDB, ProfileDB
from quitcoach.data.models import SmokingEvent, UserProfile


class SQLiteEventSource:
    """Read-only EventSourcePort over EventDB."""

    def __init__(self, db: EventDB) -> None:
        self._db = db

    async def query_events(self, since: datetime | None = None) -> list[SmokingEvent]:
        return await asyncio.to_thread(self._db.list_events, since)


class SQLiteProfileSource:
    """Read-only ProfileSourcePort over ProfileDB."""

    def __init__(self, db: ProfileDB) -> None:
        self._db = db

    async def get_active_profile(self) -> UserProfile | None:
        return await asyncio.to_thread(self._db.get_active_profile)
