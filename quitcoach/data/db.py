"""
QuitCoach — Event and Profile Database.

Logged cigarettes, trigger tags and the quit-plan profile persist in SQLite.
Timestamps are stored as ISO-8601 UTC strings so that lexical ordering in
SQL matches chronological ordering.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable

from quitcoach.data.models import ReductionCurve, SmokingEvent, Tag, UserProfile

logger = logging.getLogger(__name__)

_DEFAULT_TAG_COLOR = "#808080"


class EventStoreError(Exception):
    """Raised when the event store cannot complete a write."""


def _to_utc_iso(dt: datetime) -> str:
    # Naive datetimes are taken as local wall-clock time
    return dt.astimezone(timezone.utc).isoformat()


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventDB:
    """SQLite-backed storage for smoking events and their tags."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from quitcoach.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the events, tags and link tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp  TEXT NOT NULL,
                    note       TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id     INTEGER PRIMARY KEY AUTOINCREMENT,
                    name   TEXT NOT NULL UNIQUE,
                    color  TEXT NOT NULL DEFAULT '#808080'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS event_tags (
                    event_id  INTEGER NOT NULL,
                    tag_id    INTEGER NOT NULL,
                    PRIMARY KEY (event_id, tag_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events (timestamp)"
            )
        logger.debug("Event tables initialized at %s", self._db_path)

    # -- tags ---------------------------------------------------------------

    def add_tag(self, name: str, color: str = _DEFAULT_TAG_COLOR) -> Tag:
        """Create a tag, or return the existing one with the same name."""
        name = name.strip().lower()
        if not name:
            raise EventStoreError("Tag name cannot be empty")

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tags WHERE name = ?", (name,)).fetchone()
            if row is not None:
                return Tag(id=row["id"], name=row["name"], color=row["color"])
            cursor = conn.execute(
                "INSERT INTO tags (name, color) VALUES (?, ?)", (name, color),
            )
            tag_id = cursor.lastrowid

        logger.info("Tag added: #%d '%s'", tag_id, name)
        return Tag(id=tag_id, name=name, color=color)

    def list_tags(self) -> list[Tag]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM tags ORDER BY name").fetchall()
        return [Tag(id=r["id"], name=r["name"], color=r["color"]) for r in rows]

    def tag_event(self, event_id: int, tag_name: str) -> Tag:
        """Attach a tag (created on demand) to an existing event."""
        tag = self.add_tag(tag_name)
        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM events WHERE id = ?", (event_id,)
            ).fetchone()
            if exists is None:
                raise EventStoreError(f"Event {event_id} not found")
            conn.execute(
                "INSERT OR IGNORE INTO event_tags (event_id, tag_id) VALUES (?, ?)",
                (event_id, tag.id),
            )
        return tag

    # -- events -------------------------------------------------------------

    def add_event(
        self,
        timestamp: datetime | None = None,
        note: str | None = None,
        tag_names: Iterable[str] = (),
    ) -> SmokingEvent:
        """Log a cigarette. timestamp defaults to now."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO events (timestamp, note) VALUES (?, ?)",
                (_to_utc_iso(timestamp), note),
            )
            event_id = cursor.lastrowid

        tags = [self.tag_event(event_id, name) for name in tag_names if name.strip()]
        logger.info("Event logged: #%d at %s (%d tags)", event_id, timestamp, len(tags))
        return SmokingEvent(
            id=event_id,
            timestamp=_parse_timestamp(_to_utc_iso(timestamp)),
            note=note,
            tags=tags,
        )

    def delete_event(self, event_id: int) -> bool:
        """Permanently delete an event and its tag links."""
        with self._connect() as conn:
            conn.execute("DELETE FROM event_tags WHERE event_id = ?", (event_id,))
            cursor = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event #%d deleted", event_id)
        return deleted

    def delete_last_event(self) -> SmokingEvent | None:
        """Delete the most recent event. Returns it, or None if the log is empty."""
        events = self.list_events()
        if not events:
            return None
        last = events[-1]
        self.delete_event(last.id)
        return last

    def list_events(self, since: datetime | None = None) -> list[SmokingEvent]:
        """Return events in chronological order, optionally only those at/after since.

        Rows whose timestamp cannot be parsed are skipped.
        """
        event_query = "SELECT * FROM events"
        tag_query = (
            "SELECT et.event_id, t.id, t.name, t.color FROM event_tags et "
            "JOIN tags t ON t.id = et.tag_id "
            "JOIN events e ON e.id = et.event_id"
        )
        params: list = []
        if since is not None:
            event_query += " WHERE timestamp >= ?"
            tag_query += " WHERE e.timestamp >= ?"
            params.append(_to_utc_iso(since))
        event_query += " ORDER BY timestamp, id"

        with self._connect() as conn:
            rows = conn.execute(event_query, params).fetchall()
            tag_rows = conn.execute(tag_query, params).fetchall()

        tags_by_event: dict[int, list[Tag]] = {}
        for r in tag_rows:
            tags_by_event.setdefault(r["event_id"], []).append(
                Tag(id=r["id"], name=r["name"], color=r["color"])
            )

        events = []
        for r in rows:
            ts = _parse_timestamp(r["timestamp"])
            if ts is None:
                logger.warning("Skipping event #%d with bad timestamp %r", r["id"], r["timestamp"])
                continue
            events.append(SmokingEvent(
                id=r["id"],
                timestamp=ts,
                note=r["note"],
                tags=tags_by_event.get(r["id"], []),
            ))
        return events

    def count_events(self, since: datetime) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM events WHERE timestamp >= ?", (_to_utc_iso(since),)
            ).fetchone()
        return row[0]


class ProfileDB:
    """SQLite-backed storage for the single active quit-plan profile."""

    _FIELDS = {
        "name",
        "quit_date",
        "enable_gradual_reduction",
        "reduction_curve",
        "daily_average",
        "created_at",
    }

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from quitcoach.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profile (
                    id                        INTEGER PRIMARY KEY CHECK (id = 1),
                    name                      TEXT NOT NULL DEFAULT '',
                    quit_date                 TEXT,
                    enable_gradual_reduction  INTEGER NOT NULL DEFAULT 1,
                    reduction_curve           TEXT NOT NULL DEFAULT 'linear',
                    daily_average             REAL NOT NULL DEFAULT 0,
                    created_at                TEXT NOT NULL
                )
            """)

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> UserProfile:
        quit_date = None
        if row["quit_date"]:
            try:
                quit_date = date.fromisoformat(row["quit_date"])
            except ValueError:
                logger.warning("Ignoring malformed quit date %r", row["quit_date"])
        return UserProfile(
            id=row["id"],
            name=row["name"],
            quit_date=quit_date,
            enable_gradual_reduction=bool(row["enable_gradual_reduction"]),
            reduction_curve=ReductionCurve.parse(row["reduction_curve"]),
            daily_average=row["daily_average"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def get_active_profile(self) -> UserProfile | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM profile WHERE id = 1").fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def get_or_create(self) -> UserProfile:
        """Return the profile, creating a default one on first use."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO profile (id, created_at) VALUES (1, ?)",
                (datetime.now(timezone.utc).isoformat(),),
            )
        return self.get_active_profile()

    def update_profile(self, **fields) -> UserProfile:
        """Update one or more profile fields, creating the profile if needed."""
        unknown = set(fields) - self._FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        self.get_or_create()
        values = dict(fields)
        if "quit_date" in values and values["quit_date"] is not None:
            values["quit_date"] = values["quit_date"].isoformat()
        if values.get("created_at") is not None:
            values["created_at"] = _to_utc_iso(values["created_at"])
        if "reduction_curve" in values:
            values["reduction_curve"] = ReductionCurve.parse(values["reduction_curve"]).value
        if "enable_gradual_reduction" in values:
            values["enable_gradual_reduction"] = int(bool(values["enable_gradual_reduction"]))

        if values:
            assignments = ", ".join(f"{k} = ?" for k in values)
            with self._connect() as conn:
                conn.execute(
                    f"UPDATE profile SET {assignments} WHERE id = 1",
                    list(values.values()),
                )
            logger.info("Profile updated: %s", ", ".join(sorted(values)))
        return self.get_active_profile()
