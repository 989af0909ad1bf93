"""Shared test fixtures and configuration.

Sets up fake environment variables so quitcoach.config doesn't sys.exit(),
and provides common fixtures like temp databases.
"""

import os

# Patch env vars BEFORE any quitcoach imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_quitcoach.db")


@pytest.fixture
def event_db(tmp_db_path):
    """Return an EventDB instance backed by a temp file."""
    from quitcoach.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def profile_db(tmp_db_path):
    """Return a ProfileDB instance sharing the temp file with event_db."""
    from quitcoach.data.db import ProfileDB
    return ProfileDB(db_path=tmp_db_path)
