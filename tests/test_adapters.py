"""Tests for quitcoach.adapters — SQLite sources, JSON tip publisher, Telegram notifier."""

import json
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import TelegramError

from quitcoach.adapters.json_tip_publisher import JsonTipPublisher
from quitcoach.adapters.sqlite_sources import SQLiteEventSource, SQLiteProfileSource
from quitcoach.adapters.telegram_notifier import TelegramNotifier

T0 = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# SQLite sources
# ---------------------------------------------------------------------------


class TestSQLiteSources:
    @pytest.mark.asyncio
    async def test_query_events_since(self, event_db):
        event_db.add_event(timestamp=T0 - timedelta(days=3))
        event_db.add_event(timestamp=T0, tag_names=["coffee"])
        source = SQLiteEventSource(event_db)

        events = await source.query_events(since=T0 - timedelta(hours=1))

        assert len(events) == 1
        assert events[0].tags[0].name == "coffee"

    @pytest.mark.asyncio
    async def test_query_all_events(self, event_db):
        event_db.add_event(timestamp=T0 - timedelta(days=3))
        event_db.add_event(timestamp=T0)
        assert len(await SQLiteEventSource(event_db).query_events()) == 2

    @pytest.mark.asyncio
    async def test_profile_missing(self, profile_db):
        assert await SQLiteProfileSource(profile_db).get_active_profile() is None

    @pytest.mark.asyncio
    async def test_profile_present(self, profile_db):
        profile_db.update_profile(quit_date=date(2026, 4, 1))
        profile = await SQLiteProfileSource(profile_db).get_active_profile()
        assert profile.quit_date == date(2026, 4, 1)


# ---------------------------------------------------------------------------
# JSON tip publisher
# ---------------------------------------------------------------------------


class TestJsonTipPublisher:
    @pytest.mark.asyncio
    async def test_publish_writes_document(self, tmp_path):
        path = tmp_path / "widget" / "latest_tip.json"
        publisher = JsonTipPublisher(str(path))

        await publisher.publish_latest_tip("Take 4 slow breaths.", T0)

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload == {"message": "Take 4 slow breaths.", "timestamp": T0.isoformat()}
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_publish_overwrites(self, tmp_path):
        publisher = JsonTipPublisher(str(tmp_path / "tip.json"))
        await publisher.publish_latest_tip("first message", T0)
        await publisher.publish_latest_tip("second message", T0 + timedelta(hours=1))
        assert publisher.read_latest_tip()["message"] == "second message"

    def test_read_missing(self, tmp_path):
        assert JsonTipPublisher(str(tmp_path / "nope.json")).read_latest_tip() is None

    def test_read_corrupt(self, tmp_path):
        path = tmp_path / "tip.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonTipPublisher(str(path)).read_latest_tip() is None


# ---------------------------------------------------------------------------
# Telegram notifier
# ---------------------------------------------------------------------------


def _make_bot():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    return bot


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_sends_to_every_chat(self):
        bot = _make_bot()
        notifier = TelegramNotifier(bot, [111, 222])

        assert await notifier.deliver("Hang in there.") is True
        assert bot.send_message.await_count == 2
        bot.send_message.assert_any_await(chat_id=222, text="Hang in there.")

    @pytest.mark.asyncio
    async def test_no_chats(self):
        assert await TelegramNotifier(_make_bot(), []).deliver("hello") is False

    @pytest.mark.asyncio
    async def test_partial_failure_still_delivered(self):
        bot = _make_bot()
        bot.send_message.side_effect = [TelegramError("blocked"), None]
        assert await TelegramNotifier(bot, [111, 222]).deliver("hello") is True

    @pytest.mark.asyncio
    async def test_all_failures(self):
        bot = _make_bot()
        bot.send_message.side_effect = TelegramError("network")
        assert await TelegramNotifier(bot, [111, 222]).deliver("hello") is False
