"""
QuitCoach — JITAI Planner.

Wraps the CoachEngine with wall-clock gating (daily cap, quiet hours,
minimum interval) and hands permitted nudges to the notifier and the
latest-tip publisher.

Provider-agnostic: depends on the event/profile/notification/tip ports,
not on Telegram or SQLite. Rate-limit state lives in memory; a restart
resets the daily counter to zero.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from quitcoach.core.coach_engine import CoachAction, CoachEngine
from quitcoach.core.features import FeatureStore

if TYPE_CHECKING:
    from quitcoach.data.models import SmokingEvent, UserProfile
    from quitcoach.ports.event_port import EventSourcePort, ProfileSourcePort
    from quitcoach.ports.notification_port import NotificationPort
    from quitcoach.ports.tip_port import TipPublisherPort

logger = logging.getLogger(__name__)

# Enough history for the longest streak lookback
_QUERY_LOOKBACK = timedelta(days=366)


class PlannerConfig(BaseModel):
    """Runtime-adjustable gating configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_notifications_per_day: int = 3
    quiet_hours_enabled: bool = True
    quiet_hours_start: int = 22
    quiet_hours_end: int = 6
    min_interval_minutes: int = 120

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def valid_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("max_notifications_per_day")
    @classmethod
    def valid_cap(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"Daily notifications must be between 1 and 10, got {v}")
        return v

    @field_validator("min_interval_minutes")
    @classmethod
    def valid_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Minimum interval cannot be negative")
        return v

    @model_validator(mode="after")
    def distinct_quiet_bounds(self) -> PlannerConfig:
        if self.quiet_hours_enabled and self.quiet_hours_start == self.quiet_hours_end:
            raise ValueError("Quiet hours start and end cannot be the same")
        return self


@dataclass
class RateLimitState:
    """Notification counters for one planner. Never shared implicitly."""

    sent_today: int = 0
    last_notification_at: datetime | None = None
    day_marker: date | None = None

    def roll_over(self, today: date) -> bool:
        """Reset the daily counter when the calendar day changed.

        Returns True if a reset happened.
        """
        if self.day_marker == today:
            return False
        reset = self.day_marker is not None and self.sent_today > 0
        self.sent_today = 0
        self.day_marker = today
        return reset

    def record(self, now: datetime) -> None:
        self.sent_today += 1
        self.last_notification_at = now
        self.day_marker = now.date()


def is_quiet_hour(hour: int, start: int, end: int) -> bool:
    """Check whether an hour falls inside a quiet window (bounds inclusive).

    A window whose start is after its end spans midnight, e.g. 22 -> 6.
    """
    if start > end:
        return hour >= start or hour <= end
    return start <= hour <= end


class JITAIPlanner:
    """Gates and delivers coaching nudges."""

    def __init__(
        self,
        events: EventSourcePort,
        profiles: ProfileSourcePort,
        notifier: NotificationPort,
        tip_publisher: TipPublisherPort | None = None,
        engine: CoachEngine | None = None,
        feature_store: FeatureStore | None = None,
        config: PlannerConfig | None = None,
        state: RateLimitState | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self._events = events
        self._profiles = profiles
        self._notifier = notifier
        self._tip_publisher = tip_publisher
        self._engine = engine or CoachEngine()
        self._feature_store = feature_store or FeatureStore()
        self._config = config or PlannerConfig()
        self.state = state or RateLimitState()
        self._tz = tz or timezone.utc
        self._lock = asyncio.Lock()

    @property
    def config(self) -> PlannerConfig:
        return self._config

    def update_config(self, **changes) -> PlannerConfig:
        """Validate and apply config changes; used from the next evaluation on.

        Raises pydantic.ValidationError (a ValueError) on invalid values,
        leaving the current config untouched.
        """
        merged = {**self._config.model_dump(), **changes}
        self._config = PlannerConfig.model_validate(merged)
        logger.info("Planner config updated: %s", changes)
        return self._config

    # -- gating -------------------------------------------------------------

    def gate_rejection(self, now: datetime) -> str | None:
        """Return why a non-forced nudge can't go out now, or None if it can."""
        cfg = self._config
        if not cfg.enabled:
            return "coaching paused"

        if self.state.sent_today >= cfg.max_notifications_per_day:
            return "daily limit reached"

        if cfg.quiet_hours_enabled and is_quiet_hour(
            now.hour, cfg.quiet_hours_start, cfg.quiet_hours_end
        ):
            return "quiet hours"

        last = self.state.last_notification_at
        if last is not None:
            elapsed = now - last
            if elapsed <= timedelta(minutes=cfg.min_interval_minutes):
                return "minimum interval not met"

        return None

    # -- evaluation ---------------------------------------------------------

    async def evaluate_and_notify(
        self,
        force_evaluation: bool = False,
        now: datetime | None = None,
    ) -> CoachAction:
        """Run one coaching evaluation and deliver at most one nudge.

        Graceful degradation:
        - event source fails -> evaluate an empty log
        - profile source fails -> evaluate without a profile
        - notifier fails -> logged, slot stays consumed
        - tip publisher fails -> logged, result unchanged
        """
        async with self._lock:
            if now is None:
                now = datetime.now(self._tz)

            if self.state.roll_over(now.date()):
                logger.info("Reset daily notification counter")

            rejection = None if force_evaluation else self.gate_rejection(now)
            if rejection:
                logger.debug("Coach evaluation skipped: %s", rejection)
                return CoachAction.none()

            events = await self._load_events(now)
            profile = await self._load_profile()

            features = self._feature_store.collect(events, profile, now)
            action = self._engine.decide(features, force_evaluation=force_evaluation)
            if not action.is_nudge:
                return action

            # Forced checks are on demand and don't use up a slot
            if not force_evaluation:
                self.state.record(now)

            logger.info(
                "Sending coaching nudge (%d/%d today, forced=%s)",
                self.state.sent_today,
                self._config.max_notifications_per_day,
                force_evaluation,
            )
            await self._deliver(action.message)
            await self._publish(action.message, now)
            return action

    async def _load_events(self, now: datetime) -> list[SmokingEvent]:
        try:
            return await self._events.query_events(since=now - _QUERY_LOOKBACK)
        except Exception as exc:
            logger.warning("Event source failed, evaluating empty log: %s", exc)
            return []

    async def _load_profile(self) -> UserProfile | None:
        try:
            return await self._profiles.get_active_profile()
        except Exception as exc:
            logger.warning("Profile source failed, evaluating without profile: %s", exc)
            return None

    async def _deliver(self, message: str) -> None:
        try:
            delivered = await self._notifier.deliver(message)
        except Exception as exc:
            logger.error("Failed to deliver coaching nudge: %s", exc)
            return
        if not delivered:
            logger.error("Notifier rejected coaching nudge")

    async def _publish(self, message: str, now: datetime) -> None:
        if self._tip_publisher is None:
            return
        try:
            await self._tip_publisher.publish_latest_tip(message, now)
        except Exception as exc:
            logger.warning("Failed to publish latest tip: %s", exc)

