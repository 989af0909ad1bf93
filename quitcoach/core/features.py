"""Feature extraction — turns the event log and profile into a FeatureVector.

Pure read-and-compute: no I/O, no clock reads when `now` is supplied.
Malformed events are skipped rather than aborting the computation, so a
single bad row can never silence the coach.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from quitcoach.core.quit_plan import today_target
from quitcoach.data.models import UserProfile

logger = logging.getLogger(__name__)

NO_EVENT_MINUTES = 1440.0  # 24h: "long abstinence / unknown"
RISK_WINDOW_DAYS = 30
MAX_STREAK_LOOKBACK_DAYS = 365
TAG_RECENCY_HOURS = 24


@dataclass(frozen=True)
class FeatureVector:
    """Snapshot of the user's situation at one evaluation."""

    minutes_since_last_event: float
    hour_of_day: int
    current_streak_days: int
    avg_per_day_30d: float
    time_of_day_risk: float
    has_active_tags: bool
    days_relative_to_quit_date: int  # negative = before quit date
    has_quit_plan: bool = False
    events_today: int = 0
    today_target: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _Stamp:
    """An event reduced to what feature extraction needs."""

    timestamp: datetime
    tagged: bool


def _coerce_timestamp(raw: Any, now: datetime) -> datetime | None:
    if isinstance(raw, str):
        try:
            raw = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if not isinstance(raw, datetime):
        return None
    if raw.tzinfo is None:
        return raw.replace(tzinfo=now.tzinfo)
    return raw.astimezone(now.tzinfo)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


class FeatureStore:
    """Derives the coaching feature vector from a chronological event log."""

    def __init__(
        self,
        risk_window_days: int = RISK_WINDOW_DAYS,
        max_streak_lookback_days: int = MAX_STREAK_LOOKBACK_DAYS,
        tag_recency_hours: int = TAG_RECENCY_HOURS,
    ) -> None:
        self.risk_window_days = risk_window_days
        self.max_streak_lookback_days = max_streak_lookback_days
        self.tag_recency_hours = tag_recency_hours

    def collect(
        self,
        events: Iterable[Any],
        profile: UserProfile | None = None,
        now: datetime | None = None,
    ) -> FeatureVector:
        """Compute the feature vector for the given moment.

        Args:
            events: Smoking events in any order. Anything without a usable
                    timestamp is skipped; events after `now` are ignored.
            profile: Active profile, or None for defaults.
            now: Evaluation time. Naive values are taken as local time.
        """
        if now is None:
            now = datetime.now().astimezone()
        elif now.tzinfo is None:
            now = now.astimezone()

        stamps = self._normalize(events, now)
        today = now.date()

        avg_per_day_30d = self._daily_average(stamps, now)
        days_to_quit, has_plan = self._days_relative_to_quit_date(profile, today)

        features = FeatureVector(
            minutes_since_last_event=self._minutes_since_last(stamps, now),
            hour_of_day=now.hour,
            current_streak_days=self._current_streak(stamps, today),
            avg_per_day_30d=avg_per_day_30d,
            time_of_day_risk=self._time_of_day_risk(stamps, now),
            has_active_tags=self._has_active_tags(stamps, now),
            days_relative_to_quit_date=days_to_quit,
            has_quit_plan=has_plan,
            events_today=sum(1 for s in stamps if s.timestamp.date() == today),
            today_target=today_target(profile, avg_per_day_30d, today),
        )
        logger.debug("Collected features: %s", features.as_dict())
        return features

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _normalize(events: Iterable[Any], now: datetime) -> list[_Stamp]:
        stamps = []
        for event in events or ():
            ts = _coerce_timestamp(getattr(event, "timestamp", None), now)
            if ts is None:
                logger.debug("Skipping event without a usable timestamp: %r", event)
                continue
            if ts > now:
                continue
            tags = getattr(event, "tags", None) or ()
            stamps.append(_Stamp(timestamp=ts, tagged=len(tags) > 0))
        stamps.sort(key=lambda s: s.timestamp)
        return stamps

    @staticmethod
    def _minutes_since_last(stamps: list[_Stamp], now: datetime) -> float:
        if not stamps:
            return NO_EVENT_MINUTES
        elapsed = (now - stamps[-1].timestamp).total_seconds() / 60.0
        return max(0.0, elapsed)

    def _current_streak(self, stamps: list[_Stamp], today: date) -> int:
        """Consecutive smoke-free days counted back from today (today included)."""
        if not stamps:
            return 0

        smoking_days = {s.timestamp.date() for s in stamps}
        streak = 0
        for offset in range(self.max_streak_lookback_days):
            if today - timedelta(days=offset) in smoking_days:
                break
            streak += 1
        return streak

    def _window(self, stamps: list[_Stamp], now: datetime) -> list[_Stamp]:
        start = now - timedelta(days=self.risk_window_days)
        return [s for s in stamps if s.timestamp >= start]

    def _daily_average(self, stamps: list[_Stamp], now: datetime) -> float:
        return len(self._window(stamps, now)) / float(self.risk_window_days)

    def _time_of_day_risk(self, stamps: list[_Stamp], now: datetime) -> float:
        """Share of recent cigarettes smoked during the current hour."""
        window = self._window(stamps, now)
        if not window:
            return 0.0
        at_this_hour = sum(1 for s in window if s.timestamp.hour == now.hour)
        return min(1.0, max(0.0, at_this_hour / len(window)))

    def _has_active_tags(self, stamps: list[_Stamp], now: datetime) -> bool:
        if not stamps:
            return False
        last = stamps[-1]
        recent = now - last.timestamp <= timedelta(hours=self.tag_recency_hours)
        return recent and last.tagged

    @staticmethod
    def _days_relative_to_quit_date(
        profile: UserProfile | None, today: date
    ) -> tuple[int, bool]:
        if profile is None or profile.quit_date is None:
            return 0, False
        return (today - _as_date(profile.quit_date)).days, True
