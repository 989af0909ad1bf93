"""
QuitCoach — Data Models.

Logged cigarettes, their trigger tags and the single user profile.
The coaching core only reads these; the bot and the SQLite store create them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class ReductionCurve(str, Enum):
    """Shape of the daily-target curve between plan start and quit date."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"
    STEPPED = "stepped"
    GENTLE = "gentle"

    @classmethod
    def parse(cls, raw: str | None) -> ReductionCurve:
        """Unknown or empty values fall back to linear."""
        try:
            return cls(raw)
        except ValueError:
            return cls.LINEAR


@dataclass
class Tag:
    """A trigger label (e.g. "coffee", "stress") that can be attached to events."""

    id: int
    name: str
    color: str = "#808080"


@dataclass
class SmokingEvent:
    """A single logged cigarette."""

    id: int
    timestamp: datetime
    note: str | None = None
    tags: list[Tag] = field(default_factory=list)


@dataclass
class UserProfile:
    """The active quit plan.

    Created lazily the first time the user touches a setting.
    """

    id: int = 1
    name: str = ""
    quit_date: date | None = None
    enable_gradual_reduction: bool = True
    reduction_curve: ReductionCurve = ReductionCurve.LINEAR
    daily_average: float = 0.0          # baseline cigarettes per day
    created_at: datetime | None = None  # plan start, used for curve progress
