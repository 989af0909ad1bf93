"""Coaching decision policy — pure business logic.

Scores near-term smoking risk from a FeatureVector with a weighted rule set
and decides whether a nudge is worth sending. The engine never sends
anything and never touches rate-limit state; the planner does both.

Risk weights (tunable, not learned):

    last cigarette < 30 min           +0.35
    last cigarette < 60 min           +0.30
    last cigarette < 120 min          +0.20
    time-of-day risk                  +0.40 x risk
    30-day average > 15/day           +0.10
    last cigarette tagged (trigger)   +0.05
    past quit date, still smoking     +0.15
    quit date within 3 days           +0.10
    today's count reached target      +0.10
    smoke-free streak                 x max(0.3, 1 - streak/30)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from quitcoach.core.features import FeatureVector
from quitcoach.core.tips import TipBand, TipLibrary

logger = logging.getLogger(__name__)

RISK_THRESHOLD = 0.6
HEAVY_SMOKER_AVG = 15.0
NEAR_QUIT_DATE_DAYS = 3
JUST_SMOKED_MINUTES = 5.0
LONG_STREAK_DAYS = 30
LONG_STREAK_RISK_OVERRIDE = 0.9
NIGHT_START_HOUR = 23
NIGHT_END_HOUR = 5
NIGHT_RISK_OVERRIDE = 0.8

# Lower bounds of each band, checked from the top
_BANDS: tuple[tuple[float, TipBand], ...] = (
    (0.8, TipBand.SUPPORT),
    (0.6, TipBand.GUIDANCE),
    (0.3, TipBand.ENCOURAGEMENT),
    (0.0, TipBand.MOTIVATION),
)


@dataclass(frozen=True)
class CoachAction:
    """Either no action or a nudge carrying its message."""

    message: str | None = None
    risk: float = field(default=0.0, compare=False)
    band: TipBand | None = field(default=None, compare=False)

    @classmethod
    def none(cls, risk: float = 0.0) -> CoachAction:
        return cls(message=None, risk=risk)

    @classmethod
    def nudge(cls, message: str, risk: float = 0.0, band: TipBand | None = None) -> CoachAction:
        return cls(message=message, risk=risk, band=band)

    @property
    def is_nudge(self) -> bool:
        return self.message is not None


def risk_score(features: FeatureVector) -> float:
    """Composite near-term risk in [0, 1]."""
    risk = 0.0

    minutes = features.minutes_since_last_event
    if minutes < 30:
        risk += 0.35
    elif minutes < 60:
        risk += 0.3
    elif minutes < 120:
        risk += 0.2

    risk += features.time_of_day_risk * 0.4

    if features.avg_per_day_30d > HEAVY_SMOKER_AVG:
        risk += 0.1

    if features.has_active_tags:
        risk += 0.05

    if features.has_quit_plan:
        days = features.days_relative_to_quit_date
        if days >= 0 and features.avg_per_day_30d > 0:
            risk += 0.15
        elif -NEAR_QUIT_DATE_DAYS <= days < 0 and features.avg_per_day_30d >= 1:
            risk += 0.1

    if (
        features.today_target is not None
        and features.events_today > 0
        and features.events_today >= features.today_target
    ):
        risk += 0.1

    if features.current_streak_days > 0:
        risk *= max(0.3, 1.0 - features.current_streak_days / 30.0)

    return min(1.0, max(0.0, risk))


def band_for(risk: float) -> TipBand:
    for lower, band in _BANDS:
        if risk >= lower:
            return band
    return TipBand.MOTIVATION


def safety_block_reason(features: FeatureVector) -> str | None:
    """Return why a non-forced nudge would be inappropriate, or None."""
    if features.minutes_since_last_event < JUST_SMOKED_MINUTES:
        return "cigarette logged moments ago"
    if (
        (features.hour_of_day >= NIGHT_START_HOUR or features.hour_of_day <= NIGHT_END_HOUR)
        and features.time_of_day_risk < NIGHT_RISK_OVERRIDE
    ):
        return "late night, risk not high enough"
    if (
        features.current_streak_days > LONG_STREAK_DAYS
        and features.time_of_day_risk < LONG_STREAK_RISK_OVERRIDE
    ):
        return "long streak, user doing well"
    return None


class CoachEngine:
    """Decides whether the current situation deserves a nudge."""

    def __init__(
        self,
        tips: TipLibrary | None = None,
        rng: random.Random | None = None,
        threshold: float = RISK_THRESHOLD,
    ) -> None:
        self._tips = tips or TipLibrary()
        self._rng = rng or random.Random()
        self.threshold = threshold

    def decide(
        self,
        features: FeatureVector,
        force_evaluation: bool = False,
        gates_open: bool = True,
    ) -> CoachAction:
        """Return the action for this feature vector.

        Args:
            features: Output of FeatureStore.collect.
            force_evaluation: Manual "check now"; skips gating and safety
                              rules and fires on any non-zero risk.
            gates_open: Result of the planner's rate-limit/quiet-hours
                        gates. A closed gate rejects without scoring.
        """
        if not force_evaluation and not gates_open:
            logger.debug("Coach skipped: gates closed")
            return CoachAction.none()

        if not force_evaluation:
            reason = safety_block_reason(features)
            if reason:
                logger.debug("Coach skipped by safety rule: %s", reason)
                return CoachAction.none()

        risk = risk_score(features)
        logger.debug("Calculated risk level: %.3f", risk)

        fires = risk > self.threshold or (force_evaluation and risk > 0.0)
        if not fires:
            return CoachAction.none(risk=risk)

        band = band_for(risk)
        message = self._tips.select(band, features, self._rng)
        logger.info("Coach nudge selected (risk=%.2f, band=%s)", risk, band.value)
        return CoachAction.nudge(message, risk=risk, band=band)
