"""Quit plan calculator — pure business logic.

Turns a profile's baseline daily average and quit date into today's target
cigarette count, following the profile's reduction curve.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from enum import Enum

from quitcoach.data.models import ReductionCurve, UserProfile

logger = logging.getLogger(__name__)

_STEP_COUNT = 5
_MAX_STEPPED_REDUCTION = 0.8


class DependencyLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


def dependency_level(daily_average: float) -> DependencyLevel:
    """Classify dependency from the baseline cigarettes per day."""
    if daily_average < 5:
        return DependencyLevel.LOW
    if daily_average < 10:
        return DependencyLevel.MODERATE
    if daily_average < 20:
        return DependencyLevel.HIGH
    return DependencyLevel.SEVERE


def recommended_curve(level: DependencyLevel, total_days: int) -> ReductionCurve:
    """Suggest a reduction curve for a new plan.

    Heavier dependency gets a slower start; short plans fall back to a
    steeper curve because there is no room for a long tail.
    """
    if level is DependencyLevel.LOW:
        return ReductionCurve.LINEAR if total_days >= 14 else ReductionCurve.GENTLE
    if level is DependencyLevel.MODERATE:
        return ReductionCurve.EXPONENTIAL if total_days >= 21 else ReductionCurve.LINEAR
    if level is DependencyLevel.HIGH:
        return ReductionCurve.LOGARITHMIC if total_days >= 30 else ReductionCurve.EXPONENTIAL
    return ReductionCurve.STEPPED if total_days >= 45 else ReductionCurve.LOGARITHMIC


def curve_reduction(curve: ReductionCurve, progress: float, total_days: int) -> float:
    """Fraction of the baseline removed at a given plan progress (0..1)."""
    progress = min(1.0, max(0.0, progress))

    if curve is ReductionCurve.EXPONENTIAL:
        return progress ** 0.7
    if curve is ReductionCurve.LOGARITHMIC:
        return math.log10(1 + progress * 9) if progress > 0 else 0.0
    if curve is ReductionCurve.STEPPED:
        step_size = max(1, total_days // _STEP_COUNT)
        elapsed_days = int(round(progress * total_days))
        current_step = min(_STEP_COUNT - 1, elapsed_days // step_size)
        return current_step / (_STEP_COUNT - 1) * _MAX_STEPPED_REDUCTION
    if curve is ReductionCurve.GENTLE:
        return progress ** 1.3
    return progress


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def today_target(
    profile: UserProfile | None,
    daily_average: float,
    today: date,
) -> int | None:
    """Return how many cigarettes the plan allows today.

    Args:
        profile: The active profile, or None when the user has no plan.
        daily_average: Baseline cigarettes per day. The profile's own
                       baseline wins when it is set.
        today: Calendar day to compute the target for.

    Returns:
        None without a profile; the truncated baseline when gradual reduction
        is off or no quit date is set; 0 on or after the quit date.
    """
    if profile is None:
        return None

    baseline = profile.daily_average or daily_average

    if not profile.enable_gradual_reduction or profile.quit_date is None:
        return int(baseline)

    quit_day = _as_date(profile.quit_date)
    if today >= quit_day:
        return 0

    start_day = _as_date(profile.created_at) if profile.created_at else today
    total_days = (quit_day - start_day).days
    if total_days <= 0:
        return 0

    progress = (today - start_day).days / total_days
    reduction = curve_reduction(profile.reduction_curve, progress, total_days)
    # round first so 7.000000000000001 does not ceil to 8
    target = max(0, math.ceil(round(baseline * (1.0 - reduction), 6)))
    logger.debug(
        "Quit plan target %d (curve=%s, progress=%.2f)",
        target, profile.reduction_curve.value, progress,
    )
    return target
