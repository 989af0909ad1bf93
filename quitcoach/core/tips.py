"""Coaching message library.

Templates are grouped into four bands that follow the risk score, from
low-stakes motivation up to in-the-moment support. Within a band, templates
whose context matches the current features are preferred, then one is
picked at random so the user doesn't see the same line twice in a row.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

from quitcoach.core.features import FeatureVector

MIN_MESSAGE_LENGTH = 20
MAX_MESSAGE_LENGTH = 280


class TipBand(str, Enum):
    MOTIVATION = "motivation"
    ENCOURAGEMENT = "encouragement"
    GUIDANCE = "guidance"
    SUPPORT = "support"


class TipContext(str, Enum):
    RECENT = "recent"              # smoked within the last half hour
    HIGH_RISK_HOUR = "high_risk_hour"
    ON_STREAK = "on_streak"
    QUIT_PLAN = "quit_plan"        # at or past the quit date
    OVER_TARGET = "over_target"    # today's count reached the plan target
    TRIGGER = "trigger"            # last cigarette was tagged


@dataclass(frozen=True)
class CoachTip:
    content: str
    band: TipBand
    contexts: frozenset[TipContext] = frozenset()


def _tip(content: str, band: TipBand, *contexts: TipContext) -> CoachTip:
    return CoachTip(content=content, band=band, contexts=frozenset(contexts))


_M, _E, _G, _S = TipBand.MOTIVATION, TipBand.ENCOURAGEMENT, TipBand.GUIDANCE, TipBand.SUPPORT

DEFAULT_TIPS: tuple[CoachTip, ...] = (
    # Motivation
    _tip("Think about why you started this journey. You're worth it.", _M),
    _tip("Every cigarette you skip gives your heart and lungs a little more room to heal.", _M),
    _tip("You're on day {streak} smoke-free! Your body is healing right now.", _M, TipContext.ON_STREAK),
    _tip("Your lungs are cleaning themselves right now. Keep going.", _M, TipContext.ON_STREAK),
    _tip("Your quit date is part of your story now. Each hour without smoking writes the next line.", _M, TipContext.QUIT_PLAN),

    # Encouragement
    _tip("Every minute without smoking is a victory. You're stronger than the urge.", _E),
    _tip("Cravings peak and pass within a few minutes. You've ridden them out before.", _E),
    _tip("You've already made it {streak} days. Don't trade that for one cigarette.", _E, TipContext.ON_STREAK),
    _tip("This hour has been a tricky one for you lately. Knowing that is half the battle.", _E, TipContext.HIGH_RISK_HOUR),
    _tip("One slip doesn't erase your progress. The next one is the one that counts.", _E, TipContext.RECENT),

    # Guidance
    _tip("Take 4 slow breaths: in for 4, hold for 4, out for 4, pause for 4.", _G),
    _tip("Drink a full glass of water slowly. Stay hydrated, not smoked.", _G),
    _tip("If you reach for a cigarette, then drink water and count to 60 first.", _G, TipContext.RECENT),
    _tip("Change your location. Go somewhere smoking isn't allowed for the next half hour.", _G, TipContext.HIGH_RISK_HOUR),
    _tip("Take 20 steps. Walk to another room or around the block.", _G, TipContext.HIGH_RISK_HOUR),
    _tip("You noted a trigger last time. Plan one thing to do differently when it shows up again.", _G, TipContext.TRIGGER),
    _tip("You've reached today's target of {target}. Delay the next one by 15 minutes and see how it feels.", _G, TipContext.OVER_TARGET),

    # Support
    _tip("This urge will pass. Try the 4-7-8 technique: breathe in for 4, hold for 7, exhale for 8.", _S),
    _tip("Keep your hands busy right now. Hold something, stretch, or text a friend.", _S),
    _tip("If stress hits, then step outside for 2 minutes of fresh air instead of lighting up.", _S, TipContext.TRIGGER),
    _tip("You just had one, so the next craving is on its way. Decide now what you'll do instead.", _S, TipContext.RECENT),
    _tip("Text someone who supports your quit journey. You don't have to ride this out alone.", _S, TipContext.QUIT_PLAN),
)


def active_contexts(features: FeatureVector) -> set[TipContext]:
    """Contexts that currently apply to the user."""
    contexts = set()
    if features.minutes_since_last_event < 30:
        contexts.add(TipContext.RECENT)
    if features.time_of_day_risk > 0.7:
        contexts.add(TipContext.HIGH_RISK_HOUR)
    if features.current_streak_days > 0:
        contexts.add(TipContext.ON_STREAK)
    if features.has_quit_plan and features.days_relative_to_quit_date >= 0:
        contexts.add(TipContext.QUIT_PLAN)
    if (
        features.today_target is not None
        and features.events_today >= features.today_target
        and features.events_today > 0
    ):
        contexts.add(TipContext.OVER_TARGET)
    if features.has_active_tags:
        contexts.add(TipContext.TRIGGER)
    return contexts


class TipLibrary:
    """Picks a coaching message for a risk band."""

    def __init__(self, tips: tuple[CoachTip, ...] = DEFAULT_TIPS) -> None:
        self._tips = tips

    def tips_for(self, band: TipBand) -> list[CoachTip]:
        return [t for t in self._tips if t.band is band]

    def select(
        self,
        band: TipBand,
        features: FeatureVector,
        rng: random.Random | None = None,
    ) -> str:
        """Return a formatted message from `band` suited to `features`."""
        rng = rng or random.Random()
        candidates = self.tips_for(band)
        contexts = active_contexts(features)

        matching = [t for t in candidates if t.contexts & contexts]
        generic = [t for t in candidates if not t.contexts]
        pool = matching or generic or candidates
        if not pool:
            raise LookupError(f"No tips for band {band.value}")

        tip = rng.choice(pool)
        message = tip.content.format(
            streak=features.current_streak_days,
            target=features.today_target if features.today_target is not None else 0,
        )
        return message[:MAX_MESSAGE_LENGTH]
