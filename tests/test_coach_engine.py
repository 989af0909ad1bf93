"""Tests for quitcoach.core.coach_engine — risk scoring and the decide policy."""

import random
from dataclasses import replace

import pytest

from quitcoach.core.coach_engine import (
    CoachAction,
    CoachEngine,
    band_for,
    risk_score,
    safety_block_reason,
)
from quitcoach.core.features import FeatureVector
from quitcoach.core.tips import MAX_MESSAGE_LENGTH, MIN_MESSAGE_LENGTH, TipBand, TipLibrary

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

QUIET = FeatureVector(
    minutes_since_last_event=1440.0,
    hour_of_day=14,
    current_streak_days=0,
    avg_per_day_30d=0.0,
    time_of_day_risk=0.0,
    has_active_tags=False,
    days_relative_to_quit_date=0,
)


def _features(**overrides) -> FeatureVector:
    return replace(QUIET, **overrides)


def _band_messages(band: TipBand, features: FeatureVector) -> set[str]:
    return {
        t.content.format(streak=features.current_streak_days, target=features.today_target or 0)
        for t in TipLibrary().tips_for(band)
    }


# ---------------------------------------------------------------------------
# risk_score
# ---------------------------------------------------------------------------


class TestRiskScore:
    def test_empty_features_zero(self):
        assert risk_score(QUIET) == 0.0

    @pytest.mark.parametrize(
        "minutes, expected",
        [(10, 0.35), (29.9, 0.35), (45, 0.3), (90, 0.2), (120, 0.0), (600, 0.0)],
    )
    def test_recency_tiers(self, minutes, expected):
        assert risk_score(_features(minutes_since_last_event=minutes)) == pytest.approx(expected)

    def test_time_of_day_weight(self):
        assert risk_score(_features(time_of_day_risk=0.5)) == pytest.approx(0.2)

    def test_craving_proximal_and_risky_hour(self):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        assert risk_score(features) == pytest.approx(0.75)

    def test_heavy_smoker_adds_baseline(self):
        assert risk_score(_features(avg_per_day_30d=20)) == pytest.approx(0.1)
        assert risk_score(_features(avg_per_day_30d=15)) == 0.0

    def test_tagged_trigger(self):
        assert risk_score(_features(has_active_tags=True)) == pytest.approx(0.05)

    def test_past_quit_date_while_smoking(self):
        features = _features(has_quit_plan=True, days_relative_to_quit_date=4, avg_per_day_30d=2)
        assert risk_score(features) == pytest.approx(0.15)

    def test_past_quit_date_without_smoking(self):
        features = _features(has_quit_plan=True, days_relative_to_quit_date=4, avg_per_day_30d=0)
        assert risk_score(features) == 0.0

    def test_near_quit_date(self):
        features = _features(has_quit_plan=True, days_relative_to_quit_date=-2, avg_per_day_30d=3)
        assert risk_score(features) == pytest.approx(0.1)

    def test_far_from_quit_date(self):
        features = _features(has_quit_plan=True, days_relative_to_quit_date=-20, avg_per_day_30d=3)
        assert risk_score(features) == 0.0

    def test_zero_days_without_plan_is_neutral(self):
        features = _features(has_quit_plan=False, days_relative_to_quit_date=0, avg_per_day_30d=3)
        assert risk_score(features) == 0.0

    def test_target_reached(self):
        assert risk_score(_features(events_today=5, today_target=5)) == pytest.approx(0.1)
        assert risk_score(_features(events_today=4, today_target=5)) == 0.0

    def test_streak_dampens(self):
        base = _features(time_of_day_risk=1.0)
        assert risk_score(replace(base, current_streak_days=15)) == pytest.approx(0.2)
        assert risk_score(replace(base, current_streak_days=60)) == pytest.approx(0.12)

    def test_clamped_to_one(self):
        features = _features(
            minutes_since_last_event=10,
            time_of_day_risk=1.0,
            avg_per_day_30d=20,
            has_active_tags=True,
            has_quit_plan=True,
            days_relative_to_quit_date=3,
            events_today=8,
            today_target=0,
        )
        assert risk_score(features) == 1.0


class TestBands:
    @pytest.mark.parametrize(
        "risk, band",
        [
            (0.0, TipBand.MOTIVATION),
            (0.29, TipBand.MOTIVATION),
            (0.3, TipBand.ENCOURAGEMENT),
            (0.6, TipBand.GUIDANCE),
            (0.79, TipBand.GUIDANCE),
            (0.8, TipBand.SUPPORT),
            (1.0, TipBand.SUPPORT),
        ],
    )
    def test_band_for(self, risk, band):
        assert band_for(risk) is band


class TestSafetyRules:
    def test_just_smoked(self):
        assert safety_block_reason(_features(minutes_since_last_event=2)) is not None

    def test_long_streak_low_hour_risk(self):
        assert safety_block_reason(_features(current_streak_days=40, time_of_day_risk=0.5))

    def test_long_streak_very_risky_hour_allowed(self):
        assert safety_block_reason(_features(current_streak_days=40, time_of_day_risk=0.95)) is None

    def test_normal_situation_allowed(self):
        assert safety_block_reason(_features(minutes_since_last_event=10)) is None

    @pytest.mark.parametrize("hour", [23, 0, 3, 5])
    def test_late_night_blocked_unless_risky_hour(self, hour):
        features = _features(minutes_since_last_event=10, hour_of_day=hour, time_of_day_risk=0.7)
        assert safety_block_reason(features) is not None
        assert safety_block_reason(replace(features, time_of_day_risk=0.8)) is None

    @pytest.mark.parametrize("hour", [6, 14, 22])
    def test_daytime_not_blocked_by_night_rule(self, hour):
        features = _features(minutes_since_last_event=10, hour_of_day=hour, time_of_day_risk=0.1)
        assert safety_block_reason(features) is None

    def test_night_rule_ignored_when_forced(self):
        engine = CoachEngine(rng=random.Random(1))
        features = _features(minutes_since_last_event=10, hour_of_day=3, time_of_day_risk=0.7)
        assert engine.decide(features).is_nudge is False
        assert engine.decide(features, force_evaluation=True).is_nudge


# ---------------------------------------------------------------------------
# decide
# ---------------------------------------------------------------------------


class TestDecide:
    @pytest.fixture
    def engine(self):
        return CoachEngine(rng=random.Random(7))

    def test_empty_log_returns_none(self, engine):
        action = engine.decide(QUIET, force_evaluation=False)
        assert action == CoachAction.none()
        assert action.is_nudge is False

    def test_empty_log_forced_still_none(self, engine):
        assert engine.decide(QUIET, force_evaluation=True).is_nudge is False

    def test_high_risk_nudges(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        action = engine.decide(features)
        assert action.is_nudge
        assert action.band is TipBand.GUIDANCE
        assert action.message in _band_messages(TipBand.GUIDANCE, features)
        assert action.risk == pytest.approx(0.75)

    def test_below_threshold_no_nudge(self, engine):
        action = engine.decide(_features(minutes_since_last_event=45, time_of_day_risk=0.5))
        assert action.is_nudge is False
        assert action.risk == pytest.approx(0.5)

    def test_exactly_threshold_no_nudge(self, engine):
        # 0.2 + 0.4 * 1.0 = 0.6, which does not exceed the threshold
        action = engine.decide(_features(minutes_since_last_event=90, time_of_day_risk=1.0))
        assert action.is_nudge is False

    def test_support_band_for_very_high_risk(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0, avg_per_day_30d=20)
        action = engine.decide(features)
        assert action.band is TipBand.SUPPORT
        assert action.message in _band_messages(TipBand.SUPPORT, features)

    def test_closed_gates_reject_without_scoring(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        action = engine.decide(features, force_evaluation=False, gates_open=False)
        assert action.is_nudge is False
        assert action.risk == 0.0

    def test_force_ignores_closed_gates(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        assert engine.decide(features, force_evaluation=True, gates_open=False).is_nudge

    def test_force_fires_on_minimal_signal(self, engine):
        features = _features(time_of_day_risk=0.2)
        action = engine.decide(features, force_evaluation=True)
        assert action.is_nudge
        assert action.band is TipBand.MOTIVATION

    def test_safety_rule_blocks_unforced(self, engine):
        features = _features(minutes_since_last_event=2, time_of_day_risk=1.0)
        assert engine.decide(features).is_nudge is False
        assert engine.decide(features, force_evaluation=True).is_nudge is True

    def test_message_length_bounds(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        for _ in range(50):
            message = engine.decide(features).message
            assert MIN_MESSAGE_LENGTH <= len(message) <= MAX_MESSAGE_LENGTH

    def test_seeded_rng_is_reproducible(self):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0, current_streak_days=0)
        first = CoachEngine(rng=random.Random(42)).decide(features, force_evaluation=True)
        second = CoachEngine(rng=random.Random(42)).decide(features, force_evaluation=True)
        assert first.message == second.message

    def test_custom_threshold(self):
        engine = CoachEngine(rng=random.Random(0), threshold=0.3)
        assert engine.decide(_features(minutes_since_last_event=10)).is_nudge

    def test_decide_has_no_side_effects(self, engine):
        features = _features(minutes_since_last_event=10, time_of_day_risk=1.0)
        before = features.as_dict()
        engine.decide(features)
        assert features.as_dict() == before
