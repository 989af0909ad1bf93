"""Tests for quitcoach.data.models — event, tag and profile dataclasses."""

from datetime import date, datetime, timezone

import pytest

from quitcoach.data.models import ReductionCurve, SmokingEvent, Tag, UserProfile


def test_smoking_event_defaults():
    event = SmokingEvent(id=1, timestamp=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
    assert event.note is None
    assert event.tags == []


def test_smoking_event_tags_not_shared():
    a = SmokingEvent(id=1, timestamp=datetime(2026, 3, 10, tzinfo=timezone.utc))
    b = SmokingEvent(id=2, timestamp=datetime(2026, 3, 10, tzinfo=timezone.utc))
    a.tags.append(Tag(id=1, name="coffee"))
    assert b.tags == []


def test_tag_default_color():
    assert Tag(id=1, name="stress").color == "#808080"


def test_profile_defaults():
    profile = UserProfile()
    assert profile.id == 1
    assert profile.quit_date is None
    assert profile.enable_gradual_reduction is True
    assert profile.reduction_curve is ReductionCurve.LINEAR
    assert profile.daily_average == 0.0
    assert profile.created_at is None


def test_profile_with_plan():
    profile = UserProfile(
        name="Sam",
        quit_date=date(2026, 4, 1),
        reduction_curve=ReductionCurve.STEPPED,
        daily_average=20,
    )
    assert profile.quit_date == date(2026, 4, 1)
    assert profile.reduction_curve.value == "stepped"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("linear", ReductionCurve.LINEAR),
        ("exponential", ReductionCurve.EXPONENTIAL),
        ("logarithmic", ReductionCurve.LOGARITHMIC),
        ("stepped", ReductionCurve.STEPPED),
        ("gentle", ReductionCurve.GENTLE),
        ("zigzag", ReductionCurve.LINEAR),
        ("", ReductionCurve.LINEAR),
        (None, ReductionCurve.LINEAR),
    ],
)
def test_reduction_curve_parse(raw, expected):
    assert ReductionCurve.parse(raw) is expected
