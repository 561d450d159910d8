import itertools

import pytest

from shotscan.models import BiasDirection, BiasSeverity, Tightness, TrendDirection
from shotscan.processing.insights import MAX_DRILLS, TRIGGER_DRILL, generate_insights, outlier_text


@pytest.mark.parametrize(
    "tightness, bias, trend, outlier_rate",
    list(itertools.product(Tightness, BiasDirection, TrendDirection, [0.0, 0.1, 0.5])),
)
def test_every_pattern_has_coaching_text(tightness, bias, trend, outlier_rate):
    insights = generate_insights(tightness, bias, trend=trend, outlier_rate=outlier_rate)
    assert insights.observation
    assert "{" not in insights.observation
    assert insights.practice_focus
    assert insights.trend_text
    assert 1 <= len(insights.suggested_drills) <= MAX_DRILLS
    assert insights == generate_insights(tightness, bias, trend=trend, outlier_rate=outlier_rate)


def test_centered_bias_ignores_requested_severity():
    centered = generate_insights(Tightness.TIGHT, BiasDirection.CENTERED, severity=BiasSeverity.SIGNIFICANT)
    assert centered.observation == "Shots are tightly grouped around the center."


def test_bias_location_is_named_in_observation():
    insights = generate_insights(Tightness.TIGHT, BiasDirection.LOW_LEFT, severity=BiasSeverity.SIGNIFICANT)
    assert "low-left of center" in insights.observation
    wide = generate_insights(Tightness.WIDE, BiasDirection.HIGH_RIGHT)
    assert "high and right side" in wide.observation


def test_frequent_outliers_bring_trigger_work_forward():
    calm = generate_insights(Tightness.MODERATE, BiasDirection.CENTERED, outlier_rate=0.1)
    assert TRIGGER_DRILL not in calm.suggested_drills
    stray = generate_insights(Tightness.MODERATE, BiasDirection.CENTERED, outlier_rate=0.25)
    assert stray.suggested_drills[0] == TRIGGER_DRILL
    assert "trigger" in stray.practice_focus


def test_outlier_text():
    assert outlier_text(0.0) == ""
    assert outlier_text(0.1) == "An occasional shot landed outside the main group."
    assert outlier_text(0.4) == "40% of shots landed outside the main group."
