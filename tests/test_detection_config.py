import logging

import pytest

from shotscan.processing.detection_config import (
    DETECTION_PRESETS,
    HoleDetectionConfig,
    get_preset,
    preset_name_for,
)


def test_presets_satisfy_threshold_ordering():
    assert set(DETECTION_PRESETS) == {"strict", "balanced", "sensitive", "dark-target"}
    for config in DETECTION_PRESETS.values():
        assert 0.0 <= config.minimum_confidence <= config.suggestion_confidence
        assert config.suggestion_confidence <= config.auto_accept_confidence <= 1.0
        assert config.max_candidates == 30


def test_preset_values():
    strict = get_preset("strict")
    assert strict.min_circularity == pytest.approx(0.7)
    assert strict.auto_accept_confidence == pytest.approx(0.92)
    assert strict.scoring_ring_tolerance == pytest.approx(0.03)
    sensitive = get_preset("sensitive")
    assert not sensitive.filter_scoring_ring_artifacts
    assert get_preset("balanced") == HoleDetectionConfig()


def test_get_preset_accepts_name_variants():
    assert get_preset("dark_target") is get_preset("dark-target")
    assert get_preset(" Strict ") is get_preset("strict")
    with pytest.raises(KeyError):
        get_preset("extreme")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"minimum_confidence": 0.6, "suggestion_confidence": 0.5},
        {"suggestion_confidence": 0.9, "auto_accept_confidence": 0.85},
        {"auto_accept_confidence": 1.2},
        {"min_circularity": -0.1},
        {"scoring_ring_tolerance": -0.01},
        {"max_candidates": 0},
        {"min_hole_radius": 0.1, "max_hole_radius": 0.05},
    ],
)
def test_invalid_config_is_rejected(kwargs):
    with pytest.raises(ValueError):
        HoleDetectionConfig(**kwargs)


def test_with_overrides_ignores_unknown_keys(caplog):
    base = get_preset("balanced")
    with caplog.at_level(logging.WARNING):
        updated = base.with_overrides(min_circularity=0.6, no_such_setting=1)
    assert updated.min_circularity == pytest.approx(0.6)
    assert base.min_circularity == pytest.approx(0.5)
    assert "no_such_setting" in caplog.text
    assert preset_name_for(updated) == "custom"
    assert preset_name_for(base) == "balanced"
