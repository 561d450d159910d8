import json
from pathlib import Path

import pytest

from shotscan.processing.detection_config import get_preset
from shotscan.settings_manager import DEFAULT_SETTINGS, SettingsManager, build_detection_config


def test_settings_manager_loads_defaults(tmp_path: Path):
    settings_path = tmp_path / "settings.json"
    manager = SettingsManager(settings_path)
    assert manager.get("version") == DEFAULT_SETTINGS["version"]
    assert manager.get("detection.preset") == "balanced"
    manager.set("detection.preset", "strict")
    reloaded = SettingsManager(settings_path)
    assert reloaded.get("detection.preset") == "strict"
    assert reloaded.detection_config() == get_preset("strict")


def test_partial_file_is_merged_with_defaults(tmp_path: Path):
    settings_path = tmp_path / "settings.json"
    settings_path.write_text(json.dumps({"detection": {"preset": "sensitive"}, "extra": 1}), encoding="utf-8")
    manager = SettingsManager(settings_path)
    assert manager.get("detection.preset") == "sensitive"
    assert manager.get("detection.max_image_edge") == 1600
    assert manager.get("analysis.exclude_outliers") is False
    assert manager.get("extra") == 1
    assert manager.get("detection.missing", "fallback") == "fallback"


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path):
    settings_path = tmp_path / "settings.json"
    settings_path.write_text("[1, 2", encoding="utf-8")
    manager = SettingsManager(settings_path)
    assert manager.data == DEFAULT_SETTINGS
    manager.set("history.trend_window", 5)
    assert DEFAULT_SETTINGS["history"]["trend_window"] == 3


def test_build_detection_config_applies_overrides():
    settings = {"detection": {"preset": "dark_target", "overrides": {"max_candidates": 12}}}
    config = build_detection_config(settings)
    assert config.max_candidates == 12
    assert config.auto_accept_confidence == pytest.approx(get_preset("dark-target").auto_accept_confidence)


def test_build_detection_config_tolerates_bad_values(caplog):
    assert build_detection_config({"detection": {"preset": "extreme"}}) == get_preset("balanced")
    assert "extreme" in caplog.text
    invalid = {"detection": {"preset": "balanced", "overrides": {"max_candidates": 0}}}
    assert build_detection_config(invalid) == get_preset("balanced")


@pytest.mark.parametrize("overrides", [{"max_candidates": "10"}, {"min_circularity": None}, ["max_candidates"]])
def test_build_detection_config_ignores_mistyped_overrides(overrides, caplog):
    settings = {"detection": {"preset": "balanced", "overrides": overrides}}
    assert build_detection_config(settings) == get_preset("balanced")
    assert "Ignoring invalid detection overrides" in caplog.text
