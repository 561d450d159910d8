from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict

from shotscan.processing.detection_config import DEFAULT_PRESET, HoleDetectionConfig, get_preset

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": 1,
    "detection": {
        "preset": DEFAULT_PRESET,
        "overrides": {},
        "max_image_edge": 1600,
    },
    "analysis": {
        "exclude_outliers": False,
    },
    "history": {
        "path": "history.json",
        "trend_window": 3,
    },
    "export": {
        "output_dir": "results",
    },
}


class SettingsManager:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.data = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return copy.deepcopy(DEFAULT_SETTINGS)
        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read settings %s, using defaults: %s", self.path, exc)
            return copy.deepcopy(DEFAULT_SETTINGS)
        if not isinstance(stored, dict):
            logger.warning("Settings file %s is not an object, using defaults", self.path)
            return copy.deepcopy(DEFAULT_SETTINGS)
        return _merge_settings(stored, DEFAULT_SETTINGS)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.data, indent=2, ensure_ascii=False), encoding="utf-8")

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted key such as ``"detection.preset"``."""
        node: Any = self.data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        node = self.data
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
        self.save()

    def detection_config(self) -> HoleDetectionConfig:
        return build_detection_config(self.data)


def build_detection_config(settings: Dict[str, Any]) -> HoleDetectionConfig:
    detection = settings.get("detection", {})
    preset_name = detection.get("preset", DEFAULT_PRESET)
    try:
        config = get_preset(preset_name)
    except KeyError:
        logger.warning("Unknown detection preset %r, using %s", preset_name, DEFAULT_PRESET)
        config = get_preset(DEFAULT_PRESET)
    overrides = detection.get("overrides") or {}
    if overrides:
        try:
            config = config.with_overrides(**overrides)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid detection overrides: %s", exc)
    return config


def _merge_settings(current: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for key, default_value in defaults.items():
        if key not in current:
            merged[key] = copy.deepcopy(default_value)
            continue
        if isinstance(default_value, dict) and isinstance(current[key], dict):
            merged[key] = _merge_settings(current[key], default_value)
        else:
            merged[key] = current[key]
    for key, value in current.items():
        if key not in merged:
            merged[key] = value
    return merged
