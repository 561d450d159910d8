from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoleDetectionConfig:
    """Thresholds for candidate detection and classification.

    Radii are in normalized target units (1.0 = outermost ring along the axis).
    """

    min_circularity: float = 0.5
    auto_accept_confidence: float = 0.85
    suggestion_confidence: float = 0.5
    minimum_confidence: float = 0.3
    filter_scoring_ring_artifacts: bool = True
    scoring_ring_tolerance: float = 0.025
    use_local_background: bool = True
    max_candidates: int = 30
    min_hole_radius: float = 0.015
    max_hole_radius: float = 0.08
    split_merged_holes: bool = True

    def __post_init__(self) -> None:
        if not (
            0.0
            <= self.minimum_confidence
            <= self.suggestion_confidence
            <= self.auto_accept_confidence
            <= 1.0
        ):
            raise ValueError(
                "Confidence thresholds must satisfy 0 <= minimum <= suggestion <= auto_accept <= 1, "
                f"got {self.minimum_confidence}, {self.suggestion_confidence}, {self.auto_accept_confidence}"
            )
        if not 0.0 <= self.min_circularity <= 1.0:
            raise ValueError(f"min_circularity must be in [0, 1], got {self.min_circularity}")
        if self.scoring_ring_tolerance < 0:
            raise ValueError("scoring_ring_tolerance must be non-negative")
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        if not 0.0 < self.min_hole_radius < self.max_hole_radius:
            raise ValueError("Hole radius window must satisfy 0 < min_hole_radius < max_hole_radius")

    def with_overrides(self, **values) -> "HoleDetectionConfig":
        known = {f.name for f in fields(self)}
        accepted = {}
        for key, value in values.items():
            if key in known:
                accepted[key] = value
            else:
                logger.warning("Ignoring unknown detection setting: %s", key)
        return replace(self, **accepted)

    def to_dict(self) -> dict:
        return asdict(self)


DETECTION_PRESETS: Dict[str, HoleDetectionConfig] = {
    "strict": HoleDetectionConfig(
        min_circularity=0.7,
        auto_accept_confidence=0.92,
        suggestion_confidence=0.7,
        minimum_confidence=0.4,
        filter_scoring_ring_artifacts=True,
        scoring_ring_tolerance=0.03,
    ),
    "balanced": HoleDetectionConfig(),
    "sensitive": HoleDetectionConfig(
        min_circularity=0.4,
        auto_accept_confidence=0.75,
        suggestion_confidence=0.4,
        minimum_confidence=0.2,
        filter_scoring_ring_artifacts=False,
    ),
    "dark-target": HoleDetectionConfig(
        min_circularity=0.45,
        auto_accept_confidence=0.8,
        suggestion_confidence=0.45,
        minimum_confidence=0.25,
        filter_scoring_ring_artifacts=True,
        scoring_ring_tolerance=0.025,
        use_local_background=True,
    ),
}

DEFAULT_PRESET = "balanced"


def get_preset(name: str) -> HoleDetectionConfig:
    key = name.strip().lower().replace("_", "-")
    if key not in DETECTION_PRESETS:
        raise KeyError(f"Unknown detection preset: {name}")
    return DETECTION_PRESETS[key]


def preset_name_for(config: HoleDetectionConfig) -> str:
    """Name of the preset equal to ``config``, or ``"custom"``."""
    for name, preset in DETECTION_PRESETS.items():
        if preset == config:
            return name
    return "custom"
