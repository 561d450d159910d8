from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Tuple

from shotscan.models import Classification, ClassifiedCandidates, HoleCandidate
from shotscan.processing.detection_config import HoleDetectionConfig
from shotscan.processing.geometry import TETRATHLON_TARGET, TargetGeometry

logger = logging.getLogger(__name__)

LOW_CIRCULARITY = "low circularity"
RING_ARTIFACT = "ring artifact"
LOW_CONFIDENCE = "low confidence"


def classify_candidate(
    candidate: HoleCandidate,
    config: HoleDetectionConfig,
    geometry: TargetGeometry = TETRATHLON_TARGET,
) -> Tuple[Classification, HoleCandidate]:
    """Classify one candidate; rejected candidates come back with ``filter_reason`` set.

    Boundaries are inclusive on the higher tier.
    """
    if candidate.circularity < config.min_circularity:
        return Classification.REJECTED, replace(candidate, filter_reason=LOW_CIRCULARITY)
    if config.filter_scoring_ring_artifacts and geometry.is_on_scoring_ring(
        candidate.normalized_position, config.scoring_ring_tolerance
    ):
        return Classification.REJECTED, replace(candidate, filter_reason=RING_ARTIFACT)
    if candidate.confidence >= config.auto_accept_confidence:
        return Classification.ACCEPTED, candidate
    if candidate.confidence >= config.minimum_confidence:
        return Classification.SUGGESTED, candidate
    return Classification.REJECTED, replace(candidate, filter_reason=LOW_CONFIDENCE)


def classify_candidates(
    candidates: Iterable[HoleCandidate],
    config: HoleDetectionConfig,
    geometry: TargetGeometry = TETRATHLON_TARGET,
) -> ClassifiedCandidates:
    accepted: List[HoleCandidate] = []
    suggested: List[HoleCandidate] = []
    rejected: List[HoleCandidate] = []
    for candidate in candidates:
        classification, annotated = classify_candidate(candidate, config, geometry)
        if classification is Classification.ACCEPTED:
            accepted.append(annotated)
        elif classification is Classification.SUGGESTED:
            suggested.append(annotated)
        else:
            rejected.append(annotated)

    accepted.sort(key=_by_confidence)
    # high band [suggestion, auto_accept) is presented before the low band
    suggested.sort(key=lambda c: (c.confidence < config.suggestion_confidence,) + _by_confidence(c))
    rejected.sort(key=_by_confidence)

    result = ClassifiedCandidates(accepted=tuple(accepted), suggested=tuple(suggested), rejected=tuple(rejected))
    logger.debug("Classified candidates: %s", result.counts())
    return result


def _by_confidence(candidate: HoleCandidate) -> Tuple[float, float, float]:
    return -candidate.confidence, candidate.pixel_position[1], candidate.pixel_position[0]
