from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from shotscan.models import (
    MINIMUM_SHOTS,
    BiasDirection,
    BiasSeverity,
    ConfidenceTier,
    ConfirmedHole,
    NormalizedPosition,
    PatternAnalysis,
    PatternAnalysisResult,
    SessionType,
    ShotStatistics,
    StoredPatternRecord,
    Tightness,
)
from shotscan.processing.geometry import TETRATHLON_TARGET, TargetCoordinateTransformer, TargetGeometry
from shotscan.processing.insights import generate_insights
from shotscan.processing.metrics import OUTLIER_MULTIPLIER, compute_statistics
from shotscan.processing.scoring import project_score, ring_distribution

logger = logging.getLogger(__name__)

# group radius buckets, normalized units (10 ring ~0.09, 8 ring ~0.32)
TIGHT_RADIUS = 0.12
MODERATE_RADIUS = 0.22
CENTERED_OFFSET = 0.05
SLIGHT_OFFSET = 0.15
# per-axis MPI component below which that axis is not named in the bias
DIRECTION_DEAD_ZONE = 0.03


def classify_tightness(group_radius: float) -> Tightness:
    if group_radius <= TIGHT_RADIUS:
        return Tightness.TIGHT
    if group_radius <= MODERATE_RADIUS:
        return Tightness.MODERATE
    return Tightness.WIDE


def classify_bias_severity(offset: float) -> BiasSeverity:
    if offset <= CENTERED_OFFSET:
        return BiasSeverity.CENTERED
    if offset <= SLIGHT_OFFSET:
        return BiasSeverity.SLIGHT
    return BiasSeverity.SIGNIFICANT


def bias_direction(mpi: NormalizedPosition) -> BiasDirection:
    if mpi.radial_distance <= CENTERED_OFFSET:
        return BiasDirection.CENTERED
    horizontal = ""
    if mpi.x > DIRECTION_DEAD_ZONE:
        horizontal = "right"
    elif mpi.x < -DIRECTION_DEAD_ZONE:
        horizontal = "left"
    vertical = ""
    if mpi.y > DIRECTION_DEAD_ZONE:
        vertical = "high"
    elif mpi.y < -DIRECTION_DEAD_ZONE:
        vertical = "low"
    if horizontal and vertical:
        return BiasDirection(f"{vertical}-{horizontal}")
    return BiasDirection(horizontal or vertical)


def suppression_reason(shot_count: int, min_shots: int = MINIMUM_SHOTS) -> Optional[str]:
    if shot_count <= 0:
        return "No shots recorded yet"
    if shot_count < min_shots:
        missing = min_shots - shot_count
        return (
            f"Need at least {min_shots} shots for analysis ({shot_count} recorded, "
            f"{missing} more needed)"
        )
    return None


def analyze_pattern(
    positions: Sequence[NormalizedPosition],
    geometry: TargetGeometry = TETRATHLON_TARGET,
    exclude_outliers: bool = False,
    outlier_multiplier: float = OUTLIER_MULTIPLIER,
) -> PatternAnalysis:
    """Analyse one session's shots given in normalized target coordinates.

    Fewer than the minimum number of shots yields a suppressed analysis rather than
    an error. Outliers are flagged but only removed from MPI and spread when
    ``exclude_outliers`` is set.
    """
    pts = list(positions)
    reason = suppression_reason(len(pts))
    if reason is not None:
        logger.debug("Pattern analysis suppressed: %s", reason)
        return PatternAnalysis(suppression_reason=reason)

    statistics = compute_statistics(pts, outlier_multiplier)
    if exclude_outliers and statistics.outlier_count:
        statistics = _without_outliers(pts, statistics, outlier_multiplier)

    confidence = ConfidenceTier.for_shot_count(len(pts))
    tightness = classify_tightness(statistics.group_radius)
    severity = classify_bias_severity(statistics.offset)
    bias = bias_direction(statistics.mpi)
    insights = generate_insights(
        tightness,
        bias,
        outlier_rate=statistics.outlier_count / len(pts),
        severity=severity,
    )
    observation = insights.observation
    if insights.outlier_text:
        observation = f"{observation} {insights.outlier_text}"

    result = PatternAnalysisResult(
        confidence=confidence,
        tightness=tightness,
        bias=bias,
        bias_severity=severity,
        observation=observation,
        practice_focus=insights.practice_focus,
        suggested_drills=insights.suggested_drills,
        statistics=statistics,
        total_score=sum(geometry.score_with_pellet_edge(p) for p in pts),
        ring_distribution=ring_distribution(pts, geometry),
        projection=project_score(statistics.mpi, statistics.std_dev, geometry),
    )
    return PatternAnalysis(result=result)


def analyze_holes(
    holes: Iterable[ConfirmedHole],
    transformer: TargetCoordinateTransformer,
    geometry: TargetGeometry = TETRATHLON_TARGET,
    exclude_outliers: bool = False,
) -> PatternAnalysis:
    positions = [transformer.to_normalized(hole.position) for hole in holes]
    return analyze_pattern(positions, geometry=geometry, exclude_outliers=exclude_outliers)


def _without_outliers(
    pts: List[NormalizedPosition],
    statistics: ShotStatistics,
    outlier_multiplier: float,
) -> ShotStatistics:
    cluster = [p for p, flag in zip(pts, statistics.outlier_flags) if not flag]
    cluster_stats = compute_statistics(cluster, outlier_multiplier)
    distances = tuple(float(p.distance_to(cluster_stats.mpi)) for p in pts)
    return replace(
        cluster_stats,
        shot_count=len(pts),
        distances=distances,
        outlier_flags=statistics.outlier_flags,
    )


def create_record(
    positions: Sequence[NormalizedPosition],
    session_type: SessionType = SessionType.FREE_PRACTICE,
    timestamp: Optional[datetime] = None,
    outlier_multiplier: float = OUTLIER_MULTIPLIER,
) -> StoredPatternRecord:
    """History entry for a session; cluster values exclude outliers."""
    pts = list(positions)
    if not pts:
        raise ValueError("At least one position required for a history record")
    statistics = compute_statistics(pts, outlier_multiplier)
    cluster = statistics
    if statistics.outlier_count:
        cluster = compute_statistics(
            [p for p, flag in zip(pts, statistics.outlier_flags) if not flag], outlier_multiplier
        )
    return StoredPatternRecord(
        timestamp=timestamp or datetime.now(),
        session_type=session_type,
        shot_count=len(pts),
        normalized_shots=tuple(pts),
        cluster_mpi=cluster.mpi,
        cluster_radius=cluster.group_radius,
        outlier_count=statistics.outlier_count,
    )
