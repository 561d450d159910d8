from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Sequence

import numpy as np

from shotscan.models import NormalizedPosition, RingDistribution, RingGroupingQuality, ScoreProjection
from shotscan.processing.geometry import TETRATHLON_TARGET, TargetGeometry

logger = logging.getLogger(__name__)

# share of shots the core cluster ring and the rings inside it must hold
CORE_CLUSTER_FRACTION = 0.70
PROJECTION_SHOTS = 10
PROJECTION_ITERATIONS = 1000
PROJECTION_SEED = 0


def ring_distribution(
    positions: Sequence[NormalizedPosition],
    geometry: TargetGeometry = TETRATHLON_TARGET,
) -> RingDistribution:
    """Count shots per scoring ring and rate the grouping by how many rings it spans.

    Shots are scored with the pellet-edge rule; 0 stands for a miss.
    """
    if not positions:
        raise ValueError("At least one position required for a ring distribution")
    scores = [geometry.score_with_pellet_edge(p) for p in positions]
    total = len(scores)

    shots_by_ring: Dict[int, int] = {}
    for ring in geometry.valid_scores:
        count = scores.count(ring)
        if count:
            shots_by_ring[ring] = count

    core_ring = min(scores)
    cumulative = 0
    for ring in geometry.valid_scores:
        cumulative += shots_by_ring.get(ring, 0)
        if cumulative / total >= CORE_CLUSTER_FRACTION:
            core_ring = ring
            break

    return RingDistribution(
        shots_by_ring=shots_by_ring,
        fraction_by_ring={ring: count / total for ring, count in shots_by_ring.items()},
        innermost_ring=max(scores),
        outermost_ring=min(scores),
        core_cluster_ring=core_ring,
        ring_spread=len(shots_by_ring),
        grouping=_grouping_quality(list(shots_by_ring), geometry),
    )


def _grouping_quality(rings: Sequence[int], geometry: TargetGeometry) -> RingGroupingQuality:
    if len(rings) == 1:
        return RingGroupingQuality.VERY_TIGHT
    if len(rings) == 2:
        order = geometry.valid_scores
        if abs(order.index(rings[0]) - order.index(rings[1])) == 1:
            return RingGroupingQuality.TIGHT
        return RingGroupingQuality.MODERATE
    if len(rings) == 3:
        return RingGroupingQuality.MODERATE
    return RingGroupingQuality.WIDE


def ring_summary(distribution: RingDistribution, geometry: TargetGeometry = TETRATHLON_TARGET) -> Optional[str]:
    core = distribution.core_cluster_ring
    if core == 0:
        return None
    if distribution.grouping is RingGroupingQuality.VERY_TIGHT:
        return f"All shots are in the {core} ring."
    share = f"{distribution.core_cluster_fraction * 100:.0f}% of shots are in the {core} ring"
    if core != geometry.max_score:
        share += " or better"
    return f"{share}, {distribution.grouping.description} across {distribution.ring_spread} rings."


def project_score(
    mpi: NormalizedPosition,
    std_dev: float,
    geometry: TargetGeometry = TETRATHLON_TARGET,
    shot_count: int = PROJECTION_SHOTS,
    iterations: int = PROJECTION_ITERATIONS,
    seed: Optional[int] = PROJECTION_SEED,
) -> ScoreProjection:
    """Monte Carlo estimate of a round's total if the shooter keeps the current group.

    Each simulated shot lands at ``mpi`` plus isotropic Gaussian scatter whose radial
    RMS equals ``std_dev``. Percentiles are nearest-rank over the sorted round totals.
    The default seed makes repeated analyses of the same session agree.
    """
    if shot_count < 1 or iterations < 1:
        raise ValueError(f"shot_count and iterations must be positive, got {shot_count}, {iterations}")
    if std_dev < 0:
        raise ValueError(f"std_dev must be non-negative, got {std_dev}")

    rng = np.random.default_rng(seed)
    sigma = std_dev / math.sqrt(2.0)
    scatter = rng.normal(0.0, sigma, size=(iterations, shot_count, 2))
    distances = np.hypot(mpi.x + scatter[..., 0], mpi.y + scatter[..., 1])
    edge_distances = np.maximum(distances - geometry.pellet_radius, 0.0)

    radii = np.array([radius for _, radius in geometry.rings], dtype=np.float64)
    ring_scores = np.array([score for score, _ in geometry.rings] + [0], dtype=np.int64)
    # a pellet edge exactly on a ring line scores that ring
    shot_scores = ring_scores[np.searchsorted(radii, edge_distances, side="left")]
    totals = np.sort(shot_scores.sum(axis=1))

    projection = ScoreProjection(
        expected=float(totals.mean()),
        low=float(totals[int(iterations * 0.10)]),
        median=float(totals[int(iterations * 0.50)]),
        high=float(totals[int(iterations * 0.90)]),
        max_possible=shot_count * geometry.max_score,
        shot_count=shot_count,
    )
    logger.debug("Projected %d-shot score %.1f (%s)", shot_count, projection.expected, projection.range_description)
    return projection


__all__ = ["CORE_CLUSTER_FRACTION", "project_score", "ring_distribution", "ring_summary"]
