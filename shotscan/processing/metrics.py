from __future__ import annotations

import math
from typing import Iterable, List

import numpy as np

from shotscan.models import NormalizedPosition, ShotStatistics

OUTLIER_MULTIPLIER = 2.0


def compute_statistics(
    positions: Iterable[NormalizedPosition],
    outlier_multiplier: float = OUTLIER_MULTIPLIER,
) -> ShotStatistics:
    pts: List[NormalizedPosition] = list(positions)
    if not pts:
        raise ValueError("At least one position required for statistics")

    xs = np.array([p.x for p in pts], dtype=np.float64)
    ys = np.array([p.y for p in pts], dtype=np.float64)
    count = len(pts)
    mean_x = float(xs.mean())
    mean_y = float(ys.mean())
    distances = np.hypot(xs - mean_x, ys - mean_y)
    group_radius = float(distances.mean())
    outlier_flags = tuple(
        bool(group_radius > 0 and distance > outlier_multiplier * group_radius) for distance in distances
    )
    return ShotStatistics(
        shot_count=count,
        mpi=NormalizedPosition(mean_x, mean_y),
        group_radius=group_radius,
        extreme_spread=_extreme_spread(xs, ys),
        cep50=circular_error_probable(distances, 0.5),
        cep90=circular_error_probable(distances, 0.9),
        std_dev=float(math.sqrt(float(np.mean(distances**2)))),
        offset=math.hypot(mean_x, mean_y),
        azimuth_deg=math.degrees(math.atan2(mean_y, mean_x)),
        distances=tuple(float(d) for d in distances),
        outlier_flags=outlier_flags,
    )


def circular_error_probable(distances: np.ndarray, fraction: float) -> float:
    """Radius around the MPI containing ``fraction`` of the shots (nearest-rank)."""
    if len(distances) == 0:
        return 0.0
    ordered = np.sort(np.asarray(distances, dtype=np.float64))
    index = min(int(len(ordered) * fraction), len(ordered) - 1)
    return float(ordered[index])


def _extreme_spread(xs: np.ndarray, ys: np.ndarray) -> float:
    count = len(xs)
    if count < 2:
        return 0.0
    max_distance = 0.0
    for i in range(count - 1):
        distances = np.hypot(xs[i] - xs[i + 1 :], ys[i] - ys[i + 1 :])
        max_distance = max(max_distance, float(distances.max(initial=0.0)))
    return max_distance
