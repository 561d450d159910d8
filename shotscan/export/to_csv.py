from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence, Tuple

import pandas as pd

from shotscan.models import NormalizedPosition, PatternAnalysisResult, StoredPatternRecord


def export_records_csv(records: Iterable[StoredPatternRecord], export_dir: Path, name: str = "history") -> Path:
    """Export one row per history record."""
    export_dir.mkdir(parents=True, exist_ok=True)
    path = export_dir / f"{name}.csv"
    rows = [record.to_csv_row() for record in records]
    columns = ["date_time", "session_type", "N", "mpi_x", "mpi_y", "offset", "group_radius", "outliers"]
    pd.DataFrame(rows, columns=columns).to_csv(path, index=False)
    return path


def export_analysis_csv(
    analysis: PatternAnalysisResult,
    shots: Sequence[NormalizedPosition],
    export_dir: Path,
    name: str,
) -> Tuple[Path, Path]:
    """Export a session analysis to summary and per-shot CSV files."""
    export_dir.mkdir(parents=True, exist_ok=True)
    summary_path = export_dir / f"{name}_summary.csv"
    shots_path = export_dir / f"{name}_shots.csv"
    stats = analysis.statistics
    rings = analysis.ring_distribution
    projection = analysis.projection

    summary_df = pd.DataFrame(
        [
            {
                "N": stats.shot_count,
                "mpi_x": stats.mpi.x,
                "mpi_y": stats.mpi.y,
                "offset": stats.offset,
                "azimuth_deg": stats.azimuth_deg,
                "group_radius": stats.group_radius,
                "extreme_spread": stats.extreme_spread,
                "CEP50": stats.cep50,
                "CEP90": stats.cep90,
                "std_dev": stats.std_dev,
                "outliers": stats.outlier_count,
                "total_score": analysis.total_score,
                "confidence": analysis.confidence.value,
                "tightness": analysis.tightness.value,
                "bias": analysis.bias.value,
                "pattern": analysis.pattern_label,
                "core_ring": rings.core_cluster_ring if rings else None,
                "ring_spread": rings.ring_spread if rings else None,
                "projected_score": projection.expected if projection else None,
                "projected_low": projection.low if projection else None,
                "projected_high": projection.high if projection else None,
            }
        ]
    )
    summary_df.to_csv(summary_path, index=False)

    shots_df = pd.DataFrame(
        {
            "shot": range(1, len(shots) + 1),
            "x": [shot.x for shot in shots],
            "y": [shot.y for shot in shots],
            "distance_from_mpi": list(stats.distances),
            "outlier": list(stats.outlier_flags),
        }
    )
    shots_df.to_csv(shots_path, index=False)
    return summary_path, shots_path


__all__ = ["export_analysis_csv", "export_records_csv"]
