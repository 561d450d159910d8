from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from shotscan.models import (
    AggregatedMetrics,
    NormalizedPosition,
    SessionType,
    StoredPatternRecord,
    TrendDirection,
)
from shotscan.processing.insights import Insights, generate_insights
from shotscan.processing.pattern import bias_direction, classify_bias_severity, classify_tightness

logger = logging.getLogger(__name__)

TREND_WINDOW = 3
TREND_THRESHOLD = 0.20
MIN_TREND_SESSIONS = 3


class DateFilter(str, Enum):
    LAST_SESSION = "last-session"
    TODAY = "today"
    THIS_WEEK = "this-week"
    THIS_MONTH = "this-month"
    ALL_TIME = "all-time"

    def start(self, now: datetime) -> Optional[datetime]:
        """Earliest timestamp included by this filter, or None when unbounded."""
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is DateFilter.TODAY:
            return midnight
        if self is DateFilter.THIS_WEEK:
            return midnight - timedelta(days=midnight.weekday())
        if self is DateFilter.THIS_MONTH:
            return midnight.replace(day=1)
        return None


def filter_records(
    records: Iterable[StoredPatternRecord],
    date_filter: DateFilter = DateFilter.ALL_TIME,
    session_types: Optional[Collection[SessionType]] = None,
    now: Optional[datetime] = None,
    date_range: Optional[Tuple[datetime, datetime]] = None,
) -> List[StoredPatternRecord]:
    """Records matching the date and session-type predicates, oldest first.

    An explicit ``date_range`` (inclusive) takes precedence over ``date_filter``.
    """
    now = now or datetime.now()
    selected = [
        record
        for record in records
        if session_types is None or record.session_type in session_types
    ]
    if date_range is not None:
        start, end = date_range
        selected = [record for record in selected if start <= record.timestamp <= end]
    elif date_filter is DateFilter.LAST_SESSION:
        selected = [max(selected, key=lambda record: record.timestamp)] if selected else []
    else:
        start = date_filter.start(now)
        if start is not None:
            selected = [record for record in selected if start <= record.timestamp <= now]
    selected.sort(key=lambda record: record.timestamp)
    return selected


def aggregate_records(records: Sequence[StoredPatternRecord]) -> Optional[AggregatedMetrics]:
    """Shot-count-weighted aggregate of the given records, or None when nothing to aggregate."""
    weighted = [record for record in records if record.shot_count > 0]
    if not weighted:
        return None

    weights = np.array([record.shot_count for record in weighted], dtype=np.float64)
    mpi_x = np.array([record.cluster_mpi.x for record in weighted], dtype=np.float64)
    mpi_y = np.array([record.cluster_mpi.y for record in weighted], dtype=np.float64)
    radii = np.array([record.cluster_radius for record in weighted], dtype=np.float64)
    total = float(weights.sum())
    average = NormalizedPosition(float((weights * mpi_x).sum() / total), float((weights * mpi_y).sum() / total))

    shots_by_day: Dict[date, int] = defaultdict(int)
    for record in weighted:
        shots_by_day[record.timestamp.date()] += record.shot_count
    trend = sorted(((record.timestamp, record.cluster_radius) for record in weighted), key=lambda item: item[0])

    metrics = AggregatedMetrics(
        average_impact_point=average,
        group_radius=float((weights * radii).sum() / total),
        offset=average.radial_distance,
        outliers_count=sum(record.outlier_count for record in weighted),
        total_shots=int(total),
        session_count=len(weighted),
        shots_by_day=dict(sorted(shots_by_day.items())),
        radius_trend=trend,
    )
    logger.debug("Aggregated %d sessions, %d shots", metrics.session_count, metrics.total_shots)
    return metrics


def classify_trend(
    radius_trend: Sequence[Tuple[datetime, float]],
    window: int = TREND_WINDOW,
    threshold: float = TREND_THRESHOLD,
) -> TrendDirection:
    """Compare the mean radius of the latest ``window`` sessions with the ones before.

    A relative decrease beyond ``threshold`` is improving, an increase beyond it is
    declining. The window shrinks to half the available sessions when history is short.
    """
    radii = [radius for _, radius in sorted(radius_trend, key=lambda item: item[0])]
    if len(radii) < MIN_TREND_SESSIONS:
        return TrendDirection.STABLE
    size = max(1, min(window, len(radii) // 2))
    recent = float(np.mean(radii[-size:]))
    previous = float(np.mean(radii[-2 * size : -size]))
    if previous <= 0:
        return TrendDirection.STABLE
    change = (recent - previous) / previous
    if change < -threshold:
        return TrendDirection.IMPROVING
    if change > threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def insights_for_metrics(
    metrics: AggregatedMetrics,
    trend: TrendDirection = TrendDirection.STABLE,
) -> Insights:
    outlier_rate = metrics.outliers_count / metrics.total_shots if metrics.total_shots else 0.0
    return generate_insights(
        classify_tightness(metrics.group_radius),
        bias_direction(metrics.average_impact_point),
        trend=trend,
        outlier_rate=outlier_rate,
        severity=classify_bias_severity(metrics.offset),
    )
