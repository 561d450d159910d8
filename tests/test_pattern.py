from datetime import datetime

import pytest

from shotscan.models import (
    BiasDirection,
    BiasSeverity,
    ConfidenceTier,
    ConfirmedHole,
    NormalizedPosition,
    SessionType,
    Tightness,
    normalized_positions,
)
from shotscan.processing.geometry import CropGeometry, TargetCoordinateTransformer
from shotscan.processing.pattern import (
    analyze_holes,
    analyze_pattern,
    bias_direction,
    classify_bias_severity,
    classify_tightness,
    create_record,
)

CENTER_CLUSTER = normalized_positions([(0.0, 0.0), (0.05, 0.0), (-0.05, 0.0), (0.0, 0.05), (0.0, -0.05)])
RIGHT_CLUSTER = normalized_positions([(0.6, 0.0), (0.65, 0.02), (0.58, -0.01)])
CLUSTER_WITH_STRAY = normalized_positions(
    [(0.0, 0.0), (0.02, 0.0), (0.0, 0.02), (-0.02, 0.0), (0.0, -0.02), (0.8, 0.8)]
)


def test_tight_centered_group():
    analysis = analyze_pattern(CENTER_CLUSTER)
    assert analysis.is_valid
    result = analysis.result
    assert result.tightness is Tightness.TIGHT
    assert result.bias is BiasDirection.CENTERED
    assert result.bias_severity is BiasSeverity.CENTERED
    assert result.confidence is ConfidenceTier.MEDIUM
    assert result.pattern_label == "Tight & Centered"
    assert result.total_score == 50
    assert result.mean_score == pytest.approx(10.0)
    assert result.suggested_drills


def test_three_shots_right_of_center():
    analysis = analyze_pattern(RIGHT_CLUSTER)
    assert analysis.is_valid
    result = analysis.result
    assert result.bias is BiasDirection.RIGHT
    assert result.confidence is ConfidenceTier.LOW
    assert result.tightness is Tightness.TIGHT
    assert result.bias_severity is BiasSeverity.SIGNIFICANT
    assert result.pattern_label == "Tight & Noticeably Right"
    assert "right of center" in result.observation
    assert result.total_score == 14
    assert result.formatted_offset == "0.61"


def test_pattern_label_keeps_joining_word_lowercase():
    result = analyze_pattern(normalized_positions([(0.42, 0.43), (0.45, 0.41), (0.4, 0.4)])).result
    assert result.bias is BiasDirection.HIGH_RIGHT
    assert result.pattern_label.endswith(" High and Right")
    assert "And" not in result.pattern_label


def test_analysis_carries_ring_distribution_and_projection():
    result = analyze_pattern(CENTER_CLUSTER).result
    assert result.ring_distribution.shots_by_ring == {10: 5}
    assert result.ring_distribution.grouping.description == "very tight"
    assert result.projection.max_possible == 100
    assert result.projection.high == 100.0
    assert result.projection.expected == pytest.approx(100.0, abs=1.0)
    assert analyze_pattern(CENTER_CLUSTER).result.projection == result.projection


@pytest.mark.parametrize("count", [0, 1, 2])
def test_small_samples_are_suppressed(count):
    analysis = analyze_pattern(RIGHT_CLUSTER[:count])
    assert not analysis.is_valid
    assert analysis.result is None
    assert analysis.suppression_reason


def test_suppression_reason_counts_missing_shots():
    assert analyze_pattern([]).suppression_reason == "No shots recorded yet"
    reason = analyze_pattern(RIGHT_CLUSTER[:2]).suppression_reason
    assert "2 recorded" in reason
    assert "1 more needed" in reason


def test_confidence_tier_follows_sample_size():
    points = normalized_positions([(0.01 * i, 0.0) for i in range(12)])
    assert analyze_pattern(points[:4]).result.confidence is ConfidenceTier.LOW
    assert analyze_pattern(points[:5]).result.confidence is ConfidenceTier.MEDIUM
    assert analyze_pattern(points[:10]).result.confidence is ConfidenceTier.HIGH


@pytest.mark.parametrize(
    "mpi, expected",
    [
        ((0.0, 0.0), BiasDirection.CENTERED),
        ((0.04, 0.02), BiasDirection.CENTERED),
        ((0.0, 0.2), BiasDirection.HIGH),
        ((0.0, -0.2), BiasDirection.LOW),
        ((-0.2, 0.01), BiasDirection.LEFT),
        ((0.2, 0.0), BiasDirection.RIGHT),
        ((-0.1, 0.1), BiasDirection.HIGH_LEFT),
        ((0.1, 0.1), BiasDirection.HIGH_RIGHT),
        ((-0.1, -0.1), BiasDirection.LOW_LEFT),
        ((0.1, -0.1), BiasDirection.LOW_RIGHT),
    ],
)
def test_bias_direction(mpi, expected):
    assert bias_direction(NormalizedPosition(*mpi)) is expected


def test_bucket_boundaries_are_inclusive():
    assert classify_tightness(0.12) is Tightness.TIGHT
    assert classify_tightness(0.121) is Tightness.MODERATE
    assert classify_tightness(0.22) is Tightness.MODERATE
    assert classify_tightness(0.3) is Tightness.WIDE
    assert classify_bias_severity(0.05) is BiasSeverity.CENTERED
    assert classify_bias_severity(0.15) is BiasSeverity.SLIGHT
    assert classify_bias_severity(0.151) is BiasSeverity.SIGNIFICANT


def test_outliers_reported_but_kept_by_default():
    result = analyze_pattern(CLUSTER_WITH_STRAY).result
    assert result.statistics.outlier_count == 1
    assert result.statistics.mpi.x == pytest.approx(0.8 / 6)
    assert "outside the main group" in result.observation


def test_exclude_outliers_recenters_group():
    result = analyze_pattern(CLUSTER_WITH_STRAY, exclude_outliers=True).result
    stats = result.statistics
    assert stats.shot_count == 6
    assert stats.outlier_count == 1
    assert stats.mpi.x == pytest.approx(0.0)
    assert stats.mpi.y == pytest.approx(0.0)
    assert result.bias is BiasDirection.CENTERED
    assert result.tightness is Tightness.TIGHT
    assert len(stats.distances) == 6


def test_analysis_is_deterministic():
    assert analyze_pattern(RIGHT_CLUSTER) == analyze_pattern(list(RIGHT_CLUSTER))


def test_analyze_holes_normalizes_pixel_positions():
    transformer = TargetCoordinateTransformer(CropGeometry(semi_axes=(0.5, 0.5)), 200, 200)
    # semi-axes of 100 px: x = 0.6 is 60 px right of the center
    holes = [ConfirmedHole(id=i, position=(160.0 + dx, 100.0 + dy)) for i, (dx, dy) in enumerate([(0, 0), (2, 1), (-2, -1)])]
    result = analyze_holes(holes, transformer).result
    assert result.bias is BiasDirection.RIGHT
    assert result.statistics.mpi.x == pytest.approx(0.6)


def test_create_record_stores_cluster_without_outliers():
    timestamp = datetime(2024, 3, 1, 18, 30)
    record = create_record(CLUSTER_WITH_STRAY, SessionType.COMPETITION, timestamp=timestamp)
    assert record.timestamp == timestamp
    assert record.shot_count == 6
    assert record.outlier_count == 1
    assert record.cluster_shot_count == 5
    assert record.cluster_mpi.x == pytest.approx(0.0)
    assert record.cluster_radius == pytest.approx(4 * 0.02 / 5)
    assert record.normalized_shots == tuple(CLUSTER_WITH_STRAY)
    with pytest.raises(ValueError):
        create_record([])


def test_record_dict_round_trip():
    record = create_record(RIGHT_CLUSTER, SessionType.TETRATHLON_PRACTICE, timestamp=datetime(2024, 5, 2, 9, 0))
    assert type(record).from_dict(record.to_dict()) == record
