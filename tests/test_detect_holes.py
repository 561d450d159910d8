import math

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from shotscan.processing.classify import classify_candidates
from shotscan.processing.detect_holes import _split_component, detect_holes
from shotscan.processing.detection_config import get_preset
from shotscan.processing.geometry import CropGeometry, TargetCoordinateTransformer
from shotscan.processing.threshold import ThresholdParams, segment_dark_regions

SIZE = 400
CROP = CropGeometry(semi_axes=(0.45, 0.45))
# 180 px semi-axes: rings at roughly 17, 57, 98, 139 and 180 px from the center
HOLES = [(200, 200), (235, 200), (200, 122), (80, 200)]


def _target(holes=HOLES, radius=7, size=SIZE, rings=False, background=255, hole_value=20):
    image = np.full((size, size, 3), background, dtype=np.uint8)
    if rings:
        for ring_radius in (57, 98, 139):
            cv2.circle(image, (size // 2, size // 2), ring_radius, (60, 60, 60), 2)
    for cx, cy in holes:
        cv2.circle(image, (cx, cy), radius, (hole_value, hole_value, hole_value), -1)
    return image


def _nearest(candidates, point):
    return min(candidates, key=lambda c: math.hypot(c.pixel_position[0] - point[0], c.pixel_position[1] - point[1]))


def test_segment_dark_regions_marks_hole():
    gray = np.full((160, 160), 220, dtype=np.uint8)
    cv2.circle(gray, (80, 80), 10, 30, -1)
    binary = segment_dark_regions(gray, ThresholdParams(adaptive_block_size=51))
    assert binary[80, 80] == 255
    assert binary[10, 10] == 0
    assert int((binary > 0).sum()) < 0.05 * binary.size


def test_detects_each_hole_with_high_confidence():
    candidates = detect_holes(_target(), CROP, get_preset("balanced"))
    assert len(candidates) == len(HOLES)
    for hole in HOLES:
        candidate = _nearest(candidates, hole)
        assert candidate.pixel_position[0] == pytest.approx(hole[0], abs=1.5)
        assert candidate.pixel_position[1] == pytest.approx(hole[1], abs=1.5)
        assert 4.0 < candidate.radius_pixels < 10.0
        assert candidate.confidence >= 0.85
        assert 0.0 <= candidate.confidence <= 1.0


def test_candidates_carry_normalized_positions():
    candidates = detect_holes(_target(), CROP, get_preset("balanced"))
    transformer = TargetCoordinateTransformer(CROP, SIZE, SIZE)
    for candidate in candidates:
        expected = transformer.to_normalized(candidate.pixel_position)
        assert candidate.normalized_position.x == pytest.approx(expected.x)
        assert candidate.normalized_position.y == pytest.approx(expected.y)
    upper = _nearest(candidates, (200, 122))
    assert upper.normalized_position.y > 0.4


def test_ring_lines_are_not_reported_as_holes():
    config = get_preset("balanced")
    candidates = detect_holes(_target(rings=True), CROP, config)
    classified = classify_candidates(candidates, config)
    assert len(classified.accepted) == len(HOLES)


def test_output_is_ranked_and_capped():
    holes = [(90 + 45 * i, 300) for i in range(5)] + [(90 + 45 * i, 80) for i in range(5)]
    image = _target(holes=holes)
    config = get_preset("balanced").with_overrides(max_candidates=3, filter_scoring_ring_artifacts=False)
    candidates = detect_holes(image, CROP, config)
    assert len(candidates) == 3
    confidences = [c.confidence for c in candidates]
    assert confidences == sorted(confidences, reverse=True)


def test_detection_is_deterministic():
    image = _target(rings=True)
    config = get_preset("sensitive")
    assert detect_holes(image, CROP, config) == detect_holes(image.copy(), CROP, config)


def test_dark_target_holes_still_confident():
    image = _target(background=90, hole_value=10)
    candidates = detect_holes(image, CROP, get_preset("dark-target"))
    assert len(candidates) == len(HOLES)
    assert min(c.confidence for c in candidates) >= 0.8


def test_global_background_mode_detects_holes():
    config = get_preset("balanced").with_overrides(use_local_background=False)
    candidates = detect_holes(_target(), CROP, config)
    assert len(candidates) == len(HOLES)


def test_touching_holes_are_split():
    image = _target(holes=[(185, 290), (200, 290)], radius=8)
    candidates = detect_holes(image, CROP, get_preset("balanced"))
    assert len(candidates) == 2
    assert {c.source for c in candidates} == {"split"}
    xs = sorted(c.pixel_position[0] for c in candidates)
    assert xs[0] == pytest.approx(185, abs=3.0)
    assert xs[1] == pytest.approx(200, abs=3.0)


def test_split_component_gives_each_hole_its_own_area():
    mask = np.zeros((120, 120), dtype=np.uint8)
    cv2.circle(mask, (50, 60), 8, 255, -1)
    cv2.circle(mask, (65, 60), 8, 255, -1)
    pieces = _split_component(mask, min_distance_px=6.0)
    assert len(pieces) == 2
    areas = [cv2.contourArea(piece) for piece in pieces]
    assert min(areas) > 100
    centers = []
    for piece in pieces:
        moments = cv2.moments(piece)
        centers.append((moments["m10"] / moments["m00"], moments["m01"] / moments["m00"]))
    centers.sort()
    assert centers[0][0] == pytest.approx(50, abs=3.0)
    assert centers[1][0] == pytest.approx(65, abs=3.0)
    assert all(cy == pytest.approx(60, abs=1.5) for _, cy in centers)


def test_split_component_leaves_single_disk_alone():
    mask = np.zeros((80, 80), dtype=np.uint8)
    cv2.circle(mask, (40, 40), 10, 255, -1)
    assert _split_component(mask, min_distance_px=6.0) == []


def test_downscaled_detection_reports_crop_coordinates():
    holes = [(2 * x, 2 * y) for x, y in HOLES]
    image = _target(holes=holes, radius=14, size=2 * SIZE)
    candidates = detect_holes(image, CROP, get_preset("balanced"), max_image_edge=SIZE)
    assert len(candidates) == len(holes)
    for hole in holes:
        candidate = _nearest(candidates, hole)
        assert candidate.pixel_position[0] == pytest.approx(hole[0], abs=3.0)
        assert candidate.pixel_position[1] == pytest.approx(hole[1], abs=3.0)
        assert candidate.radius_pixels == pytest.approx(14, abs=4.0)


@pytest.mark.parametrize(
    "image",
    [None, np.zeros((0, 0), dtype=np.uint8), np.zeros(16, dtype=np.uint8), np.full((120, 120), 255, dtype=np.uint8)],
)
def test_unusable_or_blank_images_yield_no_candidates(image):
    assert detect_holes(image, CROP, get_preset("balanced")) == []
