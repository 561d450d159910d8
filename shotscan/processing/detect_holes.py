from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
from scipy import ndimage as ndi

from shotscan.models import HoleCandidate
from shotscan.processing.detection_config import HoleDetectionConfig
from shotscan.processing.geometry import CropGeometry, TargetCoordinateTransformer
from shotscan.processing.threshold import ThresholdParams, segment_dark_regions, smooth, to_gray
from shotscan.utils.image_io import resize_to_max_edge

logger = logging.getLogger(__name__)

CIRCULARITY_WEIGHT = 0.4
CONTRAST_WEIGHT = 0.6
# circularity lost per unit of relative radial deviation of the boundary
ROUNDNESS_PENALTY = 2.0
# z-score at which contrast saturates
CONTRAST_FULL_Z = 3.0
# std floor keeps flat backgrounds from producing infinite z-scores
CONTRAST_STD_FLOOR = 4.0
BACKGROUND_INNER_FACTOR = 1.5
BACKGROUND_OUTER_FACTOR = 3.0


@dataclass
class _Background:
    mean: float
    std: float


def detect_holes(
    image: Optional[np.ndarray],
    crop_geometry: CropGeometry,
    config: HoleDetectionConfig,
    max_image_edge: Optional[int] = None,
) -> List[HoleCandidate]:
    """Propose hole candidates in a perspective-corrected crop.

    Candidates are ranked by confidence (ties broken top-to-bottom, left-to-right) and
    capped at ``config.max_candidates``. Pixel positions and radii are in the
    coordinates of ``image`` even when detection runs on a downscaled copy. Unusable
    input yields an empty list.
    """
    if image is None or not isinstance(image, np.ndarray) or image.size == 0 or image.ndim not in (2, 3):
        logger.warning("Detector received no usable image data")
        return []

    height, width = image.shape[:2]
    try:
        transformer = TargetCoordinateTransformer(crop_geometry, width, height)
        gray = to_gray(image)
        if max_image_edge and max(width, height) > max_image_edge:
            gray = resize_to_max_edge(gray, max_image_edge)
            logger.debug("Detecting on %dx%d copy of %dx%d crop", gray.shape[1], gray.shape[0], width, height)
        scale_x = gray.shape[1] / float(width)
        scale_y = gray.shape[0] / float(height)
        working = TargetCoordinateTransformer(crop_geometry, gray.shape[1], gray.shape[0])
        raw = _find_candidates(gray, working, config)
    except (cv2.error, ValueError) as exc:
        logger.warning("Hole detection failed: %s", exc)
        return []

    candidates = []
    for (x, y), radius, confidence, circularity, contrast, source in raw:
        pixel = (x / scale_x, y / scale_y)
        candidates.append(
            HoleCandidate(
                pixel_position=pixel,
                normalized_position=transformer.to_normalized(pixel),
                radius_pixels=radius * 2.0 / (scale_x + scale_y),
                confidence=confidence,
                circularity=circularity,
                contrast=contrast,
                source=source,
            )
        )

    candidates = _suppress_duplicates(candidates)
    candidates.sort(key=_rank_key)
    if len(candidates) > config.max_candidates:
        logger.debug("Dropping %d candidates beyond cap", len(candidates) - config.max_candidates)
    return candidates[: config.max_candidates]


def _rank_key(candidate: HoleCandidate) -> Tuple[float, float, float]:
    return -candidate.confidence, candidate.pixel_position[1], candidate.pixel_position[0]


_Raw = Tuple[Tuple[float, float], float, float, float, float, str]


def _find_candidates(
    gray: np.ndarray,
    transformer: TargetCoordinateTransformer,
    config: HoleDetectionConfig,
) -> List[_Raw]:
    min_radius_px = max(1.0, transformer.to_pixel_radius(config.min_hole_radius))
    max_radius_px = max(min_radius_px + 1.0, transformer.to_pixel_radius(config.max_hole_radius))

    params = ThresholdParams(adaptive_block_size=max(15, int(4 * max_radius_px) | 1))
    binary = segment_dark_regions(gray, params)
    intensity = smooth(gray, params.gaussian_sigma)

    global_background = None
    if not config.use_local_background:
        global_background = _global_background(intensity, binary)

    # two-level hierarchy: holes lying inside a printed ring outline stay top-level
    all_contours, hierarchy = cv2.findContours(binary, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_NONE)
    contours = []
    if hierarchy is not None:
        contours = [c for c, info in zip(all_contours, hierarchy[0]) if info[3] == -1]
    logger.debug("Segmented %d dark regions (hole radius window %.1f-%.1f px)", len(contours), min_radius_px, max_radius_px)

    results: List[_Raw] = []
    for contour in contours:
        area_px = cv2.contourArea(contour)
        if area_px <= 0:
            continue
        eq_radius_px = math.sqrt(area_px / math.pi)
        if eq_radius_px < min_radius_px:
            continue
        _, enclosing_radius = cv2.minEnclosingCircle(contour)
        circularity = _circularity(contour)

        parts = [(contour, "auto")]
        needs_split = config.split_merged_holes and (
            enclosing_radius > max_radius_px or circularity < config.min_circularity
        )
        if needs_split:
            local_mask = np.zeros(binary.shape, dtype=np.uint8)
            cv2.drawContours(local_mask, [contour], -1, 255, -1)
            pieces = _split_component(local_mask, min_distance_px=2.0 * min_radius_px)
            if len(pieces) > 1:
                logger.debug("Split merged region into %d holes", len(pieces))
                parts = [(piece, "split") for piece in pieces]

        for part, source in parts:
            measured = _measure(part, source, intensity, binary, min_radius_px, max_radius_px, global_background)
            if measured is not None:
                results.append(measured)
    return results


def _measure(
    contour: np.ndarray,
    source: str,
    intensity: np.ndarray,
    binary: np.ndarray,
    min_radius_px: float,
    max_radius_px: float,
    global_background: Optional[_Background],
) -> Optional[_Raw]:
    area_px = cv2.contourArea(contour)
    if area_px <= 0:
        return None
    eq_radius_px = math.sqrt(area_px / math.pi)
    if eq_radius_px < min_radius_px or eq_radius_px > max_radius_px:
        return None
    cx, cy = _contour_centroid(contour)
    if cx is None or cy is None:
        return None

    circularity = _circularity(contour)
    local_mask = np.zeros(binary.shape, dtype=np.uint8)
    cv2.drawContours(local_mask, [contour], -1, 255, -1)
    mean_inside = float(cv2.mean(intensity, mask=local_mask)[0])

    background = global_background
    if background is None:
        background = _local_background(intensity, binary, (cx, cy), eq_radius_px)
    if background is None:
        background = _global_background(intensity, binary)

    z_score = (background.mean - mean_inside) / max(background.std, CONTRAST_STD_FLOOR)
    contrast = float(np.clip(z_score / CONTRAST_FULL_Z, 0.0, 1.0))
    confidence = CIRCULARITY_WEIGHT * circularity + CONTRAST_WEIGHT * contrast
    return (cx, cy), eq_radius_px, float(np.clip(confidence, 0.0, 1.0)), circularity, contrast, source


def _circularity(contour: np.ndarray) -> float:
    """1.0 for a boundary equidistant from its centroid, falling towards 0 as it stretches."""
    cx, cy = _contour_centroid(contour)
    if cx is None or cy is None:
        return 0.0
    points = contour.reshape(-1, 2).astype(np.float64)
    distances = np.hypot(points[:, 0] - cx, points[:, 1] - cy)
    mean_distance = float(distances.mean())
    if mean_distance <= 0:
        return 0.0
    deviation = float(distances.std()) / mean_distance
    return float(np.clip(1.0 - ROUNDNESS_PENALTY * deviation, 0.0, 1.0))


def _local_background(
    intensity: np.ndarray,
    binary: np.ndarray,
    center: Tuple[float, float],
    radius_px: float,
) -> Optional[_Background]:
    """Statistics of the annulus around a candidate, excluding other dark regions."""
    annulus = np.zeros(binary.shape, dtype=np.uint8)
    point = (int(round(center[0])), int(round(center[1])))
    cv2.circle(annulus, point, max(2, int(round(radius_px * BACKGROUND_OUTER_FACTOR))), 255, -1)
    cv2.circle(annulus, point, max(1, int(round(radius_px * BACKGROUND_INNER_FACTOR))), 0, -1)
    annulus[binary > 0] = 0
    if cv2.countNonZero(annulus) < 8:
        return None
    mean, std = cv2.meanStdDev(intensity, mask=annulus)
    return _Background(mean=float(mean[0][0]), std=float(std[0][0]))


def _global_background(intensity: np.ndarray, binary: np.ndarray) -> _Background:
    values = intensity[binary == 0]
    if values.size == 0:
        values = intensity.ravel()
    return _Background(mean=float(np.median(values)), std=float(values.std()))


def _contour_centroid(contour: np.ndarray) -> Tuple[Optional[float], Optional[float]]:
    moments = cv2.moments(contour)
    if moments["m00"] == 0:
        return None, None
    cx = moments["m10"] / moments["m00"]
    cy = moments["m01"] / moments["m00"]
    return cx, cy


def _split_component(component_mask: np.ndarray, min_distance_px: float) -> List[np.ndarray]:
    """Split a merged dark region into per-hole contours around its distance-transform peaks.

    Every foreground pixel goes to the nearest peak, so each part is the Voronoi cell of
    one hole centre clipped to the region.
    """
    ys, xs = np.where(component_mask > 0)
    if len(xs) < 2:
        return []
    y_min, y_max = ys.min(), ys.max()
    x_min, x_max = xs.min(), xs.max()
    roi = cv2.copyMakeBorder(
        component_mask[y_min : y_max + 1, x_min : x_max + 1], 1, 1, 1, 1, cv2.BORDER_CONSTANT, value=0
    )
    distance = np.asarray(ndi.distance_transform_edt(roi), dtype=np.float32)
    max_distance = float(distance.max())
    if max_distance < min_distance_px * 0.5:
        return []

    ksize = max(3, int(min_distance_px) * 2 + 1)
    ksize = min(ksize, max(roi.shape[0], roi.shape[1]))
    if ksize % 2 == 0:
        ksize += 1
    dilated = cv2.dilate(distance, np.ones((ksize, ksize), np.uint8))
    peak_mask = ((distance == dilated) & (distance > 0.5 * max_distance)).astype(np.uint8)
    num_labels, markers = cv2.connectedComponents(peak_mask)
    if num_labels <= 2:
        return []

    _, (nearest_y, nearest_x) = ndi.distance_transform_edt(markers == 0, return_indices=True)
    labels = markers[nearest_y, nearest_x]
    labels[roi == 0] = 0

    pieces: List[np.ndarray] = []
    for label in range(1, num_labels):
        part = (labels == label).astype(np.uint8) * 255
        part_contours, _ = cv2.findContours(
            part, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE, offset=(int(x_min) - 1, int(y_min) - 1)
        )
        if not part_contours:
            continue
        largest = max(part_contours, key=cv2.contourArea)
        if cv2.contourArea(largest) > 0:
            pieces.append(largest)
    return pieces


def _suppress_duplicates(candidates: List[HoleCandidate]) -> List[HoleCandidate]:
    """Non-maximum suppression: keep the more confident of two overlapping candidates."""
    kept: List[HoleCandidate] = []
    for candidate in sorted(candidates, key=_rank_key):
        cx, cy = candidate.pixel_position
        overlaps = False
        for other in kept:
            ox, oy = other.pixel_position
            if math.hypot(cx - ox, cy - oy) < max(candidate.radius_pixels, other.radius_pixels):
                overlaps = True
                break
        if not overlaps:
            kept.append(candidate)
    return kept
