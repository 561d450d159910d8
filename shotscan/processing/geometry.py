from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from shotscan.models import NormalizedPosition, PixelPoint


@dataclass(frozen=True)
class TargetGeometry:
    """Scoring rings of a target, highest score first, in normalized radius units."""

    name: str
    rings: Tuple[Tuple[int, float], ...]
    # physical width over height of the outer ring
    aspect_ratio: float = 1.0
    pellet_radius: float = 0.0

    def __post_init__(self) -> None:
        if not self.rings:
            raise ValueError("TargetGeometry requires at least one ring")
        previous = 0.0
        for score, radius in self.rings:
            if radius <= previous:
                raise ValueError("Ring radii must strictly increase as score decreases")
            previous = radius
        if not math.isclose(self.rings[-1][1], 1.0):
            raise ValueError("Outermost ring radius must be 1.0")
        if self.aspect_ratio <= 0:
            raise ValueError("aspect_ratio must be positive")

    @property
    def valid_scores(self) -> Tuple[int, ...]:
        return tuple(score for score, _ in self.rings) + (0,)

    @property
    def max_score(self) -> int:
        return self.rings[0][0]

    def ring_radius(self, score: int) -> Optional[float]:
        for ring_score, radius in self.rings:
            if ring_score == score:
                return radius
        return None

    def score_for(self, position: NormalizedPosition) -> int:
        return self._score_for_distance(position.radial_distance)

    def score_with_pellet_edge(self, position: NormalizedPosition) -> int:
        """Score using the inside-edge rule: a pellet touching a ring line scores that ring."""
        return self._score_for_distance(max(0.0, position.radial_distance - self.pellet_radius))

    def is_within_target(self, position: NormalizedPosition) -> bool:
        return position.radial_distance <= 1.0

    def is_near_edge(self, position: NormalizedPosition, threshold: float = 0.95) -> bool:
        return threshold <= position.radial_distance <= 1.0

    def is_on_scoring_ring(self, position: NormalizedPosition, tolerance: float = 0.02) -> bool:
        distance = position.radial_distance
        return any(abs(distance - radius) <= tolerance for _, radius in self.rings)

    def _score_for_distance(self, distance: float) -> int:
        for score, radius in self.rings:
            if distance <= radius:
                return score
        return 0


TETRATHLON_TARGET = TargetGeometry(
    name="tetrathlon",
    rings=((10, 0.092), (8, 0.319), (6, 0.546), (4, 0.773), (2, 1.0)),
    aspect_ratio=0.77,
    pellet_radius=0.035,
)

_OLYMPIC_DIAMETERS_MM = (11.5, 27.5, 43.5, 59.5, 75.5, 91.5, 107.5, 123.5, 139.5, 155.5)

OLYMPIC_PISTOL_TARGET = TargetGeometry(
    name="olympic-10m-pistol",
    rings=tuple(
        (10 - index, diameter / _OLYMPIC_DIAMETERS_MM[-1])
        for index, diameter in enumerate(_OLYMPIC_DIAMETERS_MM)
    ),
    aspect_ratio=1.0,
    # 4.5 mm pellet: radius over outer-ring radius equals diameter over diameter
    pellet_radius=4.5 / _OLYMPIC_DIAMETERS_MM[-1],
)


@dataclass(frozen=True)
class CropGeometry:
    """Externally supplied geometry of one perspective-corrected capture.

    ``crop_rect`` is (x, y, width, height) in source-image fractions, ``center`` and
    ``semi_axes`` are in crop fractions.
    """

    semi_axes: Tuple[float, float]
    center: Tuple[float, float] = (0.5, 0.5)
    crop_rect: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0)
    rotation_degrees: float = 0.0

    def __post_init__(self) -> None:
        width, height = self.semi_axes
        if width <= 0 or height <= 0:
            raise ValueError(f"Semi-axes must be positive, got {self.semi_axes}")
        x, y, w, h = self.crop_rect
        if w <= 0 or h <= 0:
            raise ValueError(f"Crop rectangle must have positive size, got {self.crop_rect}")
        eps = 1e-9
        if x < -eps or y < -eps or x + w > 1.0 + eps or y + h > 1.0 + eps:
            raise ValueError(f"Crop rectangle must lie inside the source image, got {self.crop_rect}")

    @classmethod
    def fitted(
        cls,
        target: TargetGeometry,
        image_width: int,
        image_height: int,
        fill: float = 0.9,
        crop_rect: Tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0),
    ) -> "CropGeometry":
        """Centered, upright geometry whose ellipse has the target's width/height ratio.

        The ellipse spans ``fill`` of whichever crop dimension limits it. Image
        dimensions are those of the cropped region in pixels.
        """
        if image_width <= 0 or image_height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {image_width}x{image_height}")
        if not 0.0 < fill <= 1.0:
            raise ValueError(f"fill must be in (0, 1], got {fill}")
        semi_height_px = fill * image_height / 2.0
        semi_width_px = semi_height_px * target.aspect_ratio
        if semi_width_px > fill * image_width / 2.0:
            semi_width_px = fill * image_width / 2.0
            semi_height_px = semi_width_px / target.aspect_ratio
        return cls(
            semi_axes=(semi_width_px / image_width, semi_height_px / image_height),
            crop_rect=crop_rect,
        )


class TargetCoordinateTransformer:
    """Converts between crop pixels and normalized target coordinates."""

    def __init__(self, crop_geometry: CropGeometry, image_width: int, image_height: int) -> None:
        if image_width <= 0 or image_height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {image_width}x{image_height}")
        self.crop_geometry = crop_geometry
        self.image_width = image_width
        self.image_height = image_height
        self._center_px = (
            crop_geometry.center[0] * image_width,
            crop_geometry.center[1] * image_height,
        )
        self._semi_axes_px = (
            crop_geometry.semi_axes[0] * image_width,
            crop_geometry.semi_axes[1] * image_height,
        )
        angle = math.radians(crop_geometry.rotation_degrees)
        self._cos = math.cos(angle)
        self._sin = math.sin(angle)

    @property
    def center_pixels(self) -> PixelPoint:
        return self._center_px

    @property
    def semi_axes_pixels(self) -> Tuple[float, float]:
        return self._semi_axes_px

    @property
    def mean_semi_axis_pixels(self) -> float:
        return (self._semi_axes_px[0] + self._semi_axes_px[1]) / 2.0

    def to_normalized(self, point: PixelPoint) -> NormalizedPosition:
        dx = point[0] - self._center_px[0]
        dy = self._center_px[1] - point[1]
        # undo target rotation
        rx = dx * self._cos + dy * self._sin
        ry = -dx * self._sin + dy * self._cos
        return NormalizedPosition(rx / self._semi_axes_px[0], ry / self._semi_axes_px[1])

    def to_pixel(self, position: NormalizedPosition) -> PixelPoint:
        rx = position.x * self._semi_axes_px[0]
        ry = position.y * self._semi_axes_px[1]
        dx = rx * self._cos - ry * self._sin
        dy = rx * self._sin + ry * self._cos
        return self._center_px[0] + dx, self._center_px[1] - dy

    def to_pixel_radius(self, normalized_radius: float) -> float:
        return normalized_radius * self.mean_semi_axis_pixels

    def to_normalized_radius(self, pixel_radius: float) -> float:
        return pixel_radius / self.mean_semi_axis_pixels

    def normalize_points(self, points: Iterable[PixelPoint]) -> List[NormalizedPosition]:
        return [self.to_normalized(point) for point in points]
