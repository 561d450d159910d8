from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def imread(path: Path | str, flags: int = cv2.IMREAD_COLOR) -> Optional[np.ndarray]:
    """Read image from disk handling non-ASCII paths."""
    file_path = Path(path)
    if not file_path.is_file():
        logger.warning("Image file not found: %s", file_path)
        return None
    data = np.fromfile(str(file_path), dtype=np.uint8)
    image = cv2.imdecode(data, flags) if data.size else None
    if image is None:
        logger.warning("Could not decode image: %s", file_path)
    return image


def crop_fraction(image: np.ndarray, crop_rect: Tuple[float, float, float, float]) -> np.ndarray:
    """Cut the (x, y, width, height) source-fraction rectangle out of ``image``."""
    height, width = image.shape[:2]
    x, y, w, h = crop_rect
    x0 = min(width - 1, int(round(x * width)))
    y0 = min(height - 1, int(round(y * height)))
    x1 = min(width, max(x0 + 1, int(round((x + w) * width))))
    y1 = min(height, max(y0 + 1, int(round((y + h) * height))))
    return image[y0:y1, x0:x1]


def load_target_crop(path: Path | str, crop_rect: Tuple[float, float, float, float]) -> Optional[np.ndarray]:
    """The cropped target region of the photo at ``path``, or None if it cannot be read."""
    source = imread(path)
    if source is None:
        return None
    return crop_fraction(source, crop_rect)


def resize_to_max_edge(image: np.ndarray, max_edge: int) -> np.ndarray:
    """Shrink so the longest edge is at most ``max_edge``; smaller images come back untouched."""
    if max_edge <= 0:
        return image
    height, width = image.shape[:2]
    if max(height, width) <= max_edge:
        return image
    scale = max_edge / float(max(height, width))
    size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


__all__ = ["crop_fraction", "imread", "load_target_crop", "resize_to_max_edge"]
