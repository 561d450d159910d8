from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

logger = logging.getLogger(__name__)

MIN_FOREGROUND_PIXELS = 10


@dataclass
class ThresholdParams:
    gaussian_sigma: float = 1.0
    morph_kernel_size: int = 3
    morph_iterations: int = 1
    clahe_clip_limit: float = 2.0
    clahe_tile_grid_size: int = 8
    adaptive_block_size: int = 31
    adaptive_c: float = 10.0


def to_gray(image: np.ndarray) -> np.ndarray:
    """Return an 8-bit single-channel copy of ``image``."""
    if image.ndim == 3:
        if image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            image = image[:, :, 0]
    if image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return image


def normalize_image(gray: np.ndarray, clahe_clip_limit: float = 2.0, tile_grid_size: int = 8) -> np.ndarray:
    clahe = cv2.createCLAHE(clipLimit=clahe_clip_limit, tileGridSize=(tile_grid_size, tile_grid_size))
    return clahe.apply(gray)


def smooth(gray: np.ndarray, sigma: float) -> np.ndarray:
    if sigma <= 0:
        return gray
    ksize = max(3, int(sigma * 6 + 1) // 2 * 2 + 1)
    return cv2.GaussianBlur(gray, (ksize, ksize), sigma)


def segment_dark_regions(gray: np.ndarray, params: ThresholdParams) -> np.ndarray:
    """Binary mask (255 = foreground) of regions darker than their surroundings."""
    normalized = normalize_image(gray, params.clahe_clip_limit, params.clahe_tile_grid_size)
    blurred = smooth(normalized, params.gaussian_sigma)
    block_size = max(3, params.adaptive_block_size | 1)

    binary = cv2.adaptiveThreshold(
        blurred,
        255,
        cv2.ADAPTIVE_THRESH_MEAN_C,
        cv2.THRESH_BINARY_INV,
        block_size,
        params.adaptive_c,
    )

    def _post_process(src: np.ndarray) -> np.ndarray:
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (params.morph_kernel_size, params.morph_kernel_size))
        out = cv2.morphologyEx(src, cv2.MORPH_OPEN, kernel, iterations=params.morph_iterations)
        return cv2.morphologyEx(out, cv2.MORPH_CLOSE, kernel, iterations=params.morph_iterations)

    binary = _post_process(binary)
    current_nz = int((binary > 0).sum())

    # Low-contrast crops: fall back to a global statistic threshold.
    std = float(blurred.std())
    if current_nz < MIN_FOREGROUND_PIXELS and std > 2.0:
        fallback_thresh = float(blurred.mean()) - 1.5 * std
        if fallback_thresh > 0:
            _, binary_loose = cv2.threshold(blurred, fallback_thresh, 255, cv2.THRESH_BINARY_INV)
            binary_loose = _post_process(binary_loose)
            loose_nz = int((binary_loose > 0).sum())
            if loose_nz > current_nz:
                logger.debug("Adaptive threshold found %d px, global fallback %d px", current_nz, loose_nz)
                binary = binary_loose

    return binary
