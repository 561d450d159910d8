from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np

from shotscan.models import DetectionResult, DetectionStats
from shotscan.processing.classify import classify_candidates
from shotscan.processing.detect_holes import detect_holes
from shotscan.processing.detection_config import HoleDetectionConfig
from shotscan.processing.geometry import TETRATHLON_TARGET, CropGeometry, TargetGeometry

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    detection: HoleDetectionConfig = field(default_factory=HoleDetectionConfig)
    geometry: TargetGeometry = TETRATHLON_TARGET
    max_image_edge: Optional[int] = 1600
    max_workers: int = 2


class DetectionPipeline:
    """Runs detection and classification, synchronously or on a worker pool.

    Each submission for an image id bumps that id's generation; results from older
    generations are superseded and should be discarded by the caller.
    """

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config
        self._executor = ThreadPoolExecutor(max_workers=max(1, config.max_workers), thread_name_prefix="detect")
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}

    def process(
        self,
        image: np.ndarray,
        crop_geometry: CropGeometry,
        image_id: str = "crop",
        generation: int = 0,
    ) -> DetectionResult:
        stats = DetectionStats()

        detect_start = time.perf_counter()
        candidates = detect_holes(
            image,
            crop_geometry,
            self.config.detection,
            max_image_edge=self.config.max_image_edge,
        )
        stats.detect_ms = (time.perf_counter() - detect_start) * 1000
        stats.raw_candidates = len(candidates)

        classify_start = time.perf_counter()
        classified = classify_candidates(candidates, self.config.detection, self.config.geometry)
        stats.classify_ms = (time.perf_counter() - classify_start) * 1000

        counts = classified.counts()
        logger.info(
            "Detection %s: %d accepted, %d suggested, %d rejected (%.1f ms)",
            image_id,
            counts["accepted"],
            counts["suggested"],
            counts["rejected"],
            stats.total_ms,
        )
        size = (int(image.shape[1]), int(image.shape[0])) if isinstance(image, np.ndarray) and image.ndim >= 2 else (0, 0)
        return DetectionResult(
            image_id=image_id,
            generation=generation,
            classified=classified,
            stats=stats,
            image_size=size,
        )

    def submit(
        self,
        image: np.ndarray,
        crop_geometry: CropGeometry,
        image_id: str = "crop",
        on_result: Optional[Callable[[DetectionResult], None]] = None,
    ) -> "Future[DetectionResult]":
        """Queue a detection pass; ``on_result`` only fires for the newest pass of ``image_id``."""
        with self._lock:
            generation = self._generations.get(image_id, 0) + 1
            self._generations[image_id] = generation
        future = self._executor.submit(self.process, image, crop_geometry, image_id, generation)
        if on_result is not None:
            future.add_done_callback(lambda done: self._deliver(done, on_result))
        return future

    def is_current(self, result: DetectionResult) -> bool:
        with self._lock:
            return self._generations.get(result.image_id) == result.generation

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "DetectionPipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def _deliver(self, future: "Future[DetectionResult]", on_result: Callable[[DetectionResult], None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Detection pass failed: %s", exc)
            return
        result = future.result()
        if not self.is_current(result):
            logger.debug("Discarding superseded detection %s generation %d", result.image_id, result.generation)
            return
        on_result(result)
