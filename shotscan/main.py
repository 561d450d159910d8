from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from shotscan.export.to_csv import export_analysis_csv
from shotscan.history_store import PatternHistory
from shotscan.models import SessionType
from shotscan.processing.corrections import CorrectionSession
from shotscan.processing.detection_config import DETECTION_PRESETS, get_preset
from shotscan.processing.geometry import TETRATHLON_TARGET, CropGeometry, TargetCoordinateTransformer
from shotscan.processing.history import aggregate_records, classify_trend, insights_for_metrics
from shotscan.processing.pattern import analyze_holes, create_record
from shotscan.processing.pipeline import DetectionPipeline, PipelineConfig
from shotscan.processing.scoring import ring_summary
from shotscan.settings_manager import DEFAULT_SETTINGS, SettingsManager, build_detection_config
from shotscan.utils.image_io import load_target_crop

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shotscan",
        description="Detect holes on a target crop and analyse the shot pattern.",
    )
    parser.add_argument("image", type=Path, help="source image containing the target")
    parser.add_argument("--preset", choices=sorted(DETECTION_PRESETS), help="detection preset")
    parser.add_argument("--semi-axes", nargs=2, type=float, metavar=("W", "H"), default=(0.45, 0.45))
    parser.add_argument(
        "--fit-target",
        action="store_true",
        help="derive centered semi-axes from the tetrathlon target shape instead of --semi-axes",
    )
    parser.add_argument("--center", nargs=2, type=float, metavar=("X", "Y"), default=(0.5, 0.5))
    parser.add_argument("--crop", nargs=4, type=float, metavar=("X", "Y", "W", "H"), default=(0.0, 0.0, 1.0, 1.0))
    parser.add_argument("--rotation", type=float, default=0.0, help="target rotation in degrees")
    parser.add_argument("--settings", type=Path, help="settings JSON file")
    parser.add_argument("--history", type=Path, help="append the session to this history file")
    parser.add_argument(
        "--session-type",
        choices=[session.value for session in SessionType],
        default=SessionType.FREE_PRACTICE.value,
    )
    parser.add_argument("--export", type=Path, help="write analysis CSV files to this directory")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = SettingsManager(args.settings).data if args.settings else DEFAULT_SETTINGS
    config = get_preset(args.preset) if args.preset else build_detection_config(settings)
    try:
        crop = CropGeometry(
            semi_axes=tuple(args.semi_axes),
            center=tuple(args.center),
            crop_rect=tuple(args.crop),
            rotation_degrees=args.rotation,
        )
    except ValueError as exc:
        parser.error(str(exc))

    image = load_target_crop(args.image, crop.crop_rect)
    if image is None:
        logger.error("Could not read image: %s", args.image)
        return 1
    if args.fit_target:
        crop = CropGeometry.fitted(TETRATHLON_TARGET, image.shape[1], image.shape[0], crop_rect=crop.crop_rect)
        logger.info("Fitted semi-axes %.3f x %.3f", *crop.semi_axes)

    pipeline_config = PipelineConfig(
        detection=config,
        max_image_edge=settings.get("detection", {}).get("max_image_edge"),
    )
    with DetectionPipeline(pipeline_config) as pipeline:
        result = pipeline.process(image, crop, image_id=args.image.stem)

    for classification, candidate in result.classified.all_candidates:
        x, y = candidate.pixel_position
        reason = f" ({candidate.filter_reason})" if candidate.filter_reason else ""
        print(
            f"{classification.value:<9} x={x:7.1f} y={y:7.1f} r={candidate.radius_pixels:5.1f} "
            f"conf={candidate.confidence:.2f} circ={candidate.circularity:.2f}{reason}"
        )

    session = CorrectionSession.from_classification(result.classified)
    transformer = TargetCoordinateTransformer(crop, image.shape[1], image.shape[0])
    exclude_outliers = bool(settings.get("analysis", {}).get("exclude_outliers", False))
    analysis = analyze_holes(session.holes, transformer, exclude_outliers=exclude_outliers)
    if not analysis.is_valid:
        print(analysis.suppression_reason)
        return 0

    pattern = analysis.result
    print(f"{pattern.pattern_label} - confidence {pattern.confidence.value}")
    print(f"group radius {pattern.formatted_group_radius}, spread {pattern.formatted_extreme_spread}, offset {pattern.formatted_offset}")
    print(pattern.observation)
    if pattern.ring_distribution is not None:
        summary = ring_summary(pattern.ring_distribution)
        if summary:
            print(summary)
    if pattern.projection is not None:
        projection = pattern.projection
        print(
            f"projected {projection.shot_count}-shot score {projection.expected:.1f}/{projection.max_possible} "
            f"({projection.range_description})"
        )
    print(pattern.practice_focus)
    for drill in pattern.suggested_drills:
        print(f"  - {drill}")

    positions = transformer.normalize_points(session.positions)
    if args.export:
        export_analysis_csv(pattern, positions, args.export, args.image.stem)

    if args.history:
        history = PatternHistory.load(args.history)
        history.append(create_record(positions, SessionType(args.session_type)))
        history.save(args.history)
        metrics = aggregate_records(history.records)
        if metrics is not None:
            window = int(settings.get("history", {}).get("trend_window", 3))
            trend = classify_trend(metrics.radius_trend, window=window)
            insights = insights_for_metrics(metrics, trend)
            print(f"history: {metrics.session_count} sessions, {metrics.confidence_explanation}")
            print(insights.trend_text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
