from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

PixelPoint = Tuple[float, float]

MINIMUM_SHOTS = 3
MEDIUM_CONFIDENCE_SHOTS = 5
HIGH_CONFIDENCE_SHOTS = 10


@dataclass(frozen=True)
class NormalizedPosition:
    """Shot position relative to target center, scaled per axis by the target semi-axes.

    X grows to the right, Y grows upwards. (±1, 0) and (0, ±1) lie on the outermost
    scoring ring along the corresponding axis.
    """

    x: float
    y: float

    @property
    def radial_distance(self) -> float:
        return math.hypot(self.x, self.y)

    @property
    def angle_degrees(self) -> float:
        return math.degrees(math.atan2(self.y, self.x))

    def distance_to(self, other: "NormalizedPosition") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> Tuple[float, float]:
        return self.x, self.y


class Classification(str, Enum):
    ACCEPTED = "accepted"
    SUGGESTED = "suggested"
    REJECTED = "rejected"


@dataclass(frozen=True)
class HoleCandidate:
    """Unconfirmed hole proposed by the detector."""

    pixel_position: PixelPoint
    normalized_position: NormalizedPosition
    radius_pixels: float
    confidence: float
    circularity: float
    contrast: float = 0.0
    source: str = "auto"  # auto|split
    filter_reason: Optional[str] = None


@dataclass(frozen=True)
class ClassifiedCandidates:
    """Read-only projection of one classification pass, for overlays and debug tooling."""

    accepted: Tuple[HoleCandidate, ...] = ()
    suggested: Tuple[HoleCandidate, ...] = ()
    rejected: Tuple[HoleCandidate, ...] = ()

    @property
    def all_candidates(self) -> List[Tuple[Classification, HoleCandidate]]:
        return (
            [(Classification.ACCEPTED, c) for c in self.accepted]
            + [(Classification.SUGGESTED, c) for c in self.suggested]
            + [(Classification.REJECTED, c) for c in self.rejected]
        )

    @property
    def total(self) -> int:
        return len(self.accepted) + len(self.suggested) + len(self.rejected)

    @property
    def auto_accept_rate(self) -> float:
        total = self.total
        return len(self.accepted) / total if total else 0.0

    def counts(self) -> Dict[str, int]:
        return {
            Classification.ACCEPTED.value: len(self.accepted),
            Classification.SUGGESTED.value: len(self.suggested),
            Classification.REJECTED.value: len(self.rejected),
        }


@dataclass
class DetectionStats:
    """Timing diagnostics for each detection stage."""

    detect_ms: float = 0.0
    classify_ms: float = 0.0
    raw_candidates: int = 0

    @property
    def total_ms(self) -> float:
        return self.detect_ms + self.classify_ms


@dataclass
class DetectionResult:
    """Outcome of one detection pass over a crop."""

    image_id: str
    generation: int
    classified: ClassifiedCandidates
    stats: DetectionStats = field(default_factory=DetectionStats)
    image_size: Tuple[int, int] = (0, 0)  # width, height

    def to_candidates_table(self) -> List[dict]:
        rows = []
        for classification, candidate in self.classified.all_candidates:
            rows.append(
                {
                    "classification": classification.value,
                    "x_px": candidate.pixel_position[0],
                    "y_px": candidate.pixel_position[1],
                    "x_norm": candidate.normalized_position.x,
                    "y_norm": candidate.normalized_position.y,
                    "radius_px": candidate.radius_pixels,
                    "confidence": candidate.confidence,
                    "circularity": candidate.circularity,
                    "source": candidate.source,
                    "filter_reason": candidate.filter_reason or "",
                }
            )
        return rows


@dataclass(frozen=True)
class ConfirmedHole:
    """Operator-accepted shot position in crop pixel space."""

    id: int
    position: PixelPoint
    source: str = "manual"  # auto|suggested|manual


class SessionType(str, Enum):
    FREE_PRACTICE = "free-practice"
    TETRATHLON_PRACTICE = "tetrathlon-practice"
    COMPETITION = "competition"

    @property
    def display_name(self) -> str:
        return {
            SessionType.FREE_PRACTICE: "Free Practice",
            SessionType.TETRATHLON_PRACTICE: "Tetrathlon",
            SessionType.COMPETITION: "Competition",
        }[self]


class ConfidenceTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def for_shot_count(cls, shot_count: int) -> Optional["ConfidenceTier"]:
        """Tier for a sample size, or None when below the minimum sample floor."""
        if shot_count < MINIMUM_SHOTS:
            return None
        if shot_count >= HIGH_CONFIDENCE_SHOTS:
            return cls.HIGH
        if shot_count >= MEDIUM_CONFIDENCE_SHOTS:
            return cls.MEDIUM
        return cls.LOW


class Tightness(str, Enum):
    TIGHT = "tight"
    MODERATE = "moderate"
    WIDE = "wide"

    @property
    def description(self) -> str:
        return "spread out" if self is Tightness.WIDE else self.value


class BiasSeverity(str, Enum):
    CENTERED = "centered"
    SLIGHT = "slight"
    SIGNIFICANT = "significant"

    @property
    def description(self) -> str:
        return {
            BiasSeverity.CENTERED: "centered",
            BiasSeverity.SLIGHT: "slightly",
            BiasSeverity.SIGNIFICANT: "noticeably",
        }[self]


class BiasDirection(str, Enum):
    CENTERED = "centered"
    HIGH = "high"
    LOW = "low"
    LEFT = "left"
    RIGHT = "right"
    HIGH_LEFT = "high-left"
    HIGH_RIGHT = "high-right"
    LOW_LEFT = "low-left"
    LOW_RIGHT = "low-right"

    @property
    def description(self) -> str:
        if self is BiasDirection.CENTERED:
            return "centered"
        return self.value.replace("-", " and ")

    @property
    def short_description(self) -> str:
        if self is BiasDirection.CENTERED:
            return "center"
        if self is BiasDirection.HIGH:
            return "above"
        if self is BiasDirection.LOW:
            return "below"
        return f"{self.value} of"


class RingGroupingQuality(str, Enum):
    VERY_TIGHT = "very-tight"
    TIGHT = "tight"
    MODERATE = "moderate"
    WIDE = "wide"

    @property
    def description(self) -> str:
        if self is RingGroupingQuality.WIDE:
            return "spread"
        return self.value.replace("-", " ")


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass(frozen=True)
class ShotStatistics:
    """Numeric description of one shot group in normalized target units."""

    shot_count: int
    mpi: NormalizedPosition
    group_radius: float
    extreme_spread: float
    cep50: float
    cep90: float
    std_dev: float
    offset: float
    azimuth_deg: float
    distances: Tuple[float, ...]
    outlier_flags: Tuple[bool, ...]

    @property
    def outlier_count(self) -> int:
        return sum(1 for flag in self.outlier_flags if flag)


@dataclass(frozen=True)
class RingDistribution:
    """How a session's shots fall across the scoring rings, innermost ring first."""

    shots_by_ring: Dict[int, int]
    fraction_by_ring: Dict[int, float]
    innermost_ring: int
    outermost_ring: int
    # innermost ring that, together with the rings inside it, holds the core share of shots
    core_cluster_ring: int
    ring_spread: int
    grouping: RingGroupingQuality

    @property
    def core_cluster_fraction(self) -> float:
        return sum(fraction for ring, fraction in self.fraction_by_ring.items() if ring >= self.core_cluster_ring)


@dataclass(frozen=True)
class ScoreProjection:
    """Simulated round totals for a shooter holding the current group."""

    expected: float
    low: float
    median: float
    high: float
    max_possible: int
    shot_count: int

    @property
    def expected_percentage(self) -> float:
        if self.max_possible <= 0:
            return 0.0
        return self.expected / self.max_possible * 100.0

    @property
    def range_description(self) -> str:
        return f"{self.low:.0f} - {self.high:.0f} (80% range)"


@dataclass(frozen=True)
class PatternAnalysisResult:
    """Per-session analysis: statistics plus the qualitative reading of them."""

    confidence: ConfidenceTier
    tightness: Tightness
    bias: BiasDirection
    bias_severity: BiasSeverity
    observation: str
    practice_focus: str
    suggested_drills: Tuple[str, ...]
    statistics: ShotStatistics
    total_score: int = 0
    ring_distribution: Optional[RingDistribution] = None
    projection: Optional[ScoreProjection] = None

    @property
    def pattern_label(self) -> str:
        tightness = self.tightness.description.capitalize()
        if self.bias is BiasDirection.CENTERED:
            return f"{tightness} & Centered"
        direction = " ".join(word if word == "and" else word.capitalize() for word in self.bias.description.split())
        return f"{tightness} & {self.bias_severity.description.capitalize()} {direction}"

    @property
    def formatted_group_radius(self) -> str:
        return f"{self.statistics.group_radius:.2f}"

    @property
    def formatted_extreme_spread(self) -> str:
        return f"{self.statistics.extreme_spread:.2f}"

    @property
    def formatted_offset(self) -> str:
        return f"{self.statistics.offset:.2f}"

    @property
    def mean_score(self) -> float:
        count = self.statistics.shot_count
        return self.total_score / count if count else 0.0


@dataclass(frozen=True)
class PatternAnalysis:
    """Analyzer output: either a result or the reason analysis was suppressed."""

    result: Optional[PatternAnalysisResult] = None
    suppression_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class StoredPatternRecord:
    """Compact, immutable history entry for one analysed session."""

    timestamp: datetime
    session_type: SessionType
    shot_count: int
    normalized_shots: Tuple[NormalizedPosition, ...]
    cluster_mpi: NormalizedPosition
    cluster_radius: float
    outlier_count: int

    @property
    def cluster_shot_count(self) -> int:
        return self.shot_count - self.outlier_count

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "session_type": self.session_type.value,
            "shot_count": self.shot_count,
            "normalized_shots": [list(shot.as_tuple()) for shot in self.normalized_shots],
            "cluster_mpi": list(self.cluster_mpi.as_tuple()),
            "cluster_radius": self.cluster_radius,
            "outlier_count": self.outlier_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredPatternRecord":
        shots = tuple(NormalizedPosition(float(x), float(y)) for x, y in data.get("normalized_shots", []))
        mpi_x, mpi_y = data["cluster_mpi"]
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            session_type=SessionType(data.get("session_type", SessionType.FREE_PRACTICE.value)),
            shot_count=int(data.get("shot_count", len(shots))),
            normalized_shots=shots,
            cluster_mpi=NormalizedPosition(float(mpi_x), float(mpi_y)),
            cluster_radius=float(data["cluster_radius"]),
            outlier_count=int(data.get("outlier_count", 0)),
        )

    def to_csv_row(self) -> dict:
        return {
            "date_time": self.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "session_type": self.session_type.value,
            "N": self.shot_count,
            "mpi_x": self.cluster_mpi.x,
            "mpi_y": self.cluster_mpi.y,
            "offset": self.cluster_mpi.radial_distance,
            "group_radius": self.cluster_radius,
            "outliers": self.outlier_count,
        }


@dataclass(frozen=True)
class AggregatedMetrics:
    """Longitudinal metrics over a filtered set of history records."""

    average_impact_point: NormalizedPosition
    group_radius: float
    offset: float
    outliers_count: int
    total_shots: int
    session_count: int
    shots_by_day: Dict[date, int] = field(default_factory=dict)
    radius_trend: List[Tuple[datetime, float]] = field(default_factory=list)

    @property
    def cluster_shots(self) -> int:
        return self.total_shots - self.outliers_count

    @property
    def confidence(self) -> Optional[ConfidenceTier]:
        return ConfidenceTier.for_shot_count(self.total_shots)

    @property
    def confidence_explanation(self) -> str:
        sessions = f"{self.session_count} session{'' if self.session_count == 1 else 's'}"
        tier = self.confidence
        if tier is None:
            return f"Not enough data yet ({self.total_shots} shots) - keep practicing for insights"
        if tier is ConfidenceTier.HIGH:
            return f"Based on {self.total_shots} shots across {sessions}"
        if tier is ConfidenceTier.MEDIUM:
            return f"Based on {self.total_shots} shots - more practice will improve accuracy"
        return f"Limited data ({self.total_shots} shots) - keep practicing for better insights"

    @property
    def outlier_percentage(self) -> float:
        if self.total_shots <= 0:
            return 0.0
        return self.outliers_count / self.total_shots * 100.0

    @property
    def has_meaningful_bias(self) -> bool:
        return self.offset > 0.07

    @property
    def formatted_group_radius(self) -> str:
        return f"{self.group_radius:.2f}"

    @property
    def formatted_offset(self) -> str:
        return f"{self.offset:.2f}"


def normalized_positions(points: Sequence[Tuple[float, float]]) -> List[NormalizedPosition]:
    return [NormalizedPosition(float(x), float(y)) for x, y in points]
