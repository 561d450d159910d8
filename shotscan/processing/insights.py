from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from shotscan.models import BiasDirection, BiasSeverity, Tightness, TrendDirection

# outlier share of all shots above which stray shots become a practice theme
OUTLIER_CONCERN_RATE = 0.2
MAX_DRILLS = 3


@dataclass(frozen=True)
class Insights:
    observation: str
    practice_focus: str
    trend_text: str
    outlier_text: str
    suggested_drills: Tuple[str, ...]


_Key = Tuple[Tightness, BiasSeverity]

_OBSERVATIONS: Dict[_Key, str] = {
    (Tightness.TIGHT, BiasSeverity.CENTERED): "Shots are tightly grouped around the center.",
    (Tightness.TIGHT, BiasSeverity.SLIGHT): "Shots are tightly grouped, sitting slightly {where} center.",
    (Tightness.TIGHT, BiasSeverity.SIGNIFICANT): "Shots form a tight group that lands consistently {where} center.",
    (Tightness.MODERATE, BiasSeverity.CENTERED): "Shots are moderately grouped around the center.",
    (Tightness.MODERATE, BiasSeverity.SLIGHT): "Shots form a moderate group, slightly {where} center.",
    (Tightness.MODERATE, BiasSeverity.SIGNIFICANT): "Shots form a moderate group that lands {where} center.",
    (Tightness.WIDE, BiasSeverity.CENTERED): "Shots are spread out but balanced around the center.",
    (Tightness.WIDE, BiasSeverity.SLIGHT): "Shots are spread out, leaning toward the {side} side.",
    (Tightness.WIDE, BiasSeverity.SIGNIFICANT): "Shots are spread out with a clear pull toward the {side} side.",
}

_PRACTICE_FOCUS: Dict[_Key, str] = {
    (Tightness.TIGHT, BiasSeverity.CENTERED): "Keep the current routine and stay relaxed through each shot.",
    (Tightness.TIGHT, BiasSeverity.SLIGHT): "The group is consistent; a small natural point of aim adjustment should center it.",
    (Tightness.TIGHT, BiasSeverity.SIGNIFICANT): "Consistency is there. Work on natural point of aim to move the group onto the center.",
    (Tightness.MODERATE, BiasSeverity.CENTERED): "A repeatable shot routine is the next step toward a tighter group.",
    (Tightness.MODERATE, BiasSeverity.SLIGHT): "Slow down and concentrate on one element of the shot at a time.",
    (Tightness.MODERATE, BiasSeverity.SIGNIFICANT): "Slow down and concentrate on one element of the shot at a time.",
    (Tightness.WIDE, BiasSeverity.CENTERED): "The group is balanced; stability and a steady routine will tighten it.",
    (Tightness.WIDE, BiasSeverity.SLIGHT): "Build a steady, repeatable routine and take time between shots.",
    (Tightness.WIDE, BiasSeverity.SIGNIFICANT): "Build a steady, repeatable routine and take time between shots.",
}

_DRILLS: Dict[_Key, Tuple[str, ...]] = {
    (Tightness.TIGHT, BiasSeverity.CENTERED): ("Maintain current routine", "Extended hold before each shot"),
    (Tightness.TIGHT, BiasSeverity.SLIGHT): ("Natural point of aim check", "Dry fire with hold focus", "Blank target slow fire"),
    (Tightness.TIGHT, BiasSeverity.SIGNIFICANT): (
        "Natural point of aim adjustment",
        "Position check",
        "Aiming area hold drill",
    ),
    (Tightness.MODERATE, BiasSeverity.CENTERED): ("Shot routine checklist", "Slow fire practice", "Breathing and settle drill"),
    (Tightness.MODERATE, BiasSeverity.SLIGHT): ("One-element focus drill", "Blank target slow fire", "Position and hold drill"),
    (Tightness.MODERATE, BiasSeverity.SIGNIFICANT): ("One-element focus drill", "Blank target slow fire", "Position and hold drill"),
    (Tightness.WIDE, BiasSeverity.CENTERED): ("Stability hold drill", "Pre-shot routine", "Stance and balance check"),
    (Tightness.WIDE, BiasSeverity.SLIGHT): ("Position fundamentals review", "Stability exercises", "Slow deliberate practice"),
    (Tightness.WIDE, BiasSeverity.SIGNIFICANT): ("Position fundamentals review", "Stability exercises", "Slow deliberate practice"),
}

_TREND_TEXT: Dict[TrendDirection, str] = {
    TrendDirection.IMPROVING: "Groups are getting tighter over recent sessions.",
    TrendDirection.DECLINING: "Groups have opened up over recent sessions; a rested, unhurried session may help.",
    TrendDirection.STABLE: "Group size is holding steady across recent sessions.",
}

TRIGGER_DRILL = "Smooth trigger squeeze drill"


def generate_insights(
    tightness: Tightness,
    bias: BiasDirection,
    trend: TrendDirection = TrendDirection.STABLE,
    outlier_rate: float = 0.0,
    severity: Optional[BiasSeverity] = None,
) -> Insights:
    """Select coaching text for a pattern.

    ``outlier_rate`` is the share of shots (0..1) flagged as outliers. ``severity``
    defaults to slight for any off-center bias.
    """
    if bias is BiasDirection.CENTERED:
        severity = BiasSeverity.CENTERED
    elif severity is None or severity is BiasSeverity.CENTERED:
        severity = BiasSeverity.SLIGHT
    key = (tightness, severity)

    observation = _OBSERVATIONS[key].format(where=bias.short_description, side=bias.description)
    practice_focus = _PRACTICE_FOCUS[key]
    drills = _DRILLS[key]
    if outlier_rate >= OUTLIER_CONCERN_RATE:
        practice_focus += " When shots stray from the group, focus on a smooth trigger release."
        if TRIGGER_DRILL not in drills:
            drills = (TRIGGER_DRILL,) + drills

    return Insights(
        observation=observation,
        practice_focus=practice_focus,
        trend_text=_TREND_TEXT[trend],
        outlier_text=outlier_text(outlier_rate),
        suggested_drills=tuple(drills[:MAX_DRILLS]),
    )


def outlier_text(outlier_rate: float) -> str:
    if outlier_rate <= 0:
        return ""
    if outlier_rate < OUTLIER_CONCERN_RATE:
        return "An occasional shot landed outside the main group."
    return f"{outlier_rate * 100:.0f}% of shots landed outside the main group."
