"""Piecewise cost multipliers applied when converting tier points into stat deltas.

A factor of 1.0 is linear cost. Factors above 1.0 make points more expensive
in that value range (fewer raw units per point), factors below 1.0 cheaper.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CurveSegment:
    """Half-open value range `[min, max)` with a cost factor."""

    min: float
    max: float
    factor: float


STAT_CURVES: Mapping[str, tuple[CurveSegment, ...]] = {
    # High evasion swings duels; make it costly.
    "evasion": (
        CurveSegment(0, 20, 0.8),
        CurveSegment(20, 40, 1.0),
        CurveSegment(40, 60, 1.4),
        CurveSegment(60, 80, 1.8),
        CurveSegment(80, 200, 2.2),
    ),
    "critChance": (
        CurveSegment(0, 10, 0.7),
        CurveSegment(10, 30, 1.0),
        CurveSegment(30, 50, 1.5),
        CurveSegment(50, 75, 2.0),
        CurveSegment(75, 100, 2.5),
    ),
    "armor": (
        CurveSegment(0, 50, 1.0),
        CurveSegment(50, 100, 1.2),
        CurveSegment(100, 200, 1.5),
        CurveSegment(200, 10000, 2.0),
    ),
    "resistance": (
        CurveSegment(0, 20, 0.9),
        CurveSegment(20, 40, 1.1),
        CurveSegment(40, 60, 1.5),
        CurveSegment(60, 100, 2.0),
    ),
}


def stat_curve_factor(
    stat_id: str,
    value: float | None,
    curves: Mapping[str, tuple[CurveSegment, ...]] = STAT_CURVES,
) -> float:
    """Return the cost factor for a stat at a given raw value.

    Args:
        stat_id: Stat identifier.
        value: Current raw value of the stat.
        curves: Curve table (defaults to `STAT_CURVES`).

    Returns:
        The factor of the segment containing `value`; the first segment's
        factor below the curve, the last segment's factor above it, and 1.0
        when the stat has no curve or the value is missing or non-finite.
    """

    if value is None or not math.isfinite(value):
        return 1.0
    segments = curves.get(stat_id)
    if not segments:
        return 1.0
    if value < segments[0].min:
        return segments[0].factor
    for segment in segments:
        if segment.min <= value < segment.max:
            return segment.factor
    return segments[-1].factor
