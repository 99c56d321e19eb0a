"""Tests for piecewise stat cost curves."""

from __future__ import annotations

import math

import pytest

from balancing.curves import CurveSegment, stat_curve_factor

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("stat_id", "value", "expected"),
    [
        ("evasion", 0, 0.8),
        ("evasion", 19.99, 0.8),
        ("evasion", 20, 1.0),
        ("evasion", 45, 1.4),
        ("evasion", 500, 2.2),
        ("critChance", 5, 0.7),
        ("critChance", 30, 1.5),
        ("armor", 150, 1.5),
        ("armor", 20000, 2.0),
        ("resistance", 70, 2.0),
    ],
)
def test_factor_for_value(stat_id: str, value: float, expected: float) -> None:
    """Segments are half-open; values past the last segment reuse its factor."""

    assert stat_curve_factor(stat_id, value) == expected


@pytest.mark.parametrize("value", [None, math.nan, math.inf])
def test_missing_or_non_finite_value_is_linear(value) -> None:
    """Missing or non-finite values cost 1.0."""

    assert stat_curve_factor("evasion", value) == 1.0


def test_stat_without_curve_is_linear() -> None:
    """Stats without a curve cost 1.0."""

    assert stat_curve_factor("hp", 500) == 1.0


def test_value_below_curve_uses_first_segment() -> None:
    """Values below the first segment reuse its factor."""

    curves = {"custom": (CurveSegment(10, 20, 0.5), CurveSegment(20, 30, 3.0))}

    assert stat_curve_factor("custom", -5, curves) == 0.5
    assert stat_curve_factor("custom", 25, curves) == 3.0
