"""Tests for the reference seeded duel simulator."""

from __future__ import annotations

import pytest

from balancing.archetypes import baseline_vector
from balancing.combat import DuelEvaluator, hit_chance, mitigate
from balancing.defaults import DEFAULT_CONFIG

pytestmark = pytest.mark.unit


def _fighter(**overrides: float) -> dict[str, float]:
    stats = {"hp": 100.0, "damage": 10.0, "baseHitChance": 100.0}
    stats.update(overrides)
    return stats


def test_same_seed_gives_same_outcome() -> None:
    """Evaluations are deterministic for a fixed seed."""

    evaluator = DuelEvaluator()
    baseline = baseline_vector(DEFAULT_CONFIG)
    tougher = {**baseline, "hp": 180.0}

    first = evaluator.evaluate(baseline, tougher, 50, seed=42)
    second = evaluator.evaluate(baseline, tougher, 50, seed=42)

    assert first == second


def test_rates_partition_trials() -> None:
    """Win, loss and draw rates sum to one."""

    baseline = baseline_vector(DEFAULT_CONFIG)

    outcome = DuelEvaluator().evaluate(baseline, {**baseline, "armor": 40.0}, 40, seed=3)

    assert outcome.win_rate_a + outcome.win_rate_b + outcome.draw_rate == pytest.approx(1.0)
    assert outcome.average_turns > 0


def test_overwhelming_damage_wins() -> None:
    """A fighter that one-shots its opponent wins nearly every duel."""

    outcome = DuelEvaluator().evaluate(_fighter(damage=200.0), _fighter(damage=1.0), 30, seed=1)

    assert outcome.win_rate_a > 0.9
    assert outcome.average_turns == 1


def test_harmless_fighters_draw_at_turn_limit() -> None:
    """Fighters unable to deal damage draw once the turn limit is reached."""

    evaluator = DuelEvaluator(turn_limit=12)

    outcome = evaluator.evaluate(_fighter(damage=0.0), _fighter(damage=0.0), 10, seed=0)

    assert outcome.draw_rate == 1.0
    assert outcome.win_rate_a == 0.0
    assert outcome.win_rate_b == 0.0
    assert outcome.average_turns == 12


@pytest.mark.parametrize("trials", [0, -3])
def test_non_positive_trials_raise(trials: int) -> None:
    """Trials must be positive."""

    with pytest.raises(ValueError, match="trials must be > 0"):
        DuelEvaluator().evaluate(_fighter(), _fighter(), trials)


def test_hit_chance_is_clamped() -> None:
    """Hit chance combines base chance, bonus and evasion within [0, 100]."""

    assert hit_chance({"baseHitChance": 50, "txc": 25}, {"evasion": 10}) == 65
    assert hit_chance({"baseHitChance": 90, "txc": 50}, {}) == 100
    assert hit_chance({"baseHitChance": 10}, {"evasion": 80}) == 0


def test_mitigation_order() -> None:
    """Armor (less penetration) then resistance then ward, floored at zero."""

    assert mitigate(100, {}, {"armor": 50}) == pytest.approx(50)
    assert mitigate(100, {"armorPen": 50}, {"armor": 50}) == pytest.approx(100)
    assert mitigate(100, {}, {"resistance": 20, "ward": 10}) == pytest.approx(70)
    assert mitigate(100, {"penPercent": 50}, {"resistance": 20}) == pytest.approx(90)
    assert mitigate(5, {}, {"ward": 10}) == 0
