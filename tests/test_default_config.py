"""Consistency checks for the built-in configuration."""

from __future__ import annotations

import pytest

from balancing.defaults import DEFAULT_CONFIG
from balancing.formula import validate_formula
from balancing.graph import build_dependency_graph
from balancing.solver import default_values

pytestmark = pytest.mark.unit


def test_cards_reference_known_stats() -> None:
    """Every card lists only stats defined in the configuration."""

    for card in DEFAULT_CONFIG.cards.values():
        missing = [stat_id for stat_id in card.stat_ids if stat_id not in DEFAULT_CONFIG.stats]
        assert missing == [], f"Card {card.id} references unknown stats {missing}"


def test_active_preset_exists_and_weights_known_stats() -> None:
    """The active preset is defined and weights only real stats."""

    preset = DEFAULT_CONFIG.presets[DEFAULT_CONFIG.active_preset_id]

    assert set(preset.weights) <= set(DEFAULT_CONFIG.stats)
    for stat_id, weight in preset.weights.items():
        assert weight == DEFAULT_CONFIG.stats[stat_id].weight


@pytest.mark.parametrize("stat_id", [stat.id for stat in DEFAULT_CONFIG.stats.values() if stat.is_derived])
def test_derived_formulas_validate(stat_id: str) -> None:
    """Derived formulas parse and reference only known stats."""

    result = validate_formula(DEFAULT_CONFIG.stats[stat_id].formula, DEFAULT_CONFIG.stats)

    assert result.valid, result.error


def test_derived_formulas_are_acyclic() -> None:
    """The built-in graph never needs the declaration-order fallback."""

    graph = build_dependency_graph(DEFAULT_CONFIG, strict=True)

    assert not graph.has_cycle


def test_stat_bounds_contain_defaults() -> None:
    """Declared defaults sit inside `[min, max]`, derived defaults match their formulas."""

    values = default_values(DEFAULT_CONFIG)

    for stat in DEFAULT_CONFIG.stats.values():
        assert stat.min <= stat.default_value <= stat.max, stat.id
        if stat.is_derived:
            assert values[stat.id] == pytest.approx(stat.default_value, abs=0.01), stat.id
