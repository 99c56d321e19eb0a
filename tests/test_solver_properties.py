"""Behavioral properties of the solver on the built-in configuration."""

from __future__ import annotations

from dataclasses import replace

import pytest

from balancing.defaults import DEFAULT_CONFIG
from balancing.solver import default_values, solve_config_change

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("stat_id", ["hp", "damage", "armor", "critChance"])
def test_reapplying_current_value_changes_nothing(stat_id: str) -> None:
    """Solving a stat to the value it already has is a no-op."""

    values = default_values(DEFAULT_CONFIG)

    result = solve_config_change(DEFAULT_CONFIG, values, stat_id, values[stat_id])

    assert result.ok
    assert result.changed == ()
    for key, value in values.items():
        assert result.values[key] == pytest.approx(value, abs=1e-9)


@pytest.mark.parametrize(
    ("edited", "derived", "increases"),
    [
        ("damage", "edpt", True),
        ("hp", "ttk", True),
        ("armor", "effectiveDamage", False),
        ("ward", "effectiveDamage", False),
        ("evasion", "hitChance", False),
    ],
)
def test_derived_stats_move_monotonically(edited: str, derived: str, increases: bool) -> None:
    """Raising an input moves dependent derived stats in one direction."""

    values = default_values(DEFAULT_CONFIG)
    previous = values[derived]

    for step in range(1, 6):
        result = solve_config_change(DEFAULT_CONFIG, values, edited, values[edited] + step * 5)
        assert result.ok
        current = result.values[derived]
        if increases:
            assert current >= previous
        else:
            assert current <= previous
        previous = current


def test_locked_stats_never_move() -> None:
    """Edits never change the value of a locked stat."""

    config = DEFAULT_CONFIG.with_stat(replace(DEFAULT_CONFIG.stats["hp"], is_locked=True))
    values = default_values(config)

    for target, requested in (("damage", 40), ("htk", 10), ("armor", 100)):
        result = solve_config_change(config, values, target, requested)
        assert result.values["hp"] == values["hp"]
        if result.ok:
            values = result.values


def test_derived_edit_solves_through_base_input() -> None:
    """Setting htk on the default config moves hp (its first input)."""

    values = default_values(DEFAULT_CONFIG)

    result = solve_config_change(DEFAULT_CONFIG, values, "htk", 8)

    assert result.ok
    assert result.values["hp"] == pytest.approx(200, abs=1e-2)
    assert result.values["htk"] == pytest.approx(8, abs=1e-3)
    assert "ttk" in result.changed
