"""Tests for dependency graph construction over derived stats."""

from __future__ import annotations

import pytest

from balancing.defaults import DEFAULT_CONFIG
from balancing.dto import BalancerConfig
from balancing.graph import DependencyCycleError, build_dependency_graph

pytestmark = pytest.mark.unit


def test_default_config_topological_order() -> None:
    """Derived stats are ordered so every derived input comes first."""

    graph = build_dependency_graph(DEFAULT_CONFIG)

    assert not graph.has_cycle
    assert graph.topo_order == ("htk", "hitChance", "effectiveDamage", "attacksPerKo", "edpt", "ttk")
    position = {stat_id: index for index, stat_id in enumerate(graph.topo_order)}
    for derived_id in graph.derived_stats:
        for input_id in graph.inputs_of(derived_id):
            if input_id in position:
                assert position[input_id] < position[derived_id]


def test_inputs_and_dependents_index(htk_config: BalancerConfig) -> None:
    """Inputs keep formula order; the reverse index maps inputs to derived stats."""

    graph = build_dependency_graph(htk_config)

    assert graph.derived_stats == ("htk",)
    assert graph.inputs_of("htk") == ("hp", "damage")
    assert graph.inputs_of("hp") == ()
    assert graph.dependents_of("hp") == ("htk",)
    assert graph.dependents_of("damage") == ("htk",)


def test_invalid_formula_yields_empty_inputs(stat_factory) -> None:
    """Formulas failing validation contribute no inputs instead of raising."""

    config = BalancerConfig(
        version="test",
        stats={
            "hp": stat_factory("hp", 0, 10, 1),
            "bad": stat_factory("bad", 0, 10, 0, is_derived=True, formula="hp + mana"),
        },
    )

    graph = build_dependency_graph(config)

    assert graph.derived_stats == ("bad",)
    assert graph.inputs_of("bad") == ()
    assert graph.topo_order == ("bad",)


def _cyclic_config(stat_factory) -> BalancerConfig:
    return BalancerConfig(
        version="test",
        stats={
            "x": stat_factory("x", 0, 10, 1),
            "a": stat_factory("a", 0, 100, 0, is_derived=True, formula="b + x"),
            "b": stat_factory("b", 0, 100, 0, is_derived=True, formula="a + 1"),
            "c": stat_factory("c", 0, 100, 0, is_derived=True, formula="x * 2"),
        },
    )


def test_cycle_falls_back_to_declaration_order(stat_factory) -> None:
    """A cycle among derived stats degrades to declaration order by default."""

    graph = build_dependency_graph(_cyclic_config(stat_factory))

    assert graph.has_cycle
    assert graph.topo_order == ("a", "b", "c")


def test_strict_mode_reports_cycle_members(stat_factory) -> None:
    """Strict mode raises with the stats that could not be ordered."""

    with pytest.raises(DependencyCycleError) as excinfo:
        build_dependency_graph(_cyclic_config(stat_factory), strict=True)

    assert excinfo.value.stat_ids == ("a", "b")
