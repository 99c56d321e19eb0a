"""Pytest fixtures shared across balancing unit tests and Django integration tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta

import pytest

from balancing.dto import BalancerConfig, CombatOutcome, StatDefinition


def make_stat(stat_id: str, minimum: float, maximum: float, default: float, **kwargs) -> StatDefinition:
    """Build a StatDefinition with test-friendly defaults."""

    kwargs.setdefault("weight", 1.0)
    kwargs.setdefault("step", 1.0)
    return StatDefinition(
        id=stat_id,
        label=kwargs.pop("label", stat_id),
        min=minimum,
        max=maximum,
        default_value=default,
        **kwargs,
    )


@pytest.fixture
def stat_factory():
    """Return the `make_stat` helper."""

    return make_stat


@pytest.fixture
def htk_config() -> BalancerConfig:
    """Return a three-stat configuration where `htk = hp / damage`."""

    return BalancerConfig(
        version="test",
        stats={
            "hp": make_stat("hp", 1, 1000, 150),
            "damage": make_stat("damage", 1, 200, 10),
            "htk": make_stat("htk", 0, 1000, 15, is_derived=True, formula="hp / damage", weight=0),
        },
    )


@pytest.fixture
def htk_values() -> dict[str, float]:
    """Return a consistent stat vector for `htk_config`."""

    return {"hp": 150.0, "damage": 10.0, "htk": 15.0}


class ConstantEvaluator:
    """Combat evaluator reporting a fixed win split and recording each call's seed."""

    def __init__(self, win_rate_a: float = 0.5) -> None:
        self.win_rate_a = win_rate_a
        self.seeds: list[int | None] = []

    def evaluate(
        self,
        stats_a: Mapping[str, float],
        stats_b: Mapping[str, float],
        trials: int,
        seed: int | None = None,
    ) -> CombatOutcome:
        self.seeds.append(seed)
        return CombatOutcome(win_rate_a=self.win_rate_a, win_rate_b=1 - self.win_rate_a, average_turns=5.0)


class HigherHpWinsEvaluator:
    """Combat evaluator where the side with more hp always wins (ties split)."""

    def __init__(self) -> None:
        self.seeds: list[int | None] = []

    def evaluate(
        self,
        stats_a: Mapping[str, float],
        stats_b: Mapping[str, float],
        trials: int,
        seed: int | None = None,
    ) -> CombatOutcome:
        self.seeds.append(seed)
        if stats_a["hp"] > stats_b["hp"]:
            rate = 1.0
        elif stats_a["hp"] < stats_b["hp"]:
            rate = 0.0
        else:
            rate = 0.5
        return CombatOutcome(win_rate_a=rate, win_rate_b=1 - rate, average_turns=3.0)


@pytest.fixture
def constant_evaluator() -> ConstantEvaluator:
    """Return an evaluator that always reports parity."""

    return ConstantEvaluator()


@pytest.fixture
def hp_evaluator() -> HigherHpWinsEvaluator:
    """Return an evaluator that rewards hp only."""

    return HigherHpWinsEvaluator()


@pytest.fixture
def fixed_clock():
    """Return a clock that always reports the same instant."""

    instant = datetime(2025, 1, 1, tzinfo=UTC)
    return lambda: instant


@pytest.fixture
def ticking_clock():
    """Return a clock advancing one second per call."""

    state = {"now": datetime(2025, 1, 1, tzinfo=UTC)}

    def tick() -> datetime:
        state["now"] = state["now"] + timedelta(seconds=1)
        return state["now"]

    return tick


def pytest_collection_modifyitems(items: Sequence[pytest.Item]) -> None:
    """Enforce that every test has exactly one speed marker.

    - `unit`: pure, fast tests with no database access.
    - `integration`: tests touching Django, database, commands, or IO.

    Each test must have exactly one of these markers.
    """

    invalid: list[str] = []
    for item in items:
        has_unit = item.get_closest_marker("unit") is not None
        has_integration = item.get_closest_marker("integration") is not None
        if has_unit == has_integration:
            markers = []
            if has_unit:
                markers.append("unit")
            if has_integration:
                markers.append("integration")
            invalid.append(f"{item.nodeid} (markers={markers or 'none'})")

    if invalid:
        joined = "\n".join(f"- {nodeid}" for nodeid in invalid)
        raise pytest.UsageError(
            "Each test must have exactly one speed marker: `@pytest.mark.unit` or "
            "`@pytest.mark.integration`.\n"
            f"Offending tests:\n{joined}"
        )
