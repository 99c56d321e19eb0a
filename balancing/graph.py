"""Dependency graph over derived stats.

The graph is a pure function of the configuration: it is rebuilt for every
solve call and never mutated afterwards.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .dto import BalancerConfig
from .formula import validate_formula

logger = logging.getLogger(__name__)


class DependencyCycleError(ValueError):
    """Raised in strict mode when derived formulas depend on each other cyclically."""

    def __init__(self, stat_ids: Iterable[str]) -> None:
        self.stat_ids = tuple(stat_ids)
        super().__init__(f"Derived stat formulas form a cycle: {', '.join(self.stat_ids)}")


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Derived stats, their inputs and an evaluation order.

    Attributes:
        derived_stats: Derived stat ids with a formula, in declaration order.
        inputs: Derived stat id -> ordered input ids referenced by its formula.
        dependents: Stat id -> derived stat ids whose formula references it.
        topo_order: Evaluation order over derived stats (declaration order when
            a cycle was found).
        has_cycle: True when the declaration-order fallback was used.
    """

    derived_stats: tuple[str, ...]
    inputs: Mapping[str, tuple[str, ...]]
    dependents: Mapping[str, tuple[str, ...]]
    topo_order: tuple[str, ...]
    has_cycle: bool = False

    def inputs_of(self, stat_id: str) -> tuple[str, ...]:
        """Return the formula inputs of a derived stat (empty for base stats)."""

        return self.inputs.get(stat_id, ())

    def dependents_of(self, stat_id: str) -> tuple[str, ...]:
        """Return derived stats directly depending on `stat_id`."""

        return self.dependents.get(stat_id, ())


def build_dependency_graph(config: BalancerConfig, *, strict: bool = False) -> DependencyGraph:
    """Build the dependency graph for a configuration.

    Formulas failing validation contribute an empty input list rather than an
    error; catching bad formulas is the editor's job.

    Args:
        config: Balancer configuration.
        strict: Raise `DependencyCycleError` instead of falling back to
            declaration order when derived formulas form a cycle.

    Returns:
        DependencyGraph for the configuration.
    """

    stat_ids = config.stat_ids()
    derived: list[str] = []
    inputs: dict[str, tuple[str, ...]] = {}
    dependents: dict[str, list[str]] = {}

    for stat_id, stat in config.stats.items():
        if not stat.has_formula:
            continue
        validation = validate_formula(stat.formula, stat_ids)
        used = validation.used_identifiers if validation.valid else ()
        derived.append(stat_id)
        inputs[stat_id] = used
        for dep in used:
            dependents.setdefault(dep, []).append(stat_id)

    # Kahn's algorithm restricted to derived -> derived edges; base inputs are always ready.
    indegree = {stat_id: 0 for stat_id in derived}
    for stat_id in derived:
        for dep in inputs[stat_id]:
            if dep in indegree:
                indegree[stat_id] += 1

    queue = deque(stat_id for stat_id in derived if indegree[stat_id] == 0)
    topo_order: list[str] = []
    while queue:
        current = queue.popleft()
        topo_order.append(current)
        for nxt in dependents.get(current, ()):
            if nxt not in indegree:
                continue
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                queue.append(nxt)

    frozen_dependents = {key: tuple(value) for key, value in dependents.items()}

    if len(topo_order) != len(derived):
        ordered = set(topo_order)
        cyclic = [stat_id for stat_id in derived if stat_id not in ordered]
        if strict:
            raise DependencyCycleError(cyclic)
        logger.warning("Derived stat cycle detected (%s); using declaration order", ", ".join(cyclic))
        return DependencyGraph(
            derived_stats=tuple(derived),
            inputs=inputs,
            dependents=frozen_dependents,
            topo_order=tuple(derived),
            has_cycle=True,
        )

    return DependencyGraph(
        derived_stats=tuple(derived),
        inputs=inputs,
        dependents=frozen_dependents,
        topo_order=tuple(topo_order),
    )
