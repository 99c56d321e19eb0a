"""Synthetic stat-stress archetypes for round-robin tournaments.

Each archetype is the baseline build plus a tier's worth of points in one (or
two) stats. Points convert into raw stat units through the stat weight and the
cost curve evaluated at the baseline value:

    delta = weight / stat_curve_factor(stat_id, baseline_value) * tier

Single-stat archetypes start from the pure baseline. Pair archetypes start
from a *scaled* baseline where every eligible stat already received its own
tier delta, then add the pair's deltas on top. The two generators are therefore
not directly comparable; tournaments only ever pit archetypes of the same kind
and tier against each other.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .curves import stat_curve_factor
from .dto import Archetype, BalancerConfig, StatDefinition, StatVector
from .solver import recompute_derived

DEFAULT_TIERS: tuple[float, ...] = (25, 50, 75, 100)


def eligible_stat_ids(config: BalancerConfig) -> tuple[str, ...]:
    """Return stats that can be stress-tested: non-derived, no formula, not hidden."""

    return tuple(
        stat_id
        for stat_id, stat in config.stats.items()
        if not stat.is_derived and not stat.formula and not stat.is_hidden
    )


def baseline_vector(config: BalancerConfig) -> StatVector:
    """Return every non-derived stat at its default, with derived stats recomputed.

    Hidden constants are included so combat evaluators see a complete build.
    """

    values = {
        stat_id: stat.default_value
        for stat_id, stat in config.stats.items()
        if not stat.is_derived and not stat.formula
    }
    return recompute_derived(config, values)


def tier_delta(stat: StatDefinition, current_value: float, tier: float) -> float:
    """Convert `tier` points into a raw stat delta at `current_value`."""

    return stat.weight / stat_curve_factor(stat.id, current_value) * tier


def _format_tier(tier: float) -> str:
    return f"{tier:g}"


def generate_single_stat_archetypes(
    config: BalancerConfig,
    tiers: Iterable[float] = DEFAULT_TIERS,
) -> list[Archetype]:
    """Generate one archetype per (tier, eligible stat).

    Args:
        config: Balancer configuration.
        tiers: Point tiers to generate.

    Returns:
        Archetypes ordered by tier, then stat declaration order.
    """

    baseline = baseline_vector(config)
    stat_ids = eligible_stat_ids(config)
    archetypes: list[Archetype] = []

    for tier in tiers:
        for stat_id in stat_ids:
            stat = config.stats[stat_id]
            delta = tier_delta(stat, baseline[stat_id], tier)
            values = dict(baseline)
            values[stat_id] = baseline[stat_id] + delta
            label = _format_tier(tier)
            archetypes.append(
                Archetype(
                    id=f"stress-{stat_id}-{label}",
                    name=f"Stress +{label} {stat.label}",
                    kind="single-stat",
                    stats=recompute_derived(config, values),
                    tested_stats=(stat_id,),
                    points_per_stat=tier,
                    weights={stat_id: stat.weight},
                    deltas={stat_id: delta},
                    description=(
                        f"Baseline + {delta:.2f} ({stat.weight:.2f} hp/pt x {label} pt) on {stat.label}"
                    ),
                )
            )

    return archetypes


def scaled_baseline(config: BalancerConfig, tier: float, baseline: Mapping[str, float] | None = None) -> StatVector:
    """Return the baseline with every eligible stat pre-bumped by its tier delta."""

    start = dict(baseline if baseline is not None else baseline_vector(config))
    values = dict(start)
    for stat_id in eligible_stat_ids(config):
        values[stat_id] = start[stat_id] + tier_delta(config.stats[stat_id], start[stat_id], tier)
    return recompute_derived(config, values)


def generate_pair_stat_archetypes(
    config: BalancerConfig,
    tiers: Iterable[float] = DEFAULT_TIERS,
) -> list[Archetype]:
    """Generate one archetype per (tier, unordered pair of eligible stats).

    Args:
        config: Balancer configuration.
        tiers: Point tiers to generate.

    Returns:
        Archetypes ordered by tier, then pair (i < j) in declaration order.
    """

    baseline = baseline_vector(config)
    stat_ids: Sequence[str] = eligible_stat_ids(config)
    archetypes: list[Archetype] = []

    for tier in tiers:
        tier_base = scaled_baseline(config, tier, baseline)
        label = _format_tier(tier)
        for i, stat_a in enumerate(stat_ids):
            for stat_b in stat_ids[i + 1 :]:
                def_a = config.stats[stat_a]
                def_b = config.stats[stat_b]
                delta_a = tier_delta(def_a, baseline[stat_a], tier)
                delta_b = tier_delta(def_b, baseline[stat_b], tier)
                values = dict(tier_base)
                values[stat_a] = tier_base[stat_a] + delta_a
                values[stat_b] = tier_base[stat_b] + delta_b
                archetypes.append(
                    Archetype(
                        id=f"stress-pair-{stat_a}-{stat_b}-{label}",
                        name=f"Pair +{label} {def_a.label} & +{label} {def_b.label}",
                        kind="pair-stat",
                        stats=recompute_derived(config, values),
                        tested_stats=(stat_a, stat_b),
                        points_per_stat=tier,
                        weights={stat_a: def_a.weight, stat_b: def_b.weight},
                        deltas={stat_a: delta_a, stat_b: delta_b},
                        description=(
                            f"Baseline + {delta_a:.2f} on {def_a.label}, + {delta_b:.2f} on {def_b.label}"
                        ),
                    )
                )

    return archetypes
