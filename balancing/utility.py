"""Marginal utility, pair synergy and point valuation of individual stats.

Round robins rank stats against each other; the functions here measure each
stat against a fixed reference build instead:

- marginal utility: a single-stat archetype against the plain baseline;
- pair synergy: a pair archetype against its tier's scaled baseline, compared
  with what the two single-stat results predict;
- point valuation: how many points one raw unit of a stat is worth, from the
  win rate gained by a fixed boost;
- stress test: a budget converted into per-stat deltas through stat weights,
  with metrics taken from any pluggable evaluator.

Every matchup `k` is evaluated with seed `seed + k`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence

from .archetypes import (
    baseline_vector,
    eligible_stat_ids,
    generate_pair_stat_archetypes,
    generate_single_stat_archetypes,
    scaled_baseline,
)
from .combat import CombatEvaluator
from .dto import (
    Archetype,
    BalancerConfig,
    MarginalUtility,
    PairStatStressResult,
    PairSynergy,
    SingleStatStressResult,
    StatDefinition,
    StatPointCost,
    StatStressReport,
    SynergyAssessment,
)
from .solver import clamp, recompute_derived

logger = logging.getLogger(__name__)

PARITY = 0.5
TARGET_DELTA_WIN_RATE = 0.05
POINT_SCALE = 1.0

# Raw boosts used for point valuation of the core stats.
VALUATION_DELTAS: Mapping[str, float] = {
    "hp": 50,
    "damage": 5,
    "armor": 5,
    "critChance": 5,
    "evasion": 5,
    "txc": 5,
    "lifesteal": 5,
    "regen": 5,
    "ward": 10,
}

StatMetrics = Mapping[str, float]
StatMetricsEvaluator = Callable[[Mapping[str, float]], StatMetrics]


def assess_synergy(ratio: float) -> SynergyAssessment:
    """Bucket a synergy ratio into a qualitative assessment."""

    if ratio > 1.15:
        return "OP"
    if ratio > 1.05:
        return "synergistic"
    if ratio > 0.95:
        return "neutral"
    return "weak"


def calculate_stat_utility(
    archetype: Archetype,
    baseline: Mapping[str, float],
    evaluator: CombatEvaluator,
    trials: int,
    seed: int = 0,
) -> MarginalUtility:
    """Measure a single-stat archetype against `baseline`.

    Raises:
        ValueError: When `archetype` is not a single-stat archetype or
            `trials` is not positive.
    """

    if archetype.kind != "single-stat":
        raise ValueError("calculate_stat_utility expects a single-stat archetype")
    if trials <= 0:
        raise ValueError("trials must be > 0")

    outcome = evaluator.evaluate(archetype.stats, baseline, trials, seed)
    points = archetype.points_per_stat
    return MarginalUtility(
        stat_id=archetype.tested_stats[0],
        points_per_stat=points,
        win_rate=outcome.win_rate_a,
        average_turns=outcome.average_turns,
        utility_score=outcome.win_rate_a / PARITY,
        utility_per_point=(outcome.win_rate_a - PARITY) / points if points else 0.0,
    )


def calculate_pair_synergy(
    archetype: Archetype,
    tier_baseline: Mapping[str, float],
    singles: Mapping[str, MarginalUtility],
    evaluator: CombatEvaluator,
    trials: int,
    seed: int = 0,
) -> PairSynergy:
    """Compare a pair archetype with the mean of its two single-stat results.

    Args:
        archetype: Pair-stat archetype.
        tier_baseline: Opponent build; pair archetypes are built on the scaled
            baseline of their tier, so that is the fair reference.
        singles: Stat id -> marginal utility at the same tier.
        evaluator: Combat evaluator.
        trials: Trials handed to the evaluator.
        seed: Seed for this matchup.

    Raises:
        ValueError: When `archetype` is not a pair archetype or a single-stat
            result is missing.
    """

    if archetype.kind != "pair-stat":
        raise ValueError("calculate_pair_synergy expects a pair-stat archetype")
    stat_a, stat_b = archetype.tested_stats
    single_a = singles.get(stat_a)
    single_b = singles.get(stat_b)
    if single_a is None or single_b is None:
        raise ValueError(f"Missing single-stat utility for {stat_a} or {stat_b}")

    outcome = evaluator.evaluate(archetype.stats, tier_baseline, trials, seed)
    expected = (single_a.win_rate + single_b.win_rate) / 2
    ratio = outcome.win_rate_a / expected if expected > 0 else 1.0
    return PairSynergy(
        stat_a=stat_a,
        stat_b=stat_b,
        points_per_stat=archetype.points_per_stat,
        combined_win_rate=outcome.win_rate_a,
        expected_win_rate=expected,
        synergy_ratio=ratio,
        assessment=assess_synergy(ratio),
    )


def marginal_utilities(
    config: BalancerConfig,
    tier: float,
    trials: int,
    evaluator: CombatEvaluator,
    *,
    seed: int = 0,
) -> tuple[MarginalUtility, ...]:
    """Measure every eligible stat's single-stat archetype at `tier`."""

    baseline = baseline_vector(config)
    archetypes = generate_single_stat_archetypes(config, [tier])
    return tuple(
        calculate_stat_utility(archetype, baseline, evaluator, trials, seed + index)
        for index, archetype in enumerate(archetypes)
    )


def pair_synergies(
    config: BalancerConfig,
    tier: float,
    trials: int,
    evaluator: CombatEvaluator,
    *,
    seed: int = 0,
    singles: Sequence[MarginalUtility] | None = None,
) -> tuple[PairSynergy, ...]:
    """Measure every eligible stat pair at `tier`.

    Single-stat utilities are computed first (seeds `seed + k`) unless they
    are supplied; pair matchups continue the seed sequence after them.
    """

    if singles is None:
        singles = marginal_utilities(config, tier, trials, evaluator, seed=seed)
    by_stat = {entry.stat_id: entry for entry in singles}
    tier_baseline = scaled_baseline(config, tier)
    offset = seed + len(by_stat)

    results = []
    for index, archetype in enumerate(generate_pair_stat_archetypes(config, [tier])):
        synergy = calculate_pair_synergy(archetype, tier_baseline, by_stat, evaluator, trials, offset + index)
        if synergy.assessment == "OP":
            logger.info(
                "Pair %s+%s at tier %s is overpowered (ratio %.2f)",
                synergy.stat_a,
                synergy.stat_b,
                tier,
                synergy.synergy_ratio,
            )
        results.append(synergy)
    return tuple(results)


def valuation_delta(stat: StatDefinition) -> float:
    """Return the raw boost used to value `stat`.

    Core stats use fixed boosts; others use five steps or 5% of the range,
    whichever is larger.
    """

    if stat.id in VALUATION_DELTAS:
        return float(VALUATION_DELTAS[stat.id])
    step = stat.step if stat.step > 0 else 1.0
    span = stat.max - stat.min
    by_range = span * 0.05 if span > 0 else step
    return max(step * 5, by_range)


def estimate_stat_point_costs(
    config: BalancerConfig,
    trials: int,
    evaluator: CombatEvaluator,
    *,
    seed: int = 0,
) -> tuple[StatPointCost, ...]:
    """Estimate what one raw unit of each eligible stat is worth in points.

    Each stat is boosted by `valuation_delta` (capped at its max) and the
    boosted build fights the baseline. A 5% win-rate gain counts as one point.

    Raises:
        ValueError: When `trials` is not positive.
    """

    if trials <= 0:
        raise ValueError("trials must be > 0")

    baseline = baseline_vector(config)
    costs: list[StatPointCost] = []
    for index, stat_id in enumerate(eligible_stat_ids(config)):
        stat = config.stats[stat_id]
        boosted_value = min(stat.max, baseline[stat_id] + valuation_delta(stat))
        delta = boosted_value - baseline[stat_id]
        if delta <= 0:
            logger.debug("Skipping %s: already at its maximum", stat_id)
            continue

        boosted = recompute_derived(config, {**baseline, stat_id: boosted_value})
        outcome = evaluator.evaluate(boosted, baseline, trials, seed + index)
        delta_win_rate = outcome.win_rate_a - PARITY
        costs.append(
            StatPointCost(
                stat_id=stat_id,
                delta=delta,
                win_rate_boosted=outcome.win_rate_a,
                delta_win_rate=delta_win_rate,
                sensitivity_per_unit=delta_win_rate / delta,
                points_per_unit=POINT_SCALE * (delta_win_rate / TARGET_DELTA_WIN_RATE) / delta,
            )
        )
    return tuple(costs)


def driver_stat_ids(config: BalancerConfig) -> tuple[str, ...]:
    """Return non-derived, non-penalty stats sorted by id."""

    return tuple(
        sorted(
            stat_id
            for stat_id, stat in config.stats.items()
            if not stat.is_derived and not stat.formula and not stat.is_penalty
        )
    )


def stress_delta(stat: StatDefinition, base_value: float, budget_per_stat: float) -> float:
    """Convert an hp-equivalent budget into a raw delta for `stat`.

    The raw increase is `budget / weight`, rounded to the stat's step, and the
    result is clamped to `[min, max]`. Non-positive budgets or weights give 0.
    """

    if budget_per_stat <= 0 or stat.weight <= 0:
        return 0.0
    increase = budget_per_stat / stat.weight
    if stat.step > 0:
        increase = round(increase / stat.step) * stat.step
    if increase == 0:
        return 0.0
    return clamp(base_value + increase, stat.min, stat.max) - base_value


def run_stat_stress_test(
    config: BalancerConfig,
    budget_per_stat: float,
    evaluator: StatMetricsEvaluator,
    base_stats: Mapping[str, float] | None = None,
) -> StatStressReport:
    """Apply `budget_per_stat` to each driver stat and each driver pair.

    Args:
        config: Balancer configuration.
        budget_per_stat: Budget in hp-equivalent points per stat.
        evaluator: Returns metrics for a complete stat vector.
        base_stats: Starting vector; defaults to the baseline build.

    Returns:
        StatStressReport with baseline and variant metrics.
    """

    base = dict(base_stats) if base_stats is not None else baseline_vector(config)
    drivers = driver_stat_ids(config)
    baseline_metrics = dict(evaluator(base))

    def value_of(stat_id: str) -> float:
        return base.get(stat_id, config.stats[stat_id].default_value)

    deltas = {stat_id: stress_delta(config.stats[stat_id], value_of(stat_id), budget_per_stat) for stat_id in drivers}

    single: list[SingleStatStressResult] = []
    for stat_id in drivers:
        delta = deltas[stat_id]
        if delta <= 0:
            continue
        variant = recompute_derived(config, {**base, stat_id: value_of(stat_id) + delta})
        single.append(
            SingleStatStressResult(
                stat_id=stat_id,
                delta=delta,
                baseline=dict(baseline_metrics),
                variant=dict(evaluator(variant)),
            )
        )

    pairs: list[PairStatStressResult] = []
    for i, stat_a in enumerate(drivers):
        for stat_b in drivers[i + 1 :]:
            delta_a, delta_b = deltas[stat_a], deltas[stat_b]
            if delta_a <= 0 and delta_b <= 0:
                continue
            values = dict(base)
            if delta_a > 0:
                values[stat_a] = value_of(stat_a) + delta_a
            if delta_b > 0:
                values[stat_b] = value_of(stat_b) + delta_b
            pairs.append(
                PairStatStressResult(
                    stat_a=stat_a,
                    stat_b=stat_b,
                    delta_a=delta_a,
                    delta_b=delta_b,
                    baseline=dict(baseline_metrics),
                    variant=dict(evaluator(recompute_derived(config, values))),
                )
            )

    logger.info(
        "Stress test at budget %s: %d single and %d pair variant(s)",
        budget_per_stat,
        len(single),
        len(pairs),
    )
    return StatStressReport(
        budget_per_stat=budget_per_stat,
        driver_stat_ids=drivers,
        single=tuple(single),
        pairs=tuple(pairs),
    )


def win_rate_metrics(
    evaluator: CombatEvaluator,
    opponent: Mapping[str, float],
    trials: int,
    seed: int = 0,
) -> StatMetricsEvaluator:
    """Adapt a combat evaluator into a stress-test metrics evaluator.

    The returned callable duels each vector against `opponent` with a fixed
    seed and reports `winRate` and `averageTurns`.
    """

    def evaluate(stats: Mapping[str, float]) -> StatMetrics:
        outcome = evaluator.evaluate(stats, opponent, trials, seed)
        return {"winRate": outcome.win_rate_a, "averageTurns": outcome.average_turns}

    return evaluate
