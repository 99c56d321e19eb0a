"""Round-robin tournaments between stat-stress archetypes.

Every unordered pair of same-tier archetypes is handed to a combat evaluator.
Matchup `k` (in `i < j` enumeration order) is evaluated with seed `seed + k`,
so each matchup is independently reproducible and the whole run is
deterministic for a fixed seed. Efficiencies are summed in matchup order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime

from .archetypes import DEFAULT_TIERS, generate_single_stat_archetypes
from .combat import CombatEvaluator, DuelEvaluator
from .dto import (
    AggregatedRoundRobinResults,
    Archetype,
    Assessment,
    BalancerConfig,
    MatchupResult,
    RoundRobinResults,
    StatEfficiency,
)

logger = logging.getLogger(__name__)

WIN_THRESHOLD = 0.55
LOSS_THRESHOLD = 0.45
TIER_SEED_STRIDE = 10_000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(UTC)


def assess_efficiency(efficiency: float) -> Assessment:
    """Map an efficiency score to its qualitative bucket."""

    if efficiency > 0.65:
        return "OP"
    if efficiency > 0.55:
        return "strong"
    if efficiency > 0.45:
        return "balanced"
    if efficiency > 0.35:
        return "weak"
    return "underpowered"


def _rank(entries: list[StatEfficiency]) -> tuple[StatEfficiency, ...]:
    """Sort by efficiency descending (stable) and assign 1-based ranks."""

    ordered = sorted(entries, key=lambda entry: entry.efficiency, reverse=True)
    return tuple(
        StatEfficiency(
            stat_id=entry.stat_id,
            points_per_stat=entry.points_per_stat,
            efficiency=entry.efficiency,
            wins=entry.wins,
            losses=entry.losses,
            draws=entry.draws,
            rank=index,
            assessment=entry.assessment,
        )
        for index, entry in enumerate(ordered, start=1)
    )


def compute_efficiencies(
    stat_ids: Sequence[str],
    matchups: Sequence[MatchupResult],
    tier: float,
) -> tuple[StatEfficiency, ...]:
    """Compute ranked per-stat efficiencies from matchup results.

    Args:
        stat_ids: Archetype keys taking part, in archetype order.
        matchups: Matchup results for one tier.
        tier: Tier recorded on each efficiency.

    Returns:
        Efficiencies ranked from strongest to weakest.
    """

    entries: list[StatEfficiency] = []
    for stat_id in stat_ids:
        rates = [
            matchup.win_rate_a if matchup.stat_a == stat_id else matchup.win_rate_b
            for matchup in matchups
            if stat_id in (matchup.stat_a, matchup.stat_b)
        ]
        efficiency = sum(rates) / len(rates) if rates else 0.5
        wins = sum(1 for rate in rates if rate > WIN_THRESHOLD)
        losses = sum(1 for rate in rates if rate < LOSS_THRESHOLD)
        entries.append(
            StatEfficiency(
                stat_id=stat_id,
                points_per_stat=tier,
                efficiency=efficiency,
                wins=wins,
                losses=losses,
                draws=len(rates) - wins - losses,
                rank=0,
                assessment=assess_efficiency(efficiency),
            )
        )
    return _rank(entries)


def run_round_robin(
    archetypes: Sequence[Archetype],
    trials_per_matchup: int,
    evaluator: CombatEvaluator,
    *,
    seed: int = 0,
    clock: Clock = utc_now,
) -> RoundRobinResults:
    """Run every unordered pair of archetypes against each other.

    Args:
        archetypes: Archetypes of a single tier.
        trials_per_matchup: Trials handed to the evaluator per matchup.
        evaluator: Combat evaluator.
        seed: Base seed; matchup `k` uses `seed + k`.
        clock: Timestamp source.

    Returns:
        RoundRobinResults for the tier.

    Raises:
        ValueError: When `trials_per_matchup` is not positive or the
            archetypes span more than one tier.
    """

    if trials_per_matchup <= 0:
        raise ValueError("trials_per_matchup must be > 0")
    tiers = {archetype.points_per_stat for archetype in archetypes}
    if len(tiers) > 1:
        raise ValueError(f"Round robin requires a single tier, got {sorted(tiers)}")
    tier = archetypes[0].points_per_stat if archetypes else 0

    matchups: list[MatchupResult] = []
    index = 0
    for i, archetype_a in enumerate(archetypes):
        for archetype_b in archetypes[i + 1 :]:
            outcome = evaluator.evaluate(
                archetype_a.stats,
                archetype_b.stats,
                trials_per_matchup,
                seed + index,
            )
            matchups.append(
                MatchupResult(
                    stat_a=archetype_a.key,
                    stat_b=archetype_b.key,
                    points_per_stat=tier,
                    win_rate_a=outcome.win_rate_a,
                    win_rate_b=outcome.win_rate_b,
                    average_turns=outcome.average_turns,
                    trials=trials_per_matchup,
                )
            )
            logger.debug(
                "Matchup %s vs %s (tier %s): %.3f / %.3f",
                archetype_a.key,
                archetype_b.key,
                tier,
                outcome.win_rate_a,
                outcome.win_rate_b,
            )
            index += 1

    efficiencies = compute_efficiencies([archetype.key for archetype in archetypes], matchups, tier)
    return RoundRobinResults(
        matchups=tuple(matchups),
        efficiencies=efficiencies,
        tier=tier,
        trials=trials_per_matchup,
        timestamp=clock(),
    )


def run_round_robin_tests(
    config: BalancerConfig,
    tier: float,
    trials: int,
    seed: int = 0,
    evaluator: CombatEvaluator | None = None,
    *,
    clock: Clock = utc_now,
) -> RoundRobinResults:
    """Generate single-stat archetypes for one tier and run them round robin."""

    archetypes = generate_single_stat_archetypes(config, [tier])
    return run_round_robin(
        archetypes,
        trials,
        evaluator if evaluator is not None else DuelEvaluator(),
        seed=seed,
        clock=clock,
    )


def aggregate_efficiencies(
    by_tier: Mapping[float, RoundRobinResults],
    tiers: Sequence[float],
) -> tuple[StatEfficiency, ...]:
    """Aggregate per-tier efficiencies into one ranked list.

    Stats are taken from the first tier. Efficiency is the unweighted mean over
    tiers (0.5 where a tier lacks the stat); wins, losses and draws are summed.
    """

    if not tiers or tiers[0] not in by_tier:
        return ()

    lookup = {
        tier: {entry.stat_id: entry for entry in result.efficiencies}
        for tier, result in by_tier.items()
    }
    entries: list[StatEfficiency] = []
    for first in by_tier[tiers[0]].efficiencies:
        per_tier = [lookup.get(tier, {}).get(first.stat_id) for tier in tiers]
        efficiency = sum(entry.efficiency if entry else 0.5 for entry in per_tier) / len(tiers)
        entries.append(
            StatEfficiency(
                stat_id=first.stat_id,
                points_per_stat=0,
                efficiency=efficiency,
                wins=sum(entry.wins for entry in per_tier if entry),
                losses=sum(entry.losses for entry in per_tier if entry),
                draws=sum(entry.draws for entry in per_tier if entry),
                rank=0,
                assessment=assess_efficiency(efficiency),
            )
        )
    return _rank(entries)


def run_all_tiers(
    config: BalancerConfig,
    trials: int,
    seed: int = 0,
    *,
    tiers: Iterable[float] = DEFAULT_TIERS,
    evaluator: CombatEvaluator | None = None,
    clock: Clock = utc_now,
) -> AggregatedRoundRobinResults:
    """Run single-stat round robins for every tier and aggregate them.

    Args:
        config: Balancer configuration.
        trials: Trials per matchup.
        seed: Base seed; tier `n` (0-based) uses `seed + n * 10_000`.
        tiers: Point tiers to run.
        evaluator: Combat evaluator (defaults to `DuelEvaluator()`).
        clock: Timestamp source.

    Returns:
        AggregatedRoundRobinResults.
    """

    evaluator = evaluator if evaluator is not None else DuelEvaluator()
    tier_list = tuple(tiers)
    by_tier: dict[float, RoundRobinResults] = {}
    for index, tier in enumerate(tier_list):
        logger.info("Running round robin for tier %s", tier)
        by_tier[tier] = run_round_robin_tests(
            config,
            tier,
            trials,
            seed + index * TIER_SEED_STRIDE,
            evaluator,
            clock=clock,
        )

    return AggregatedRoundRobinResults(
        by_tier=by_tier,
        aggregated_efficiencies=aggregate_efficiencies(by_tier, tier_list),
        tiers=tier_list,
        trials=trials,
        timestamp=clock(),
    )
