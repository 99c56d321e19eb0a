"""Iterative auto-balance loop.

Each iteration runs the all-tier tournament, asks the weight advisor for
suggestions, records an immutable `StatBalanceRun` and either stops (every
suggestion has zero delta) or applies all nonzero suggestions at once. The loop
is bounded by `max_iterations` and never reads history back.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .advisor import compute_stat_weight_suggestions
from .archetypes import eligible_stat_ids
from .combat import CombatEvaluator
from .dto import (
    AggregatedRoundRobinResults,
    AutoBalanceOptions,
    AutoBalanceResult,
    BalancerConfig,
    StatBalanceRun,
    StatBalanceSession,
    StatEfficiency,
    WeightAdvisorOptions,
)
from .tournament import Clock, run_all_tiers, utc_now

logger = logging.getLogger(__name__)

ITERATION_SEED_STRIDE = 1000


def compute_balance_score(efficiencies: Sequence[StatEfficiency]) -> float:
    """Return the mean absolute distance from parity (0 is perfectly balanced)."""

    if not efficiencies:
        return 0.0
    return sum(abs(entry.efficiency - 0.5) for entry in efficiencies) / len(efficiencies)


def build_run(
    run_id: str,
    aggregated: AggregatedRoundRobinResults,
    config: BalancerConfig,
    advisor: WeightAdvisorOptions,
) -> StatBalanceRun:
    """Snapshot one iteration's tournament output and the weights it used."""

    efficiencies = aggregated.aggregated_efficiencies
    return StatBalanceRun(
        id=run_id,
        timestamp=aggregated.timestamp,
        config_version=config.version,
        weights={stat_id: config.stats[stat_id].weight for stat_id in eligible_stat_ids(config)},
        tiers=aggregated.tiers,
        iterations_per_tier=aggregated.trials,
        efficiencies=efficiencies,
        balance_score=compute_balance_score(efficiencies),
        overpowered=tuple(entry.stat_id for entry in efficiencies if entry.efficiency > advisor.target_max),
        underpowered=tuple(entry.stat_id for entry in efficiencies if entry.efficiency < advisor.target_min),
    )


def run_auto_balance_session(
    initial_config: BalancerConfig,
    evaluator: CombatEvaluator,
    options: AutoBalanceOptions | None = None,
    *,
    clock: Clock = utc_now,
) -> AutoBalanceResult:
    """Run the auto-balance loop.

    Args:
        initial_config: Starting configuration (never mutated).
        evaluator: Combat evaluator for every matchup.
        options: Loop options (defaults when omitted).
        clock: Timestamp source for runs and the generated session id.

    Returns:
        AutoBalanceResult with the final configuration and the session.

    Raises:
        ValueError: When `max_iterations` is negative.
    """

    opts = options or AutoBalanceOptions()
    if opts.max_iterations < 0:
        raise ValueError("max_iterations must be >= 0")

    session_id = opts.session_id or f"auto-{int(clock().timestamp() * 1000)}"
    config = initial_config
    runs: list[StatBalanceRun] = []

    for iteration in range(opts.max_iterations):
        seed = opts.seed + iteration * ITERATION_SEED_STRIDE
        aggregated = run_all_tiers(
            config,
            opts.iterations_per_tier,
            seed,
            tiers=opts.tiers,
            evaluator=evaluator,
            clock=clock,
        )
        suggestions = compute_stat_weight_suggestions(config, aggregated.aggregated_efficiencies, opts.advisor)

        run = build_run(f"{session_id}-iter-{iteration + 1}", aggregated, config, opts.advisor)
        runs.append(run)
        logger.info(
            "Auto-balance %s iteration %d: balance score %.4f (%d overpowered, %d underpowered)",
            session_id,
            iteration + 1,
            run.balance_score,
            len(run.overpowered),
            len(run.underpowered),
        )

        changes = {
            suggestion.stat_id: suggestion.suggested_weight
            for suggestion in suggestions
            if suggestion.delta != 0
        }
        if not changes:
            logger.info("Auto-balance %s converged after %d iteration(s)", session_id, iteration + 1)
            break
        config = config.with_weights(changes)

    start_time = runs[0].timestamp if runs else clock()
    end_time = runs[-1].timestamp if runs else start_time
    session = StatBalanceSession(
        session_id=session_id,
        start_time=start_time,
        end_time=end_time,
        runs=tuple(runs),
        strategy="auto",
    )
    return AutoBalanceResult(final_config=config, session=session)
