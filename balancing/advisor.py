"""Weight suggestions derived from tournament efficiencies.

Weights convert tier points into raw stat units, so an overpowered stat gets a
lower weight (fewer units per point) and an underpowered stat a higher one.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from .dto import BalancerConfig, StatDefinition, StatEfficiency, StatWeightSuggestion, WeightAdvisorOptions

MIN_SEVERITY = 0.25
MAX_SEVERITY = 1.0
SAFE_FRACTION = 0.6


def is_weight_eligible(stat: StatDefinition) -> bool:
    """Return True for stats whose weight the advisor may tune."""

    if stat.is_derived or stat.formula or stat.is_hidden:
        return False
    return math.isfinite(stat.weight) and stat.weight > 0


def _unchanged(stat: StatDefinition, efficiency: StatEfficiency, reason: str) -> StatWeightSuggestion:
    return StatWeightSuggestion(
        stat_id=stat.id,
        label=stat.label or stat.id,
        current_weight=stat.weight,
        suggested_weight=stat.weight,
        delta=0.0,
        delta_percent=0.0,
        efficiency=efficiency.efficiency,
        assessment=efficiency.assessment,
        reason=reason,
        safe=True,
    )


def compute_suggestion(
    stat: StatDefinition,
    efficiency: StatEfficiency,
    options: WeightAdvisorOptions | None = None,
) -> StatWeightSuggestion:
    """Compute a weight suggestion for a single stat.

    Args:
        stat: Stat definition (assumed eligible).
        efficiency: The stat's aggregated efficiency.
        options: Advisor options (defaults when omitted).

    Returns:
        StatWeightSuggestion; zero-delta when the efficiency is centered or
        inside the target band.
    """

    opts = options or WeightAdvisorOptions()
    deviation = efficiency.efficiency - opts.center

    if abs(deviation) < opts.min_efficiency_deviation:
        return _unchanged(stat, efficiency, "Efficiency already close to target band; no change suggested.")

    if efficiency.efficiency > opts.target_max:
        increase = False
    elif efficiency.efficiency < opts.target_min:
        increase = True
    else:
        return _unchanged(stat, efficiency, "Efficiency within target band; no change suggested.")

    half_band = opts.half_band
    outside = max(0.0, abs(deviation) - half_band)
    severity_raw = outside / half_band if half_band > 0 else 0.0
    severity = max(MIN_SEVERITY, min(MAX_SEVERITY, severity_raw))

    relative_change = opts.max_relative_delta * severity
    signed_change = relative_change if increase else -relative_change
    delta_percent = signed_change * 100
    suggested = stat.weight * (1 + signed_change)

    side = "below" if increase else "above"
    verb = "increase" if increase else "decrease"
    reason = (
        f"Efficiency {efficiency.efficiency * 100:.1f}% ({efficiency.assessment}) is {side} target band "
        f"[{opts.target_min * 100:.0f}-{opts.target_max * 100:.0f}%]. "
        f"Suggested {verb} weight by {abs(delta_percent):.1f}%."
    )

    return StatWeightSuggestion(
        stat_id=stat.id,
        label=stat.label or stat.id,
        current_weight=stat.weight,
        suggested_weight=suggested,
        delta=suggested - stat.weight,
        delta_percent=delta_percent,
        efficiency=efficiency.efficiency,
        assessment=efficiency.assessment,
        reason=reason,
        safe=abs(delta_percent) <= opts.max_relative_delta * 100 * SAFE_FRACTION,
    )


def compute_stat_weight_suggestions(
    config: BalancerConfig,
    efficiencies: Iterable[StatEfficiency],
    options: WeightAdvisorOptions | None = None,
) -> list[StatWeightSuggestion]:
    """Suggest weight changes for every eligible stat with an efficiency.

    Efficiencies for unknown or ineligible stats (derived, hidden, formula
    backed, non-positive weight) are skipped.

    Args:
        config: Balancer configuration.
        efficiencies: Aggregated efficiencies, typically ranked.
        options: Advisor options.

    Returns:
        Suggestions in the order of `efficiencies`.
    """

    suggestions: list[StatWeightSuggestion] = []
    for efficiency in efficiencies:
        stat = config.stats.get(efficiency.stat_id)
        if stat is None or not is_weight_eligible(stat):
            continue
        suggestions.append(compute_suggestion(stat, efficiency, options))
    return suggestions
