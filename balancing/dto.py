"""DTO types used and returned by the balancing engine.

DTOs are plain data containers. They intentionally avoid any Django/ORM
dependencies so the engine can run in tests, management commands and workers
alike.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Literal

StatVector = dict[str, float]
"""Mapping from stat identifier to its current numeric value."""

Assessment = Literal["OP", "strong", "balanced", "weak", "underpowered"]

SynergyAssessment = Literal["OP", "synergistic", "neutral", "weak"]


@dataclass(frozen=True, slots=True)
class StatDefinition:
    """Definition of a single stat in the balancer.

    Attributes:
        id: Unique identifier (identifier syntax, used inside formulas).
        label: Human-friendly label.
        min: Lower bound for values.
        max: Upper bound for values.
        step: UI step size.
        default_value: Default value, within `[min, max]`.
        weight: Cost-per-point; converts tier points into a stat delta.
        is_core: True for stats shown on the core card.
        is_derived: True when the value is computed from `formula`.
        formula: Arithmetic expression over other stat ids (derived stats only).
        is_locked: True when edits to other stats must preserve this value.
        is_hidden: True for stats excluded from tournaments and advice.
        is_penalty: True for penalty knobs (fail chance and friends).
        base_stat: Optional explicit membership in the base stat kit.
        is_detrimental: Optional explicit "only benefits heroes" marker.
        description: Optional help text.
        value_type: Either "number" or "percentage".
    """

    id: str
    label: str
    min: float
    max: float
    step: float
    default_value: float
    weight: float
    is_core: bool = False
    is_derived: bool = False
    formula: str | None = None
    is_locked: bool = False
    is_hidden: bool = False
    is_penalty: bool = False
    base_stat: bool | None = None
    is_detrimental: bool | None = None
    description: str = ""
    value_type: Literal["number", "percentage"] = "number"

    @property
    def has_formula(self) -> bool:
        """Return True when the stat is derived and carries a formula."""

        return self.is_derived and bool(self.formula)

    @property
    def effective_base_stat(self) -> bool:
        """Return base-kit membership, defaulting to non-derived, non-penalty."""

        if self.base_stat is not None:
            return self.base_stat
        return not self.is_derived and not self.is_penalty

    @property
    def effective_detrimental(self) -> bool:
        """Return the detrimental flag, defaulting to `is_penalty`."""

        if self.is_detrimental is not None:
            return self.is_detrimental
        return self.is_penalty


@dataclass(frozen=True, slots=True)
class CardDefinition:
    """A UI card grouping related stats."""

    id: str
    title: str
    color: str
    stat_ids: tuple[str, ...]
    is_core: bool
    order: int
    icon: str | None = None
    is_locked: bool = False
    is_hidden: bool = False


@dataclass(frozen=True, slots=True)
class BalancerPreset:
    """A named set of weights."""

    id: str
    name: str
    description: str
    weights: Mapping[str, float]
    is_built_in: bool
    created_at: str
    modified_at: str


@dataclass(frozen=True)
class BalancerConfig:
    """The complete balancer configuration document.

    `stats` preserves declaration order; the dependency graph falls back to it
    when derived formulas form a cycle. The mappings are never mutated by the
    engine; use `with_stat` / `with_weights` to derive a modified copy.

    Attributes:
        version: Document version string.
        stats: Ordered mapping of stat id to definition.
        cards: Mapping of card id to card definition.
        presets: Mapping of preset id to preset.
        active_preset_id: Identifier of the active preset.
    """

    version: str
    stats: Mapping[str, StatDefinition]
    cards: Mapping[str, CardDefinition] = field(default_factory=dict)
    presets: Mapping[str, BalancerPreset] = field(default_factory=dict)
    active_preset_id: str = "default"

    def stat_ids(self) -> tuple[str, ...]:
        """Return stat ids in declaration order."""

        return tuple(self.stats)

    def with_stat(self, stat: StatDefinition) -> BalancerConfig:
        """Return a copy with one stat definition added or replaced."""

        stats = dict(self.stats)
        stats[stat.id] = stat
        return replace(self, stats=stats)

    def with_weights(self, weights: Mapping[str, float]) -> BalancerConfig:
        """Return a copy with the given stat weights applied."""

        stats = dict(self.stats)
        for stat_id, weight in weights.items():
            current = stats.get(stat_id)
            if current is None:
                continue
            stats[stat_id] = replace(current, weight=weight)
        return replace(self, stats=stats)


@dataclass(frozen=True, slots=True)
class FormulaValidationResult:
    """Structured result of formula validation.

    Attributes:
        valid: True when the formula is usable.
        used_identifiers: Identifiers referenced by the formula (first-use order).
        error: Human-readable error when `valid` is False.
    """

    valid: bool
    used_identifiers: tuple[str, ...] = ()
    error: str | None = None


class SolveErrorCode(StrEnum):
    """Recoverable constraint solver outcomes."""

    UNKNOWN_STAT = "unknown_stat"
    STAT_LOCKED = "stat_locked"
    ALL_INPUTS_LOCKED = "all_inputs_locked"
    NO_ADJUSTABLE_INPUT = "no_adjustable_input"
    CANNOT_SATISFY_LOCK = "cannot_satisfy_lock"
    NON_FINITE_FORMULA = "non_finite_formula"
    TARGET_UNREACHABLE = "target_unreachable"
    NO_RANGE = "no_range"
    INVALID_CONFIGURATION = "invalid_configuration"


@dataclass(frozen=True, slots=True)
class SolveError:
    """A reported (never raised) solver failure.

    Attributes:
        code: Machine-readable failure code.
        stat_id: The stat the caller attempted to edit.
        blocking_stats: Locked or derived stats preventing the edit (for UI highlighting).
        message: Message suitable for direct display.
    """

    code: SolveErrorCode
    stat_id: str
    blocking_stats: tuple[str, ...]
    message: str


@dataclass(frozen=True, slots=True)
class SolveResult:
    """Result of a constraint solve.

    Attributes:
        values: New stat vector (the original values on failure).
        changed: Stat ids whose value moved by more than 1e-6.
        error: Present only when the edit could not be applied.
    """

    values: StatVector
    changed: tuple[str, ...] = ()
    error: SolveError | None = None

    @property
    def ok(self) -> bool:
        """Return True when the edit was applied."""

        return self.error is None


@dataclass(frozen=True, slots=True)
class Archetype:
    """A synthetic build stressing one or two stats.

    Attributes:
        id: Stable identifier (e.g. "stress-hp-25").
        name: Human-friendly label.
        kind: Either "single-stat" or "pair-stat".
        stats: Full stat vector (baseline plus deltas, derived recomputed).
        tested_stats: Stat ids explicitly stressed (length 1 or 2).
        points_per_stat: Point tier applied to each tested stat.
        weights: Tested stat id -> weight used.
        deltas: Tested stat id -> numeric delta applied.
        description: Human-readable summary of the allocation.
    """

    id: str
    name: str
    kind: Literal["single-stat", "pair-stat"]
    stats: Mapping[str, float]
    tested_stats: tuple[str, ...]
    points_per_stat: float
    weights: Mapping[str, float]
    deltas: Mapping[str, float]
    description: str = ""

    @property
    def key(self) -> str:
        """Return the efficiency key for this archetype ("hp" or "hp+armor")."""

        return "+".join(self.tested_stats)


@dataclass(frozen=True, slots=True)
class CombatOutcome:
    """Aggregated result of N simulated duels between two stat vectors."""

    win_rate_a: float
    win_rate_b: float
    average_turns: float
    draw_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class MatchupResult:
    """Result of one archetype-vs-archetype matchup."""

    stat_a: str
    stat_b: str
    points_per_stat: float
    win_rate_a: float
    win_rate_b: float
    average_turns: float
    trials: int


@dataclass(frozen=True, slots=True)
class StatEfficiency:
    """Efficiency of a stat across the matchups it took part in.

    Attributes:
        stat_id: Stat (or archetype key) being measured.
        points_per_stat: Tier measured; 0 for cross-tier aggregates.
        efficiency: Mean win rate (0.5 is parity).
        wins: Matchups with win rate > 0.55.
        losses: Matchups with win rate < 0.45.
        draws: Remaining matchups.
        rank: 1 = strongest.
        assessment: Qualitative bucket for the efficiency.
    """

    stat_id: str
    points_per_stat: float
    efficiency: float
    wins: int
    losses: int
    draws: int
    rank: int
    assessment: Assessment


@dataclass(frozen=True, slots=True)
class RoundRobinResults:
    """Results of a single-tier round robin."""

    matchups: tuple[MatchupResult, ...]
    efficiencies: tuple[StatEfficiency, ...]
    tier: float
    trials: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class AggregatedRoundRobinResults:
    """Round-robin results across tiers plus cross-tier aggregation."""

    by_tier: Mapping[float, RoundRobinResults]
    aggregated_efficiencies: tuple[StatEfficiency, ...]
    tiers: tuple[float, ...]
    trials: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class WeightAdvisorOptions:
    """Tuning knobs for the weight advisor.

    Attributes:
        target_min: Lower edge of the acceptable efficiency band.
        target_max: Upper edge of the acceptable efficiency band.
        max_relative_delta: Largest relative weight change per suggestion.
        min_efficiency_deviation: Dead-band around the band center.
    """

    target_min: float = 0.45
    target_max: float = 0.55
    max_relative_delta: float = 0.15
    min_efficiency_deviation: float = 0.02

    @property
    def center(self) -> float:
        """Return the midpoint of the target band."""

        return (self.target_min + self.target_max) / 2

    @property
    def half_band(self) -> float:
        """Return half of the target band width."""

        return (self.target_max - self.target_min) / 2


@dataclass(frozen=True, slots=True)
class StatWeightSuggestion:
    """A proposed weight change for one stat."""

    stat_id: str
    label: str
    current_weight: float
    suggested_weight: float
    delta: float
    delta_percent: float
    efficiency: float
    assessment: Assessment
    reason: str
    safe: bool


@dataclass(frozen=True, slots=True)
class StatBalanceRun:
    """Immutable snapshot of one auto-balance iteration."""

    id: str
    timestamp: datetime
    config_version: str
    weights: Mapping[str, float]
    tiers: tuple[float, ...]
    iterations_per_tier: int
    efficiencies: tuple[StatEfficiency, ...]
    balance_score: float
    overpowered: tuple[str, ...] = ()
    underpowered: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StatBalanceSession:
    """A sequence of runs grouped under one identifier."""

    session_id: str
    start_time: datetime
    end_time: datetime
    runs: tuple[StatBalanceRun, ...] = ()
    strategy: str = "auto"


@dataclass(frozen=True, slots=True)
class AutoBalanceOptions:
    """Options for `run_auto_balance_session`.

    Attributes:
        max_iterations: Hard bound on the number of iterations.
        iterations_per_tier: Trials per matchup handed to the evaluator.
        seed: Base seed; iteration `i` uses `seed + i * 1000`.
        session_id: Optional session id (generated when None).
        tiers: Point tiers exercised each iteration.
        advisor: Weight advisor options.
    """

    max_iterations: int = 5
    iterations_per_tier: int = 1000
    seed: int = 123456
    session_id: str | None = None
    tiers: tuple[float, ...] = (25, 50, 75, 100)
    advisor: WeightAdvisorOptions = field(default_factory=WeightAdvisorOptions)


@dataclass(frozen=True, slots=True)
class AutoBalanceResult:
    """Final configuration plus the recorded session."""

    final_config: BalancerConfig
    session: StatBalanceSession


@dataclass(frozen=True, slots=True)
class MarginalUtility:
    """Value of a single-stat archetype measured against the plain baseline.

    Attributes:
        stat_id: Stat that received the tier's points.
        points_per_stat: Tier measured.
        win_rate: Archetype win rate against the baseline.
        average_turns: Mean duel length reported by the evaluator.
        utility_score: Win rate normalized so 1.0 is parity (0.5).
        utility_per_point: `(win_rate - 0.5) / points_per_stat`.
    """

    stat_id: str
    points_per_stat: float
    win_rate: float
    average_turns: float
    utility_score: float
    utility_per_point: float


@dataclass(frozen=True, slots=True)
class PairSynergy:
    """How much better two stats do together than their singles predict.

    Attributes:
        stat_a: First stat of the pair.
        stat_b: Second stat of the pair.
        points_per_stat: Tier measured.
        combined_win_rate: Pair archetype win rate against its tier baseline.
        expected_win_rate: Mean of the two single-stat win rates.
        synergy_ratio: `combined / expected` (1.0 when expected is 0).
        assessment: Qualitative bucket for the ratio.
    """

    stat_a: str
    stat_b: str
    points_per_stat: float
    combined_win_rate: float
    expected_win_rate: float
    synergy_ratio: float
    assessment: SynergyAssessment


@dataclass(frozen=True, slots=True)
class StatPointCost:
    """Empirical point cost of one unit of a stat.

    Attributes:
        stat_id: Stat measured.
        delta: Raw amount added to the baseline value.
        win_rate_boosted: Boosted build's win rate against the baseline.
        delta_win_rate: `win_rate_boosted - 0.5`.
        sensitivity_per_unit: `delta_win_rate / delta`.
        points_per_unit: Points one unit is worth, where a 5% win-rate gain is
            one point.
    """

    stat_id: str
    delta: float
    win_rate_boosted: float
    delta_win_rate: float
    sensitivity_per_unit: float
    points_per_unit: float


@dataclass(frozen=True, slots=True)
class SingleStatStressResult:
    """Metrics for the baseline and for one stat raised by its budget."""

    stat_id: str
    delta: float
    baseline: Mapping[str, float]
    variant: Mapping[str, float]


@dataclass(frozen=True, slots=True)
class PairStatStressResult:
    """Metrics for the baseline and for two stats raised together."""

    stat_a: str
    stat_b: str
    delta_a: float
    delta_b: float
    baseline: Mapping[str, float]
    variant: Mapping[str, float]


@dataclass(frozen=True, slots=True)
class StatStressReport:
    """Output of a budgeted stress test over every driver stat.

    Attributes:
        budget_per_stat: Budget in hp-equivalent points, converted per stat
            through its weight.
        driver_stat_ids: Stats considered, sorted by id.
        single: One entry per driver stat with a positive delta.
        pairs: One entry per driver pair where at least one delta is positive.
    """

    budget_per_stat: float
    driver_stat_ids: tuple[str, ...]
    single: tuple[SingleStatStressResult, ...] = ()
    pairs: tuple[PairStatStressResult, ...] = ()
