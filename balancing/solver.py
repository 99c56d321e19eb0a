"""Constraint solver keeping derived stats consistent with base stats.

A solve call applies one user edit and returns a new stat vector:

1. reject unknown or locked targets;
2. clamp the requested value to the target's bounds;
3. edits to a derived stat are turned into an edit of one adjustable formula
   input (found by bisection);
4. locked derived stats perturbed by the edit are restored by adjusting one of
   their other inputs;
5. every unlocked derived stat is recomputed in topological order.

Solves are all-or-nothing: any failure returns the original values, an empty
`changed` tuple and a `SolveError`. Nothing is raised for recoverable outcomes.

Bisection treats the formula as a black box and assumes it is monotonic in the
free variable over that variable's `[min, max]` range. Non-monotonic formulas
yield the best midpoint seen, which may not be a true root.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass

from .dto import BalancerConfig, SolveError, SolveErrorCode, SolveResult, StatDefinition, StatVector
from .formula import FormulaError, evaluate_formula_strict, execute_formula
from .graph import DependencyGraph, build_dependency_graph

CHANGE_EPSILON = 1e-6
BISECTION_TOLERANCE = 1e-4
BISECTION_MAX_ITERATIONS = 40


@dataclass(frozen=True, slots=True)
class BisectionResult:
    """Outcome of solving one formula input for a target output.

    Attributes:
        value: Solved input value (clamped to the input's bounds) on success.
        error: SolveError describing why the target could not be reached.
    """

    value: float | None = None
    error: SolveError | None = None


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value to `[low, high]`; NaN clamps to `low`."""

    if math.isnan(value):
        return low
    if value < low:
        return low
    if value > high:
        return high
    return value


def _approx_equal(a: float | None, b: float | None, eps: float = CHANGE_EPSILON) -> bool:
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False
    return abs(a - b) <= eps


def _input_context(
    inputs: tuple[str, ...],
    values: Mapping[str, float],
    stats: Mapping[str, StatDefinition],
) -> dict[str, float]:
    """Bind each formula input to its current value (default when missing)."""

    context: dict[str, float] = {}
    for input_id in inputs:
        if input_id in values:
            context[input_id] = values[input_id]
        else:
            stat = stats.get(input_id)
            context[input_id] = stat.default_value if stat is not None else 0.0
    return context


def _evaluate_strict(stat: StatDefinition, context: Mapping[str, float]) -> float:
    """Evaluate a derived formula, mapping failures to NaN."""

    try:
        return evaluate_formula_strict(stat.formula or "", context)
    except FormulaError:
        return math.nan


def bisect_input(
    config: BalancerConfig,
    graph: DependencyGraph,
    derived_id: str,
    variable_id: str,
    target: float,
    values: Mapping[str, float],
    *,
    source_stat_id: str,
) -> BisectionResult:
    """Solve `derived_id`'s formula for `variable_id` so it outputs `target`.

    All other inputs are frozen at their current values. The search runs over
    the variable's `[min, max]` range for at most 40 iterations and returns the
    lowest-residual midpoint seen, stopping early once the residual is within
    1e-4.

    Args:
        config: Balancer configuration.
        graph: Dependency graph for `config`.
        derived_id: Derived stat whose formula is inverted.
        variable_id: Free input to solve for.
        target: Desired output of the derived formula.
        values: Current stat vector.
        source_stat_id: Stat the user edited (reported on errors).

    Returns:
        BisectionResult carrying either the solved value or an error.
    """

    derived = config.stats.get(derived_id)
    variable = config.stats.get(variable_id)
    if derived is None or not derived.has_formula or variable is None:
        return BisectionResult(
            error=SolveError(
                code=SolveErrorCode.INVALID_CONFIGURATION,
                stat_id=source_stat_id,
                blocking_stats=(derived_id,),
                message="Invalid derived configuration",
            )
        )

    low_bound, high_bound = variable.min, variable.max
    if low_bound == high_bound:
        return BisectionResult(
            error=SolveError(
                code=SolveErrorCode.NO_RANGE,
                stat_id=source_stat_id,
                blocking_stats=(derived_id, variable_id),
                message=f'No range available to solve for "{variable.label}"',
            )
        )

    context = _input_context(graph.inputs_of(derived_id), values, config.stats)

    def evaluate_with(x: float) -> float:
        return _evaluate_strict(derived, {**context, variable_id: x})

    low_value = evaluate_with(low_bound)
    high_value = evaluate_with(high_bound)
    if not math.isfinite(low_value) or not math.isfinite(high_value):
        return BisectionResult(
            error=SolveError(
                code=SolveErrorCode.NON_FINITE_FORMULA,
                stat_id=source_stat_id,
                blocking_stats=(derived_id, variable_id),
                message="Formula produced non-finite values",
            )
        )

    min_out = min(low_value, high_value)
    max_out = max(low_value, high_value)
    if target < min_out - BISECTION_TOLERANCE or target > max_out + BISECTION_TOLERANCE:
        return BisectionResult(
            error=SolveError(
                code=SolveErrorCode.TARGET_UNREACHABLE,
                stat_id=source_stat_id,
                blocking_stats=(derived_id, variable_id),
                message="Target value cannot be achieved within variable bounds",
            )
        )

    increasing = low_value < high_value
    lo, hi = low_bound, high_bound
    best_x = lo
    best_diff = math.inf
    for _ in range(BISECTION_MAX_ITERATIONS):
        mid = (lo + hi) / 2
        mid_value = evaluate_with(mid)
        diff = abs(mid_value - target)
        if diff < best_diff:
            best_diff = diff
            best_x = mid
        if diff <= BISECTION_TOLERANCE:
            break
        if mid_value < target:
            if increasing:
                lo = mid
            else:
                hi = mid
        else:
            if increasing:
                hi = mid
            else:
                lo = mid

    return BisectionResult(value=clamp(best_x, low_bound, high_bound))


def _is_adjustable(stat: StatDefinition | None) -> bool:
    """Return True for inputs the solver may move (unlocked base stats).

    Derived inputs are excluded: the forward pass would overwrite them.
    """

    return stat is not None and not stat.is_locked and not stat.has_formula


def _failure(original: StatVector, error: SolveError) -> SolveResult:
    return SolveResult(values=original, changed=(), error=error)


def solve_config_change(
    config: BalancerConfig,
    current_values: Mapping[str, float],
    changed_stat_id: str,
    requested_value: float,
) -> SolveResult:
    """Apply one stat edit and propagate it through derived stats.

    Args:
        config: Balancer configuration (read-only).
        current_values: Current stat vector; never mutated.
        changed_stat_id: Stat the user edited.
        requested_value: Requested new value (clamped to the stat bounds).

    Returns:
        SolveResult with the new vector and changed ids, or the original values
        plus a SolveError when the edit cannot be applied.
    """

    stats = config.stats
    original: StatVector = dict(current_values)
    stat = stats.get(changed_stat_id)

    if stat is None:
        return _failure(
            original,
            SolveError(
                code=SolveErrorCode.UNKNOWN_STAT,
                stat_id=changed_stat_id,
                blocking_stats=(),
                message=f"Unknown stat: {changed_stat_id}",
            ),
        )

    if stat.is_locked:
        return _failure(
            original,
            SolveError(
                code=SolveErrorCode.STAT_LOCKED,
                stat_id=changed_stat_id,
                blocking_stats=(changed_stat_id,),
                message=f'Stat "{stat.label}" is locked',
            ),
        )

    graph = build_dependency_graph(config)
    values: StatVector = dict(current_values)
    clamped_request = clamp(requested_value, stat.min, stat.max)

    if stat.has_formula:
        inputs = graph.inputs_of(changed_stat_id)
        variable_id = next((input_id for input_id in inputs if _is_adjustable(stats.get(input_id))), None)
        if variable_id is None:
            return _failure(original, _no_adjustable_input(config, changed_stat_id, inputs))

        outcome = bisect_input(
            config,
            graph,
            changed_stat_id,
            variable_id,
            clamped_request,
            values,
            source_stat_id=changed_stat_id,
        )
        if outcome.error is not None or outcome.value is None:
            return _failure(original, outcome.error or _unknown_failure(changed_stat_id))
        values[variable_id] = outcome.value
    else:
        values[changed_stat_id] = clamped_request

    lock_error = _enforce_locked_derived(config, graph, values, original, changed_stat_id)
    if lock_error is not None:
        return _failure(original, lock_error)

    _forward_recompute(config, graph, values, include_locked=False)

    changed = tuple(
        stat_id for stat_id in values if not _approx_equal(values.get(stat_id), original.get(stat_id))
    )
    return SolveResult(values=values, changed=changed)


def _locked_inputs(config: BalancerConfig, inputs: tuple[str, ...]) -> list[str]:
    locked = []
    for input_id in inputs:
        stat = config.stats.get(input_id)
        if stat is not None and stat.is_locked:
            locked.append(input_id)
    return locked


def _no_adjustable_input(config: BalancerConfig, stat_id: str, inputs: tuple[str, ...]) -> SolveError:
    """Explain why a derived stat has no base input to solve for.

    `ALL_INPUTS_LOCKED` is reported only when every input is a locked stat;
    inputs that are themselves derived are never adjustable but never block.
    """

    stat = config.stats[stat_id]
    locked = _locked_inputs(config, inputs)
    if inputs and len(locked) == len(inputs):
        return SolveError(
            code=SolveErrorCode.ALL_INPUTS_LOCKED,
            stat_id=stat_id,
            blocking_stats=(stat_id, *locked),
            message=f'All inputs of derived stat "{stat.label}" are locked',
        )
    return SolveError(
        code=SolveErrorCode.NO_ADJUSTABLE_INPUT,
        stat_id=stat_id,
        blocking_stats=(stat_id, *locked),
        message=f'Derived stat "{stat.label}" has no adjustable base input',
    )


def _unknown_failure(stat_id: str) -> SolveError:
    return SolveError(
        code=SolveErrorCode.INVALID_CONFIGURATION,
        stat_id=stat_id,
        blocking_stats=(stat_id,),
        message="Solver did not produce a value",
    )


def _enforce_locked_derived(
    config: BalancerConfig,
    graph: DependencyGraph,
    values: StatVector,
    original: Mapping[str, float],
    changed_stat_id: str,
) -> SolveError | None:
    """Restore every locked derived stat perturbed by the pending edit.

    Locked derived stats are processed in declaration order; each adjustment
    writes into `values`. Returns the first error encountered.
    """

    for derived_id in graph.derived_stats:
        stat = config.stats[derived_id]
        if not stat.is_locked:
            continue

        inputs = graph.inputs_of(derived_id)
        before = _evaluate_strict(stat, _input_context(inputs, original, config.stats))
        after = _evaluate_strict(stat, _input_context(inputs, values, config.stats))
        if math.isfinite(before) and math.isfinite(after) and _approx_equal(before, after):
            continue

        target = original.get(derived_id, values.get(derived_id, stat.default_value))
        variable_id = next(
            (
                input_id
                for input_id in inputs
                if input_id != changed_stat_id and _is_adjustable(config.stats.get(input_id))
            ),
            None,
        )
        if variable_id is None:
            locked = [input_id for input_id in _locked_inputs(config, inputs) if input_id != derived_id]
            reason = "with current locks" if locked else "without another adjustable base input"
            return SolveError(
                code=SolveErrorCode.CANNOT_SATISFY_LOCK,
                stat_id=changed_stat_id,
                blocking_stats=(derived_id, *locked),
                message=f'Cannot satisfy locked derived stat "{stat.label}" {reason}',
            )

        outcome = bisect_input(
            config,
            graph,
            derived_id,
            variable_id,
            target,
            values,
            source_stat_id=changed_stat_id,
        )
        if outcome.error is not None or outcome.value is None:
            cause = outcome.error.message if outcome.error is not None else "no value"
            return SolveError(
                code=SolveErrorCode.CANNOT_SATISFY_LOCK,
                stat_id=changed_stat_id,
                blocking_stats=outcome.error.blocking_stats if outcome.error is not None else (derived_id,),
                message=f'Cannot satisfy locked derived stat "{stat.label}": {cause}',
            )
        values[variable_id] = outcome.value

    return None


def _forward_recompute(
    config: BalancerConfig,
    graph: DependencyGraph,
    values: StatVector,
    *,
    include_locked: bool,
) -> None:
    """Recompute derived stats in topological order, clamped to their bounds."""

    for derived_id in graph.topo_order:
        stat = config.stats[derived_id]
        if stat.is_locked and not include_locked:
            continue
        context = _input_context(graph.inputs_of(derived_id), values, config.stats)
        raw = execute_formula(stat.formula or "", context)
        values[derived_id] = clamp(raw, stat.min, stat.max)


def recompute_derived(
    config: BalancerConfig,
    values: Mapping[str, float],
    *,
    include_locked: bool = True,
) -> StatVector:
    """Return a copy of `values` with derived stats recomputed from their inputs.

    Args:
        config: Balancer configuration.
        values: Stat vector to start from.
        include_locked: Also recompute locked derived stats.

    Returns:
        New stat vector.
    """

    recomputed: StatVector = dict(values)
    _forward_recompute(config, build_dependency_graph(config), recomputed, include_locked=include_locked)
    return recomputed


def default_values(config: BalancerConfig) -> StatVector:
    """Return every stat at its default with derived stats made consistent."""

    values = {stat_id: stat.default_value for stat_id, stat in config.stats.items()}
    return recompute_derived(config, values, include_locked=True)
