"""Tests for the iterative auto-balance loop."""

from __future__ import annotations

import pytest

from balancing.autobalance import compute_balance_score, run_auto_balance_session
from balancing.defaults import DEFAULT_CONFIG
from balancing.dto import AutoBalanceOptions, StatEfficiency

pytestmark = pytest.mark.unit


def _options(**overrides) -> AutoBalanceOptions:
    values = {"iterations_per_tier": 2, "tiers": (25,), "session_id": "s", "seed": 5}
    values.update(overrides)
    return AutoBalanceOptions(**values)


def test_balanced_config_stops_after_one_run(constant_evaluator, fixed_clock) -> None:
    """No nonzero suggestion ends the loop after the first recorded run."""

    result = run_auto_balance_session(DEFAULT_CONFIG, constant_evaluator, _options(), clock=fixed_clock)

    runs = result.session.runs
    assert len(runs) == 1
    assert runs[0].id == "s-iter-1"
    assert runs[0].balance_score == 0
    assert runs[0].overpowered == ()
    assert runs[0].underpowered == ()
    assert result.final_config == DEFAULT_CONFIG


def test_dominant_stat_is_reduced_every_iteration(hp_evaluator, fixed_clock) -> None:
    """hp keeps winning, so its weight drops 15% per iteration up to the bound."""

    result = run_auto_balance_session(
        DEFAULT_CONFIG, hp_evaluator, _options(max_iterations=3), clock=fixed_clock
    )

    runs = result.session.runs
    assert [run.id for run in runs] == ["s-iter-1", "s-iter-2", "s-iter-3"]
    assert [run.weights["hp"] for run in runs] == pytest.approx([1.0, 0.85, 0.85**2])
    assert result.final_config.stats["hp"].weight == pytest.approx(0.85**3)
    assert all(run.overpowered[0] == "hp" for run in runs)
    assert result.final_config.stats["damage"].weight == DEFAULT_CONFIG.stats["damage"].weight
    assert DEFAULT_CONFIG.stats["hp"].weight == 1.0


def test_run_snapshot_covers_eligible_weights_only(hp_evaluator, fixed_clock) -> None:
    """Runs snapshot weights for tournament-eligible stats."""

    result = run_auto_balance_session(DEFAULT_CONFIG, hp_evaluator, _options(max_iterations=1), clock=fixed_clock)

    run = result.session.runs[0]
    assert "htk" not in run.weights
    assert "baseHitChance" not in run.weights
    assert len(run.weights) == 11
    assert run.tiers == (25,)
    assert run.iterations_per_tier == 2
    assert run.config_version == DEFAULT_CONFIG.version


def test_iteration_seeds_are_strided(hp_evaluator, fixed_clock) -> None:
    """Iteration i runs its tournaments from seed + i * 1000."""

    run_auto_balance_session(DEFAULT_CONFIG, hp_evaluator, _options(max_iterations=2), clock=fixed_clock)

    assert hp_evaluator.seeds[0] == 5
    assert hp_evaluator.seeds[55] == 1005


def test_session_timestamps_follow_runs(hp_evaluator, ticking_clock) -> None:
    """Session bounds are the first and last run timestamps."""

    result = run_auto_balance_session(
        DEFAULT_CONFIG, hp_evaluator, _options(max_iterations=2, session_id=None), clock=ticking_clock
    )

    session = result.session
    assert session.session_id.startswith("auto-")
    assert session.start_time == session.runs[0].timestamp
    assert session.end_time == session.runs[-1].timestamp
    assert session.end_time > session.start_time
    assert session.strategy == "auto"


def test_zero_iterations_records_empty_session(constant_evaluator, fixed_clock) -> None:
    """A zero bound returns the initial config and no runs."""

    result = run_auto_balance_session(DEFAULT_CONFIG, constant_evaluator, _options(max_iterations=0), clock=fixed_clock)

    assert result.session.runs == ()
    assert result.session.start_time == result.session.end_time == fixed_clock()
    assert result.final_config == DEFAULT_CONFIG


def test_negative_iterations_raise(constant_evaluator) -> None:
    """A negative bound is a caller error."""

    with pytest.raises(ValueError):
        run_auto_balance_session(DEFAULT_CONFIG, constant_evaluator, _options(max_iterations=-1))


def test_evaluator_errors_propagate() -> None:
    """Evaluator failures abort the session."""

    class Exploding:
        def evaluate(self, stats_a, stats_b, trials, seed=None):
            raise RuntimeError("simulator crashed")

    with pytest.raises(RuntimeError, match="simulator crashed"):
        run_auto_balance_session(DEFAULT_CONFIG, Exploding(), _options())


def test_balance_score_is_mean_distance_from_parity() -> None:
    """Score averages |efficiency - 0.5|."""

    def entry(value: float) -> StatEfficiency:
        return StatEfficiency("x", 0, value, 0, 0, 0, 1, "balanced")

    assert compute_balance_score([entry(0.7), entry(0.4)]) == pytest.approx(0.15)
    assert compute_balance_score([]) == 0.0
