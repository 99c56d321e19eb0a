"""Tests for single-tier round robins and cross-tier aggregation."""

from __future__ import annotations

import pytest

from balancing.archetypes import eligible_stat_ids, generate_single_stat_archetypes
from balancing.combat import DuelEvaluator
from balancing.defaults import DEFAULT_CONFIG
from balancing.tournament import (
    aggregate_efficiencies,
    assess_efficiency,
    run_all_tiers,
    run_round_robin,
    run_round_robin_tests,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("efficiency", "expected"),
    [
        (0.9, "OP"),
        (0.65, "strong"),
        (0.6, "strong"),
        (0.55, "balanced"),
        (0.5, "balanced"),
        (0.45, "weak"),
        (0.35, "underpowered"),
        (0.0, "underpowered"),
    ],
)
def test_assessment_buckets(efficiency: float, expected: str) -> None:
    """Bucket edges are exclusive on the lower side."""

    assert assess_efficiency(efficiency) == expected


def test_every_pair_is_played_once(constant_evaluator, fixed_clock) -> None:
    """11 archetypes give 55 matchups and 11 efficiencies."""

    results = run_round_robin_tests(DEFAULT_CONFIG, 25, 10, evaluator=constant_evaluator, clock=fixed_clock)

    assert len(results.matchups) == 55
    assert len(results.efficiencies) == 11
    assert results.tier == 25
    assert results.trials == 10
    assert results.timestamp == fixed_clock()
    assert {entry.efficiency for entry in results.efficiencies} == {0.5}
    assert [entry.rank for entry in results.efficiencies] == list(range(1, 12))

    eligible = set(eligible_stat_ids(DEFAULT_CONFIG))
    played = {matchup.stat_a for matchup in results.matchups} | {matchup.stat_b for matchup in results.matchups}
    assert played == eligible
    assert {entry.stat_id for entry in results.efficiencies} == eligible
    assert len({frozenset((matchup.stat_a, matchup.stat_b)) for matchup in results.matchups}) == 55


def test_matchup_seeds_are_offsets_of_base_seed(constant_evaluator) -> None:
    """Matchup k is evaluated with seed + k."""

    run_round_robin_tests(DEFAULT_CONFIG, 25, 5, seed=100, evaluator=constant_evaluator)

    assert constant_evaluator.seeds == list(range(100, 155))


def test_dominant_stat_ranks_first(hp_evaluator) -> None:
    """Only the hp archetype has more hp than baseline, so it wins every matchup."""

    results = run_round_robin_tests(DEFAULT_CONFIG, 25, 10, evaluator=hp_evaluator)
    by_stat = {entry.stat_id: entry for entry in results.efficiencies}

    top = results.efficiencies[0]
    assert top.stat_id == "hp"
    assert top.rank == 1
    assert top.efficiency == 1.0
    assert top.assessment == "OP"
    assert (top.wins, top.losses, top.draws) == (10, 0, 0)

    damage = by_stat["damage"]
    assert damage.efficiency == pytest.approx(0.45)
    assert damage.assessment == "weak"
    assert (damage.wins, damage.losses, damage.draws) == (0, 1, 9)


def test_ties_keep_archetype_order(hp_evaluator) -> None:
    """Equal efficiencies keep archetype order when ranked."""

    results = run_round_robin_tests(DEFAULT_CONFIG, 25, 10, evaluator=hp_evaluator)

    assert [entry.stat_id for entry in results.efficiencies[1:4]] == ["damage", "txc", "evasion"]


def test_mixed_tiers_are_rejected(constant_evaluator) -> None:
    """A single round robin only compares archetypes of one tier."""

    archetypes = generate_single_stat_archetypes(DEFAULT_CONFIG, tiers=(25, 50))

    with pytest.raises(ValueError, match="single tier"):
        run_round_robin(archetypes, 10, constant_evaluator)


def test_non_positive_trials_are_rejected(constant_evaluator) -> None:
    """Trials per matchup must be positive."""

    archetypes = generate_single_stat_archetypes(DEFAULT_CONFIG, tiers=(25,))

    with pytest.raises(ValueError):
        run_round_robin(archetypes, 0, constant_evaluator)


def test_run_all_tiers_seeds_and_aggregates(hp_evaluator, fixed_clock) -> None:
    """Tier n uses seed + n * 10000; counts are summed across tiers."""

    results = run_all_tiers(DEFAULT_CONFIG, 5, seed=7, evaluator=hp_evaluator, clock=fixed_clock)

    assert results.tiers == (25, 50, 75, 100)
    assert set(results.by_tier) == {25, 50, 75, 100}
    assert hp_evaluator.seeds[0] == 7
    assert hp_evaluator.seeds[55] == 10_007
    assert hp_evaluator.seeds[165] == 30_007

    hp = results.aggregated_efficiencies[0]
    assert hp.stat_id == "hp"
    assert hp.points_per_stat == 0
    assert hp.efficiency == 1.0
    assert hp.wins == 40

    armor = next(entry for entry in results.aggregated_efficiencies if entry.stat_id == "armor")
    assert armor.efficiency == pytest.approx(0.45)
    assert (armor.losses, armor.draws) == (4, 36)


def test_missing_tier_counts_as_parity(hp_evaluator) -> None:
    """Stats absent from a tier contribute 0.5 to the cross-tier mean."""

    single = run_round_robin_tests(DEFAULT_CONFIG, 25, 5, evaluator=hp_evaluator)

    aggregated = aggregate_efficiencies({25: single}, (25, 50))

    assert aggregated[0].stat_id == "hp"
    assert aggregated[0].efficiency == pytest.approx(0.75)
    assert aggregated[0].wins == 10


def test_duel_round_robin_is_reproducible(fixed_clock) -> None:
    """A fixed seed reproduces the same tournament with the reference evaluator."""

    evaluator = DuelEvaluator(turn_limit=30)

    first = run_round_robin_tests(DEFAULT_CONFIG, 50, 4, seed=9, evaluator=evaluator, clock=fixed_clock)
    second = run_round_robin_tests(DEFAULT_CONFIG, 50, 4, seed=9, evaluator=evaluator, clock=fixed_clock)

    assert first == second
    for entry in first.efficiencies:
        assert 0.0 <= entry.efficiency <= 1.0
