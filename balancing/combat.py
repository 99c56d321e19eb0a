"""Combat evaluation contract plus a reference seeded duel simulator.

Tournaments only depend on the `CombatEvaluator` protocol; production callers
may inject their own simulator. `DuelEvaluator` is a small deterministic Monte
Carlo duel used by management commands and tests.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from random import Random
from typing import Protocol

from .dto import CombatOutcome

ARMOR_CONSTANT = 50.0


class CombatEvaluator(Protocol):
    """Simulates `trials` duels between two stat vectors.

    Implementations must be deterministic for a fixed seed.
    """

    def evaluate(
        self,
        stats_a: Mapping[str, float],
        stats_b: Mapping[str, float],
        trials: int,
        seed: int | None = None,
    ) -> CombatOutcome: ...


@dataclass(slots=True)
class _Fighter:
    stats: Mapping[str, float]
    max_hp: float
    hp: float

    @classmethod
    def from_stats(cls, stats: Mapping[str, float]) -> _Fighter:
        max_hp = max(1.0, float(stats.get("hp", 1.0)))
        return cls(stats=stats, max_hp=max_hp, hp=max_hp)

    def stat(self, stat_id: str, default: float = 0.0) -> float:
        return float(self.stats.get(stat_id, default))

    def heal(self, amount: float) -> None:
        if amount > 0:
            self.hp = min(self.max_hp, self.hp + amount)

    @property
    def alive(self) -> bool:
        return self.hp > 0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def hit_chance(attacker: Mapping[str, float], defender: Mapping[str, float]) -> float:
    """Return the attacker's hit chance in percent, clamped to [0, 100]."""

    raw = attacker.get("baseHitChance", 0.0) + attacker.get("txc", 0.0) - defender.get("evasion", 0.0)
    return _clamp(raw, 0.0, 100.0)


def mitigate(damage: float, attacker: Mapping[str, float], defender: Mapping[str, float]) -> float:
    """Apply armor, resistance and ward to a raw hit.

    Armor mitigates `armor / (armor + 50)` after flat armor penetration;
    resistance is reduced by percent penetration; ward is subtracted last.
    The result is never negative.
    """

    armor = max(0.0, defender.get("armor", 0.0) - attacker.get("armorPen", 0.0))
    damage *= 1.0 - armor / (armor + ARMOR_CONSTANT)
    resistance = defender.get("resistance", 0.0) * (1.0 - attacker.get("penPercent", 0.0) / 100.0)
    damage *= 1.0 - _clamp(resistance, 0.0, 100.0) / 100.0
    return max(0.0, damage - defender.get("ward", 0.0))


@dataclass(frozen=True, slots=True)
class DuelEvaluator:
    """Turn-based 1v1 duel simulator.

    Each round both fighters attack once (the opener alternates per trial so
    neither side keeps the first-strike advantage), then both regenerate. A
    duel still running after `turn_limit` rounds is a draw.

    Args:
        turn_limit: Maximum rounds per duel.
        default_seed: Seed used when `evaluate` receives none.
    """

    turn_limit: int = 100
    default_seed: int = 0

    def evaluate(
        self,
        stats_a: Mapping[str, float],
        stats_b: Mapping[str, float],
        trials: int,
        seed: int | None = None,
    ) -> CombatOutcome:
        """Simulate `trials` duels and return aggregated win rates.

        Raises:
            ValueError: When `trials` is not positive.
        """

        if trials <= 0:
            raise ValueError("trials must be > 0")

        rng = Random(self.default_seed if seed is None else seed)
        wins_a = 0
        wins_b = 0
        total_turns = 0
        for trial in range(trials):
            winner, turns = self._duel(stats_a, stats_b, a_first=trial % 2 == 0, rng=rng)
            total_turns += turns
            if winner == "a":
                wins_a += 1
            elif winner == "b":
                wins_b += 1

        draws = trials - wins_a - wins_b
        return CombatOutcome(
            win_rate_a=wins_a / trials,
            win_rate_b=wins_b / trials,
            average_turns=total_turns / trials,
            draw_rate=draws / trials,
        )

    def _duel(
        self,
        stats_a: Mapping[str, float],
        stats_b: Mapping[str, float],
        *,
        a_first: bool,
        rng: Random,
    ) -> tuple[str | None, int]:
        fighter_a = _Fighter.from_stats(stats_a)
        fighter_b = _Fighter.from_stats(stats_b)
        order = (fighter_a, fighter_b) if a_first else (fighter_b, fighter_a)

        for turn in range(1, self.turn_limit + 1):
            for attacker, defender in (order, order[::-1]):
                _strike(attacker, defender, rng)
                if not defender.alive:
                    return ("a" if defender is fighter_b else "b"), turn
            for fighter in order:
                fighter.heal(fighter.stat("regen"))

        return None, self.turn_limit


def _strike(attacker: _Fighter, defender: _Fighter, rng: Random) -> None:
    """Resolve one attack: hit roll, fail/crit roll, mitigation, lifesteal."""

    if rng.random() * 100.0 >= hit_chance(attacker.stats, defender.stats):
        return

    damage = attacker.stat("damage")
    if rng.random() * 100.0 < attacker.stat("failChance"):
        damage *= attacker.stat("failMult")
    elif rng.random() * 100.0 < attacker.stat("critChance"):
        damage *= attacker.stat("critMult", 1.0)

    dealt = min(defender.hp, mitigate(damage, attacker.stats, defender.stats))
    defender.hp -= dealt
    attacker.heal(dealt * attacker.stat("lifesteal") / 100.0)
