"""Built-in balancer configuration.

`DEFAULT_CONFIG` is the document every configuration store starts from and the
fallback `merge_with_defaults` re-hydrates missing entries from.
"""

from __future__ import annotations

from .dto import BalancerConfig, BalancerPreset, CardDefinition, StatDefinition

CONFIG_VERSION = "1.0.0"
DEFAULT_PRESET_ID = "default"
_BUILT_IN_TIMESTAMP = "2024-01-01T00:00:00+00:00"


def _base(
    stat_id: str,
    label: str,
    minimum: float,
    maximum: float,
    default: float,
    weight: float,
    *,
    step: float = 1,
    core: bool = False,
    hidden: bool = False,
    penalty: bool = False,
    percentage: bool = False,
    description: str = "",
) -> StatDefinition:
    return StatDefinition(
        id=stat_id,
        label=label,
        min=minimum,
        max=maximum,
        step=step,
        default_value=default,
        weight=weight,
        is_core=core,
        is_hidden=hidden,
        is_penalty=penalty,
        description=description,
        value_type="percentage" if percentage else "number",
    )


def _derived(
    stat_id: str,
    label: str,
    formula: str,
    maximum: float,
    default: float,
    *,
    core: bool = False,
    percentage: bool = False,
    description: str = "",
) -> StatDefinition:
    return StatDefinition(
        id=stat_id,
        label=label,
        min=0,
        max=maximum,
        step=0.01,
        default_value=default,
        weight=0,
        is_core=core,
        is_derived=True,
        formula=formula,
        description=description,
        value_type="percentage" if percentage else "number",
    )


_STATS: tuple[StatDefinition, ...] = (
    _base("hp", "Health", 1, 1000, 150, 1.0, core=True, description="Hit points."),
    _base("damage", "Damage", 1, 200, 25, 0.2, core=True, description="Raw damage per hit."),
    _base("txc", "Hit Bonus", 0, 100, 25, 0.5, core=True, description="Added to base hit chance."),
    _base("evasion", "Evasion", 0, 100, 0, 0.4, core=True, description="Subtracted from the attacker's hit chance."),
    _base("baseHitChance", "Base Hit Chance", 0, 100, 50, 0, hidden=True, percentage=True),
    _base("critChance", "Crit Chance", 0, 100, 5, 0.3, percentage=True),
    _base("critMult", "Crit Multiplier", 1, 10, 2, 0.01, step=0.1),
    _base("critTxCBonus", "Crit Hit Bonus", 0, 100, 20, 0, hidden=True),
    _base("armor", "Armor", 0, 1000, 0, 1.0, description="Mitigates armor / (armor + 50) of each hit."),
    _base("ward", "Ward", 0, 200, 0, 0.1, description="Flat damage reduction applied after armor."),
    _base("resistance", "Resistance", 0, 100, 0, 0, hidden=True, percentage=True),
    _base("armorPen", "Armor Penetration", 0, 1000, 0, 0.5, description="Flat armor ignored by this attacker."),
    _base("penPercent", "Resistance Penetration", 0, 100, 0, 0, hidden=True, percentage=True),
    _base("lifesteal", "Lifesteal", 0, 100, 0, 0.2, percentage=True, description="Share of damage dealt healed back."),
    _base("regen", "Regeneration", 0, 100, 0, 0.05, description="Health restored at the end of each round."),
    _base("failChance", "Fail Chance", 0, 100, 5, 0, hidden=True, penalty=True, percentage=True),
    _base("failMult", "Fail Multiplier", 0, 1, 0, 0, step=0.05, hidden=True, penalty=True),
    _base("failTxCMalus", "Fail Hit Malus", 0, 100, 20, 0, hidden=True, penalty=True),
    _derived("htk", "Hits to Kill", "hp / damage", 1000, 6, core=True),
    _derived(
        "hitChance",
        "Hit Chance",
        "max(0, min(100, baseHitChance + txc - evasion))",
        100,
        75,
        core=True,
        percentage=True,
    ),
    _derived("attacksPerKo", "Attacks per KO", "htk / (hitChance / 100)", 100000, 8),
    _derived(
        "effectiveDamage",
        "Effective Damage",
        "max(0, damage * (1 - armor / (armor + 50)) - ward)",
        1000,
        25,
    ),
    _derived(
        "edpt",
        "Damage per Turn",
        "effectiveDamage * (hitChance / 100) * (1 + critChance / 100 * (critMult - 1))",
        10000,
        19.6875,
    ),
    _derived("ttk", "Turns to Kill", "hp / max(edpt, 0.1)", 10000, 7.62),
)

_CARDS: tuple[CardDefinition, ...] = (
    CardDefinition("core", "Core", "#3b82f6", ("hp", "damage", "txc", "evasion", "htk", "hitChance"), True, 0),
    CardDefinition("critical", "Critical", "#f59e0b", ("critChance", "critMult", "critTxCBonus"), False, 1),
    CardDefinition("defense", "Defense", "#10b981", ("armor", "ward", "resistance"), False, 2),
    CardDefinition("offense", "Offense", "#ef4444", ("armorPen", "penPercent"), False, 3),
    CardDefinition("sustain", "Sustain", "#8b5cf6", ("lifesteal", "regen"), False, 4),
    CardDefinition(
        "penalties",
        "Penalties",
        "#6b7280",
        ("failChance", "failMult", "failTxCMalus"),
        False,
        5,
        is_hidden=True,
    ),
    CardDefinition("metrics", "Combat Metrics", "#0ea5e9", ("attacksPerKo", "effectiveDamage", "edpt", "ttk"), False, 6),
)

DEFAULT_CONFIG = BalancerConfig(
    version=CONFIG_VERSION,
    stats={stat.id: stat for stat in _STATS},
    cards={card.id: card for card in _CARDS},
    presets={
        DEFAULT_PRESET_ID: BalancerPreset(
            id=DEFAULT_PRESET_ID,
            name="Default",
            description="Built-in weights.",
            weights={stat.id: stat.weight for stat in _STATS if not stat.is_derived and not stat.is_hidden},
            is_built_in=True,
            created_at=_BUILT_IN_TIMESTAMP,
            modified_at=_BUILT_IN_TIMESTAMP,
        )
    },
    active_preset_id=DEFAULT_PRESET_ID,
)


def merge_with_defaults(config: BalancerConfig, defaults: BalancerConfig = DEFAULT_CONFIG) -> BalancerConfig:
    """Return `config` with missing default stats, cards and presets re-added.

    Entries already present in `config` win; default entries it lacks are
    appended after them. Field-level gaps inside a single stat are filled by
    the codec when a document is decoded.

    Args:
        config: Configuration to complete.
        defaults: Configuration providing the fallback entries.

    Returns:
        A new BalancerConfig.
    """

    stats = dict(config.stats)
    for stat_id, stat in defaults.stats.items():
        stats.setdefault(stat_id, stat)

    cards = dict(config.cards)
    for card_id, card in defaults.cards.items():
        cards.setdefault(card_id, card)

    presets = dict(config.presets)
    for preset_id, preset in defaults.presets.items():
        presets.setdefault(preset_id, preset)

    active = config.active_preset_id if config.active_preset_id in presets else defaults.active_preset_id
    return BalancerConfig(
        version=config.version or defaults.version,
        stats=stats,
        cards=cards,
        presets=presets,
        active_preset_id=active,
    )
