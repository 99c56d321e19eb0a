"""JSON document encoding/decoding for configurations and balance history.

Documents use camelCase keys so exported configurations stay interchangeable
with the editor's own export format. Decoding is forgiving about optional
fields and strict about structure: malformed documents raise `ValueError`.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, cast

from .defaults import DEFAULT_CONFIG
from .dto import (
    BalancerConfig,
    BalancerPreset,
    CardDefinition,
    StatBalanceRun,
    StatBalanceSession,
    StatDefinition,
    StatEfficiency,
)

_ASSESSMENTS = {"OP", "strong", "balanced", "weak", "underpowered"}


def encode_stat(stat: StatDefinition) -> dict[str, Any]:
    """Encode a StatDefinition into a camelCase dictionary."""

    payload: dict[str, Any] = {
        "id": stat.id,
        "label": stat.label,
        "description": stat.description,
        "type": stat.value_type,
        "min": float(stat.min),
        "max": float(stat.max),
        "step": float(stat.step),
        "defaultValue": float(stat.default_value),
        "weight": float(stat.weight),
        "isCore": stat.is_core,
        "isDerived": stat.is_derived,
        "isLocked": stat.is_locked,
        "isHidden": stat.is_hidden,
        "isPenalty": stat.is_penalty,
    }
    if stat.formula is not None:
        payload["formula"] = stat.formula
    if stat.base_stat is not None:
        payload["baseStat"] = stat.base_stat
    if stat.is_detrimental is not None:
        payload["isDetrimental"] = stat.is_detrimental
    return payload


def encode_config(config: BalancerConfig) -> dict[str, Any]:
    """Encode a BalancerConfig into a JSON-serializable document.

    Args:
        config: Configuration to encode.

    Returns:
        Dict payload safe for JSONField storage and export.
    """

    return {
        "version": config.version,
        "stats": {stat_id: encode_stat(stat) for stat_id, stat in config.stats.items()},
        "cards": {
            card_id: {
                "id": card.id,
                "title": card.title,
                "color": card.color,
                "icon": card.icon,
                "statIds": list(card.stat_ids),
                "isCore": card.is_core,
                "order": card.order,
                "isLocked": card.is_locked,
                "isHidden": card.is_hidden,
            }
            for card_id, card in config.cards.items()
        },
        "presets": {
            preset_id: {
                "id": preset.id,
                "name": preset.name,
                "description": preset.description,
                "weights": {stat_id: float(weight) for stat_id, weight in preset.weights.items()},
                "isBuiltIn": preset.is_built_in,
                "createdAt": preset.created_at,
                "modifiedAt": preset.modified_at,
            }
            for preset_id, preset in config.presets.items()
        },
        "activePresetId": config.active_preset_id,
    }


def _require_mapping(value: object, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} must be an object")
    return cast(Mapping[str, Any], value)


def _parse_float(value: object, what: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be a number")
    try:
        parsed = float(cast(Any, value))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be a number") from exc
    if math.isnan(parsed):
        raise ValueError(f"{what} must be a number")
    return parsed


def _parse_optional_bool(value: object) -> bool | None:
    if value is None:
        return None
    return bool(value)


def decode_stat(stat_id: str, raw: object, fallback: StatDefinition | None = None) -> StatDefinition:
    """Decode one stat, filling missing fields from `fallback` when given.

    Raises:
        ValueError: When required numeric fields are missing or invalid, when
            `min > max`, or when a derived stat has no formula.
    """

    data = _require_mapping(raw, f"Stat {stat_id!r}")

    def pick(key: str, default: object) -> object:
        return data[key] if key in data and data[key] is not None else default

    def number(key: str, attr: str, default: float | None = None) -> float:
        base = getattr(fallback, attr) if fallback is not None else default
        value = pick(key, base)
        if value is None:
            raise ValueError(f"Stat {stat_id!r} is missing {key!r}")
        return _parse_float(value, f"Stat {stat_id!r} field {key!r}")

    minimum = number("min", "min")
    maximum = number("max", "max")
    if minimum > maximum:
        raise ValueError(f"Stat {stat_id!r} has min > max")

    is_derived = bool(pick("isDerived", fallback.is_derived if fallback else False))
    formula_raw = pick("formula", fallback.formula if fallback else None)
    formula = str(formula_raw) if formula_raw is not None else None
    if is_derived and not formula:
        raise ValueError(f"Derived stat {stat_id!r} requires a formula")

    value_type = str(pick("type", fallback.value_type if fallback else "number"))
    if value_type not in {"number", "percentage"}:
        value_type = "number"

    return StatDefinition(
        id=stat_id,
        label=str(pick("label", fallback.label if fallback else stat_id)),
        min=minimum,
        max=maximum,
        step=number("step", "step", 1.0),
        default_value=number("defaultValue", "default_value", minimum),
        weight=number("weight", "weight", 1.0),
        is_core=bool(pick("isCore", fallback.is_core if fallback else False)),
        is_derived=is_derived,
        formula=formula,
        is_locked=bool(pick("isLocked", fallback.is_locked if fallback else False)),
        is_hidden=bool(pick("isHidden", fallback.is_hidden if fallback else False)),
        is_penalty=bool(pick("isPenalty", fallback.is_penalty if fallback else False)),
        base_stat=_parse_optional_bool(pick("baseStat", fallback.base_stat if fallback else None)),
        is_detrimental=_parse_optional_bool(pick("isDetrimental", fallback.is_detrimental if fallback else None)),
        description=str(pick("description", fallback.description if fallback else "")),
        value_type=cast(Any, value_type),
    )


def decode_config(payload: object, defaults: BalancerConfig = DEFAULT_CONFIG) -> BalancerConfig:
    """Decode a configuration document.

    Stats known to `defaults` take missing fields from the default definition.
    Missing default stats are not re-added here; see `merge_with_defaults`.

    Args:
        payload: Document previously produced by `encode_config` (or exported
            by the editor).
        defaults: Configuration supplying field-level fallbacks.

    Returns:
        BalancerConfig instance.

    Raises:
        ValueError: When the document structure is invalid.
    """

    data = _require_mapping(payload, "Configuration")
    stats_raw = _require_mapping(data.get("stats") or {}, "stats")
    stats = {
        str(stat_id): decode_stat(str(stat_id), raw, defaults.stats.get(str(stat_id)))
        for stat_id, raw in stats_raw.items()
    }

    cards: dict[str, CardDefinition] = {}
    for card_id, raw in _require_mapping(data.get("cards") or {}, "cards").items():
        card = _require_mapping(raw, f"Card {card_id!r}")
        icon = card.get("icon")
        cards[str(card_id)] = CardDefinition(
            id=str(card.get("id") or card_id),
            title=str(card.get("title") or card_id),
            color=str(card.get("color") or ""),
            stat_ids=tuple(str(x) for x in (card.get("statIds") or ())),
            is_core=bool(card.get("isCore", False)),
            order=int(_parse_float(card.get("order", 0), f"Card {card_id!r} field 'order'")),
            icon=str(icon) if icon is not None else None,
            is_locked=bool(card.get("isLocked", False)),
            is_hidden=bool(card.get("isHidden", False)),
        )

    presets: dict[str, BalancerPreset] = {}
    for preset_id, raw in _require_mapping(data.get("presets") or {}, "presets").items():
        preset = _require_mapping(raw, f"Preset {preset_id!r}")
        weights_raw = _require_mapping(preset.get("weights") or {}, f"Preset {preset_id!r} weights")
        presets[str(preset_id)] = BalancerPreset(
            id=str(preset.get("id") or preset_id),
            name=str(preset.get("name") or preset_id),
            description=str(preset.get("description") or ""),
            weights={
                str(stat_id): _parse_float(weight, f"Preset {preset_id!r} weight {stat_id!r}")
                for stat_id, weight in weights_raw.items()
            },
            is_built_in=bool(preset.get("isBuiltIn", False)),
            created_at=str(preset.get("createdAt") or ""),
            modified_at=str(preset.get("modifiedAt") or ""),
        )

    return BalancerConfig(
        version=str(data.get("version") or defaults.version),
        stats=stats,
        cards=cards,
        presets=presets,
        active_preset_id=str(data.get("activePresetId") or defaults.active_preset_id),
    )


def dumps_config(config: BalancerConfig) -> str:
    """Serialize a configuration to pretty-printed JSON text."""

    return json.dumps(encode_config(config), indent=2)


def loads_config(text: str, defaults: BalancerConfig = DEFAULT_CONFIG) -> BalancerConfig:
    """Parse JSON text into a configuration.

    Raises:
        ValueError: When the text is not valid JSON or not a valid document.
    """

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc.msg}") from exc
    return decode_config(payload, defaults)


def config_content_hash(config: BalancerConfig) -> str:
    """Return the SHA-256 of the canonical JSON encoding of a configuration."""

    canonical = json.dumps(encode_config(config), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def encode_efficiency(entry: StatEfficiency) -> dict[str, Any]:
    """Encode a StatEfficiency."""

    return {
        "statId": entry.stat_id,
        "pointsPerStat": entry.points_per_stat,
        "efficiency": entry.efficiency,
        "wins": entry.wins,
        "losses": entry.losses,
        "draws": entry.draws,
        "rank": entry.rank,
        "assessment": entry.assessment,
    }


def decode_efficiency(raw: object) -> StatEfficiency:
    data = _require_mapping(raw, "Efficiency")
    assessment = str(data.get("assessment") or "balanced")
    if assessment not in _ASSESSMENTS:
        raise ValueError(f"Unknown assessment: {assessment}")
    return StatEfficiency(
        stat_id=str(data.get("statId") or ""),
        points_per_stat=_parse_float(data.get("pointsPerStat", 0), "pointsPerStat"),
        efficiency=_parse_float(data.get("efficiency"), "efficiency"),
        wins=int(data.get("wins") or 0),
        losses=int(data.get("losses") or 0),
        draws=int(data.get("draws") or 0),
        rank=int(data.get("rank") or 0),
        assessment=cast(Any, assessment),
    )


def _parse_datetime(value: object, what: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{what} must be an ISO timestamp") from exc


def encode_run(run: StatBalanceRun) -> dict[str, Any]:
    """Encode a StatBalanceRun into a JSON-serializable dictionary."""

    return {
        "id": run.id,
        "timestamp": run.timestamp.isoformat(),
        "configVersion": run.config_version,
        "weights": dict(run.weights),
        "tiers": list(run.tiers),
        "iterationsPerTier": run.iterations_per_tier,
        "efficiencies": [encode_efficiency(entry) for entry in run.efficiencies],
        "balanceScore": run.balance_score,
        "summary": {
            "overpowered": list(run.overpowered),
            "underpowered": list(run.underpowered),
        },
    }


def decode_run(payload: object) -> StatBalanceRun:
    """Decode a StatBalanceRun.

    Raises:
        ValueError: When required fields are missing or invalid.
    """

    data = _require_mapping(payload, "Run")
    run_id = data.get("id")
    if not run_id:
        raise ValueError("Run is missing 'id'")
    summary = _require_mapping(data.get("summary") or {}, "summary")
    weights = _require_mapping(data.get("weights") or {}, "weights")
    return StatBalanceRun(
        id=str(run_id),
        timestamp=_parse_datetime(data.get("timestamp"), "timestamp"),
        config_version=str(data.get("configVersion") or ""),
        weights={str(k): _parse_float(v, f"weight {k!r}") for k, v in weights.items()},
        tiers=tuple(_parse_float(t, "tier") for t in (data.get("tiers") or ())),
        iterations_per_tier=int(data.get("iterationsPerTier") or 0),
        efficiencies=tuple(decode_efficiency(entry) for entry in (data.get("efficiencies") or ())),
        balance_score=_parse_float(data.get("balanceScore", 0), "balanceScore"),
        overpowered=tuple(str(x) for x in (summary.get("overpowered") or ())),
        underpowered=tuple(str(x) for x in (summary.get("underpowered") or ())),
    )


def encode_session(session: StatBalanceSession) -> dict[str, Any]:
    """Encode a StatBalanceSession (runs included)."""

    return {
        "sessionId": session.session_id,
        "startTime": session.start_time.isoformat(),
        "endTime": session.end_time.isoformat(),
        "strategy": session.strategy,
        "runs": [encode_run(run) for run in session.runs],
    }


def decode_session(payload: object) -> StatBalanceSession:
    """Decode a StatBalanceSession.

    Raises:
        ValueError: When required fields are missing or invalid.
    """

    data = _require_mapping(payload, "Session")
    session_id = data.get("sessionId")
    if not session_id:
        raise ValueError("Session is missing 'sessionId'")
    return StatBalanceSession(
        session_id=str(session_id),
        start_time=_parse_datetime(data.get("startTime"), "startTime"),
        end_time=_parse_datetime(data.get("endTime"), "endTime"),
        runs=tuple(decode_run(run) for run in (data.get("runs") or ())),
        strategy=str(data.get("strategy") or "auto"),
    )
