"""Service-layer functions for the balancer app.

Services coordinate Django persistence (ORM, transactions) with the pure
`balancing` engine: the configuration store keeps one versioned document per
key with a bounded undo history, and the history store is an append-only sink
for auto-balance runs and sessions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction

from balancer.models import (
    BalancerConfigDocument,
    BalancerConfigSnapshot,
    StatBalanceRunRecord,
    StatBalanceSessionRecord,
)
from balancing.codec import (
    config_content_hash,
    decode_config,
    decode_run,
    dumps_config,
    encode_config,
    encode_run,
    loads_config,
)
from balancing.defaults import DEFAULT_CONFIG, merge_with_defaults
from balancing.dto import BalancerConfig, StatBalanceRun, StatBalanceSession

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_KEY = "default"


class ConfigDocumentError(ValueError):
    """Raised when a stored or imported configuration document is invalid."""


class StaleConfigRevisionError(Exception):
    """Raised when saving against a revision that is no longer current."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Configuration {key!r} is at revision {actual}, expected {expected}; reload and retry."
        )


@dataclass(frozen=True, slots=True)
class LoadedConfig:
    """A configuration read from (or written to) the store.

    Attributes:
        config: Decoded configuration, merged with defaults.
        revision: Store revision; pass it back as `expected_revision` on save.
        content_hash: SHA-256 of the canonical document.
    """

    config: BalancerConfig
    revision: int
    content_hash: str


def _history_limit() -> int:
    return int(getattr(settings, "BALANCER_CONFIG_HISTORY_LIMIT", 10))


def _decode_payload(payload: object) -> BalancerConfig:
    try:
        return merge_with_defaults(decode_config(payload))
    except ValueError as exc:
        raise ConfigDocumentError(f"Invalid configuration document: {exc}") from exc


def _get_or_create_document(key: str, *, for_update: bool = False) -> BalancerConfigDocument:
    queryset = BalancerConfigDocument.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    document = queryset.filter(key=key).first()
    if document is not None:
        return document
    logger.info("Creating configuration document %r from defaults", key)
    return BalancerConfigDocument.objects.create(
        key=key,
        payload=encode_config(DEFAULT_CONFIG),
        revision=1,
        content_hash=config_content_hash(DEFAULT_CONFIG),
    )


def load_config(key: str = DEFAULT_CONFIG_KEY) -> LoadedConfig:
    """Load the configuration stored under `key`, creating it from defaults.

    Returns:
        LoadedConfig with the decoded configuration and current revision.

    Raises:
        ConfigDocumentError: When the stored document cannot be decoded.
    """

    document = _get_or_create_document(key)
    return LoadedConfig(
        config=_decode_payload(document.payload),
        revision=document.revision,
        content_hash=document.content_hash,
    )


def _write_document(document: BalancerConfigDocument, config: BalancerConfig) -> LoadedConfig:
    document.payload = encode_config(config)
    document.content_hash = config_content_hash(config)
    document.revision += 1
    document.save()
    return LoadedConfig(config=config, revision=document.revision, content_hash=document.content_hash)


def _prune_snapshots(document: BalancerConfigDocument) -> None:
    keep = list(document.snapshots.order_by("-id").values_list("id", flat=True)[: _history_limit()])
    document.snapshots.exclude(id__in=keep).delete()


def save_config(
    key: str,
    config: BalancerConfig,
    *,
    description: str = "Manual save",
    expected_revision: int | None = None,
) -> LoadedConfig:
    """Persist a configuration, snapshotting the previous document first.

    Args:
        key: Store key.
        config: Configuration to store.
        description: Label recorded on the snapshot of the previous document.
        expected_revision: When given, the save is rejected unless it matches
            the current revision.

    Returns:
        LoadedConfig for the new revision.

    Raises:
        StaleConfigRevisionError: When `expected_revision` is stale.
    """

    with transaction.atomic():
        document = _get_or_create_document(key, for_update=True)
        if expected_revision is not None and expected_revision != document.revision:
            raise StaleConfigRevisionError(key, expected_revision, document.revision)

        BalancerConfigSnapshot.objects.create(
            document=document,
            revision=document.revision,
            payload=document.payload,
            content_hash=document.content_hash,
            description=description[:200],
        )
        loaded = _write_document(document, config)
        _prune_snapshots(document)

    logger.info("Saved configuration %r at revision %d (%s)", key, loaded.revision, description)
    return loaded


def save_config_payload(
    key: str,
    payload: object,
    *,
    description: str = "Admin edit",
    expected_revision: int | None = None,
) -> LoadedConfig:
    """Decode a raw configuration document and save it through `save_config`.

    The stored revision, content hash and snapshot history are maintained
    exactly as for any other save.

    Raises:
        ConfigDocumentError: When the payload is not a valid configuration.
        StaleConfigRevisionError: When `expected_revision` is stale.
    """

    config = _decode_payload(payload)
    return save_config(key, config, description=description, expected_revision=expected_revision)


def list_config_history(key: str = DEFAULT_CONFIG_KEY) -> list[BalancerConfigSnapshot]:
    """Return snapshots for `key`, newest first."""

    return list(BalancerConfigSnapshot.objects.filter(document__key=key).order_by("-id"))


def restore_config(key: str, snapshot_id: int) -> LoadedConfig | None:
    """Save the configuration held by a snapshot as the current document.

    Returns:
        LoadedConfig for the new revision, or None when the snapshot does not
        belong to `key`.
    """

    snapshot = BalancerConfigSnapshot.objects.filter(id=snapshot_id, document__key=key).first()
    if snapshot is None:
        return None
    config = _decode_payload(snapshot.payload)
    return save_config(key, config, description=f"Restored from revision {snapshot.revision}")


def undo_config(key: str = DEFAULT_CONFIG_KEY) -> LoadedConfig | None:
    """Revert to the most recent snapshot and drop it from the history.

    The revision still increases so stale editors are detected.

    Returns:
        LoadedConfig for the reverted document, or None when there is no history.
    """

    with transaction.atomic():
        document = _get_or_create_document(key, for_update=True)
        snapshot = document.snapshots.order_by("-id").first()
        if snapshot is None:
            return None
        config = _decode_payload(snapshot.payload)
        snapshot.delete()
        loaded = _write_document(document, config)

    logger.info("Reverted configuration %r to revision %d", key, snapshot.revision)
    return loaded


def reset_config(key: str = DEFAULT_CONFIG_KEY) -> LoadedConfig:
    """Replace the stored configuration with the built-in defaults."""

    return save_config(key, DEFAULT_CONFIG, description="Reset to defaults")


def export_config(key: str = DEFAULT_CONFIG_KEY) -> str:
    """Return the stored configuration as pretty-printed JSON."""

    return dumps_config(load_config(key).config)


def import_config(key: str, text: str, *, expected_revision: int | None = None) -> LoadedConfig:
    """Decode a JSON document, merge it with defaults and save it.

    Raises:
        ConfigDocumentError: When the text is not a valid configuration.
        StaleConfigRevisionError: When `expected_revision` is stale.
    """

    try:
        config = merge_with_defaults(loads_config(text))
    except ValueError as exc:
        raise ConfigDocumentError(f"Invalid configuration document: {exc}") from exc
    return save_config(key, config, description="Imported configuration", expected_revision=expected_revision)


def _max_runs() -> int:
    return int(getattr(settings, "BALANCER_HISTORY_MAX_RUNS", 200))


def _max_sessions() -> int:
    return int(getattr(settings, "BALANCER_HISTORY_MAX_SESSIONS", 100))


def _drop_empty_sessions(session_ids: set[int]) -> None:
    if session_ids:
        StatBalanceSessionRecord.objects.filter(id__in=session_ids, runs__isnull=True).delete()


def _prune_history() -> None:
    """Trim runs and sessions to the configured caps, oldest first."""

    keep_runs = list(
        StatBalanceRunRecord.objects.order_by("-timestamp", "-id").values_list("id", flat=True)[: _max_runs()]
    )
    stale_runs = StatBalanceRunRecord.objects.exclude(id__in=keep_runs)
    affected = {session_id for session_id in stale_runs.values_list("session_id", flat=True) if session_id}
    if stale_runs.exists():
        logger.info("Pruning %d balance run(s) beyond the history cap", stale_runs.count())
        stale_runs.delete()
    _drop_empty_sessions(affected)

    keep_sessions = list(
        StatBalanceSessionRecord.objects.order_by("-id").values_list("id", flat=True)[: _max_sessions()]
    )
    StatBalanceSessionRecord.objects.exclude(id__in=keep_sessions).delete()


def _create_run_record(
    run: StatBalanceRun,
    *,
    session: StatBalanceSessionRecord | None = None,
    position: int = 0,
) -> StatBalanceRunRecord:
    return StatBalanceRunRecord.objects.create(
        run_id=run.id,
        session=session,
        position=position,
        timestamp=run.timestamp,
        balance_score=run.balance_score,
        payload=encode_run(run),
    )


def add_run(run: StatBalanceRun) -> StatBalanceRunRecord:
    """Append a run to history; re-adding an existing run id is a no-op.

    Returns:
        The stored run record.
    """

    with transaction.atomic():
        existing = StatBalanceRunRecord.objects.filter(run_id=run.id).first()
        if existing is not None:
            return existing
        record = _create_run_record(run)
        _prune_history()
    return record


def add_session(session: StatBalanceSession, *, config_key: str = "") -> StatBalanceSessionRecord:
    """Insert or update a session and append its runs.

    Runs already stored keep their payload; they are only attached to the
    session.

    Args:
        session: Session to record.
        config_key: Store key of the configuration the session balanced.

    Returns:
        The stored session record.
    """

    with transaction.atomic():
        record = StatBalanceSessionRecord.objects.filter(session_id=session.session_id).first()
        if record is None:
            record = StatBalanceSessionRecord(session_id=session.session_id)
        record.strategy = session.strategy
        record.start_time = session.start_time
        record.end_time = session.end_time
        record.config_key = config_key
        record.save()

        for position, run in enumerate(session.runs):
            existing = StatBalanceRunRecord.objects.filter(run_id=run.id)
            if existing.exists():
                existing.update(session=record, position=position)
            else:
                _create_run_record(run, session=record, position=position)

        _prune_history()

    logger.info("Recorded balance session %s with %d run(s)", session.session_id, len(session.runs))
    return record


def list_runs(limit: int | None = None) -> list[StatBalanceRun]:
    """Return stored runs, newest first."""

    queryset = StatBalanceRunRecord.objects.order_by("-timestamp", "-id")
    if limit is not None:
        queryset = queryset[:limit]
    return [decode_run(record.payload) for record in queryset]


def _session_from_record(record: StatBalanceSessionRecord) -> StatBalanceSession:
    runs = record.runs.order_by("position", "id")
    return StatBalanceSession(
        session_id=record.session_id,
        start_time=record.start_time,
        end_time=record.end_time,
        runs=tuple(decode_run(run.payload) for run in runs),
        strategy=record.strategy,
    )


def list_sessions() -> list[StatBalanceSession]:
    """Return stored sessions (runs included), newest first."""

    records = StatBalanceSessionRecord.objects.order_by("-id")
    return [_session_from_record(record) for record in records]


def get_session(session_id: str) -> StatBalanceSession | None:
    """Return one session by id, or None."""

    record = StatBalanceSessionRecord.objects.filter(session_id=session_id).first()
    if record is None:
        return None
    return _session_from_record(record)


def delete_run(run_id: str) -> bool:
    """Delete a run; a session left without runs is deleted too.

    Returns:
        True when a run was deleted.
    """

    with transaction.atomic():
        record = StatBalanceRunRecord.objects.filter(run_id=run_id).first()
        if record is None:
            return False
        session_id = record.session_id
        record.delete()
        if session_id is not None:
            _drop_empty_sessions({session_id})
    return True


def delete_session(session_id: str) -> bool:
    """Delete a session and all of its runs.

    Returns:
        True when a session was deleted.
    """

    deleted, _ = StatBalanceSessionRecord.objects.filter(session_id=session_id).delete()
    return deleted > 0


def clear_history() -> None:
    """Delete every stored run and session."""

    with transaction.atomic():
        StatBalanceRunRecord.objects.all().delete()
        StatBalanceSessionRecord.objects.all().delete()
