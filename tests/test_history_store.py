"""Integration tests for the balance run and session history store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from django.core.exceptions import ValidationError

from balancer.models import StatBalanceRunRecord, StatBalanceSessionRecord
from balancer.services import (
    add_run,
    add_session,
    clear_history,
    delete_run,
    delete_session,
    get_session,
    list_runs,
    list_sessions,
)
from balancing.dto import StatBalanceRun, StatBalanceSession, StatEfficiency

pytestmark = pytest.mark.integration

BASE_TIME = datetime(2025, 1, 1, tzinfo=UTC)


def _run(run_id: str, minutes: int = 0, score: float = 0.1) -> StatBalanceRun:
    return StatBalanceRun(
        id=run_id,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        config_version="1.0.0",
        weights={"hp": 1.0},
        tiers=(25.0,),
        iterations_per_tier=10,
        efficiencies=(StatEfficiency("hp", 0, 0.6, 5, 1, 4, 1, "strong"),),
        balance_score=score,
        overpowered=("hp",),
    )


def _session(session_id: str, *runs: StatBalanceRun) -> StatBalanceSession:
    return StatBalanceSession(
        session_id=session_id,
        start_time=runs[0].timestamp,
        end_time=runs[-1].timestamp,
        runs=runs,
    )


@pytest.mark.django_db
def test_runs_are_listed_newest_first() -> None:
    """Runs come back decoded, newest first, optionally limited."""

    add_run(_run("a", minutes=1))
    add_run(_run("b", minutes=3))
    add_run(_run("c", minutes=2))

    assert [run.id for run in list_runs()] == ["b", "c", "a"]
    assert [run.id for run in list_runs(limit=1)] == ["b"]
    assert list_runs()[0] == _run("b", minutes=3)


@pytest.mark.django_db
def test_add_run_is_idempotent() -> None:
    """Re-adding a run id keeps the original record."""

    first = add_run(_run("a", score=0.1))
    second = add_run(_run("a", score=0.9))

    assert first.pk == second.pk
    assert StatBalanceRunRecord.objects.count() == 1
    assert list_runs()[0].balance_score == 0.1


@pytest.mark.django_db
def test_session_round_trip_keeps_run_order() -> None:
    """Sessions store their runs in iteration order."""

    session = _session("s1", _run("s1-iter-1", 0), _run("s1-iter-2", 1), _run("s1-iter-3", 2))

    add_session(session, config_key="default")

    assert get_session("s1") == session
    assert StatBalanceSessionRecord.objects.get().config_key == "default"
    assert get_session("missing") is None


@pytest.mark.django_db
def test_add_session_upserts_and_attaches_existing_runs() -> None:
    """A session re-added with more runs is updated in place."""

    first = _run("s1-iter-1", 0)
    add_run(first)
    add_session(_session("s1", first))
    add_session(_session("s1", first, _run("s1-iter-2", 5)))

    stored = get_session("s1")
    assert stored is not None
    assert [run.id for run in stored.runs] == ["s1-iter-1", "s1-iter-2"]
    assert stored.end_time == BASE_TIME + timedelta(minutes=5)
    assert StatBalanceSessionRecord.objects.count() == 1
    assert StatBalanceRunRecord.objects.count() == 2


@pytest.mark.django_db
def test_sessions_are_listed_newest_first() -> None:
    """Later sessions come first."""

    add_session(_session("old", _run("old-1", 0)))
    add_session(_session("new", _run("new-1", 1)))

    assert [session.session_id for session in list_sessions()] == ["new", "old"]


@pytest.mark.django_db
def test_deleting_last_run_drops_its_session() -> None:
    """Sessions never outlive their runs."""

    add_session(_session("s1", _run("s1-iter-1", 0), _run("s1-iter-2", 1)))

    assert delete_run("s1-iter-1")
    assert get_session("s1") is not None
    assert delete_run("s1-iter-2")
    assert get_session("s1") is None
    assert not delete_run("s1-iter-2")


@pytest.mark.django_db
def test_delete_session_removes_its_runs() -> None:
    """Deleting a session cascades to its runs only."""

    add_session(_session("s1", _run("s1-iter-1", 0)))
    add_run(_run("loose", 1))

    assert delete_session("s1")
    assert not delete_session("s1")
    assert [run.id for run in list_runs()] == ["loose"]


@pytest.mark.django_db
def test_clear_history() -> None:
    """Clearing removes every run and session."""

    add_session(_session("s1", _run("s1-iter-1", 0)))
    add_run(_run("loose", 1))

    clear_history()

    assert list_runs() == []
    assert list_sessions() == []


@pytest.mark.django_db
def test_run_cap_prunes_oldest_runs(settings) -> None:
    """Only the newest runs are kept; sessions emptied by pruning go too."""

    settings.BALANCER_HISTORY_MAX_RUNS = 3
    add_session(_session("early", _run("early-1", 0)))
    for minute in range(1, 4):
        add_run(_run(f"r{minute}", minute))

    assert [run.id for run in list_runs()] == ["r3", "r2", "r1"]
    assert get_session("early") is None


@pytest.mark.django_db
def test_session_cap_prunes_oldest_sessions(settings) -> None:
    """Only the newest sessions are kept."""

    settings.BALANCER_HISTORY_MAX_SESSIONS = 2
    for index in range(3):
        add_session(_session(f"s{index}", _run(f"s{index}-iter-1", index)))

    assert [session.session_id for session in list_sessions()] == ["s2", "s1"]
    assert {run.id for run in list_runs()} == {"s1-iter-1", "s2-iter-1"}


@pytest.mark.django_db
def test_run_records_are_immutable() -> None:
    """Stored runs cannot be edited."""

    record = add_run(_run("a"))

    record.balance_score = 0.5
    with pytest.raises(ValidationError):
        record.save()
