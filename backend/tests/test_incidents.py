"""Tests for incident reconciliation and the sweep."""
from contextlib import nullcontext

import pytest

from pulsewatch.models import CheckResult, Incident
from pulsewatch.services.checker import ErrorKind
from pulsewatch.services.incidents import IncidentManager, incident_title
from pulsewatch.services.outcome import CheckKind, CheckOutcome
from pulsewatch.services.store import ResultStore
from pulsewatch.utils.clock import utcnow

from .fakes import create_monitor, refused_result, up_result


def _outcome(monitor, is_up: bool, kind: CheckKind = CheckKind.UPTIME, **fields) -> CheckOutcome:
    values = dict(
        monitor_id=monitor.id,
        owner_id=monitor.owner_id,
        monitor_name=monitor.display_name,
        url=monitor.url,
        check_kind=kind,
        is_up=is_up,
        prior_status="unknown",
        checked_at=utcnow(),
        probe=up_result() if is_up else refused_result(),
    )
    values.update(fields)
    return CheckOutcome(**values)


async def _open_incident(store: ResultStore, monitor) -> Incident:
    now = utcnow()
    return await store.create_incident(Incident(
        monitor_id=monitor.id,
        owner_id=monitor.owner_id,
        title=f"Monitor Down: {monitor.name}",
        severity="high",
        status="open",
        start_time=now,
    ))


def test_incident_title() -> None:
    assert incident_title("API", CheckKind.UPTIME) == "Monitor Down: API"
    assert incident_title("API", CheckKind.BROWSER) == "Browser Check Failed: API"


@pytest.mark.asyncio
async def test_repeated_down_keeps_single_open_incident(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor()

    first = await manager.reconcile(_outcome(monitor, False))
    second = await manager.reconcile(_outcome(monitor, False))

    assert first.action == "opened"
    assert second is None
    open_incidents = await store.find_open_incidents(monitor.id)
    assert len(open_incidents) == 1
    assert open_incidents[0].description.startswith("Monitor is DOWN. Last checked at ")
    assert open_incidents[0].description.endswith("Error: [Errno 111] Connection refused")


@pytest.mark.asyncio
async def test_down_after_resolve_opens_new_incident(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor()

    opened = await manager.reconcile(_outcome(monitor, False))
    resolved = await manager.reconcile(_outcome(monitor, True))
    reopened = await manager.reconcile(_outcome(monitor, False))

    assert resolved.action == "resolved"
    assert resolved.incident_ids == opened.incident_ids
    assert reopened.action == "opened"
    assert reopened.incident_ids != opened.incident_ids

    incidents = await store.list_incidents(monitor_id=monitor.id)
    assert sorted(i.status for i in incidents) == ["open", "resolved"]


@pytest.mark.asyncio
async def test_up_resolves_every_open_incident(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor()
    await _open_incident(store, monitor)
    await _open_incident(store, monitor)

    event = await manager.reconcile(_outcome(monitor, True))

    assert event.action == "resolved"
    assert len(event.incident_ids) == 2
    assert await store.find_open_incidents(monitor.id) == []


@pytest.mark.asyncio
async def test_up_without_open_incident_is_noop(db) -> None:
    manager = IncidentManager(ResultStore())
    monitor = await create_monitor()

    assert await manager.reconcile(_outcome(monitor, True)) is None


@pytest.mark.asyncio
async def test_skipped_and_ssl_outcomes_are_ignored(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor()

    skipped = _outcome(monitor, False, skipped=True, skip_reason=ErrorKind.SKIPPED_INACTIVE, probe=None)
    assert await manager.reconcile(skipped) is None
    assert await manager.reconcile(_outcome(monitor, False, kind=CheckKind.SSL)) is None
    assert await store.list_incidents(monitor_id=monitor.id) == []


@pytest.mark.asyncio
async def test_sweep_opens_missing_incident_for_down_monitor(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    down = await create_monitor(name="Down", current_status="down", last_down=utcnow(), consecutive_failures=2)
    await create_monitor(name="Fresh", current_status="unknown")

    events = await manager.sweep()

    assert [e.action for e in events] == ["opened"]
    incidents = await store.list_incidents()
    assert len(incidents) == 1
    assert incidents[0].monitor_id == down.id
    assert incidents[0].title == "Monitor Down: Down"
    assert incidents[0].description.endswith("Opened by reconciliation sweep.")


@pytest.mark.asyncio
async def test_sweep_resolves_stale_incident_for_up_monitor(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor(current_status="up")
    await _open_incident(store, monitor)

    events = await manager.sweep()

    assert [e.action for e in events] == ["resolved"]
    assert await store.find_open_incidents(monitor.id) == []


@pytest.mark.asyncio
async def test_sweep_ignores_inactive_monitors(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    await create_monitor(is_active=0, current_status="down")

    assert await manager.sweep() == []
    assert await store.list_incidents() == []


@pytest.mark.asyncio
async def test_sweep_is_idempotent(db) -> None:
    manager = IncidentManager(ResultStore())
    await create_monitor(current_status="down")

    assert len(await manager.sweep()) == 1
    assert await manager.sweep() == []


@pytest.mark.asyncio
async def test_sweep_titles_incident_after_latest_check_kind(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    monitor = await create_monitor(
        name="Shop", type="browser", browser_check_enabled=1, current_status="down", last_down=utcnow()
    )
    await store.append_check_result(CheckResult(
        monitor_id=monitor.id,
        owner_id=monitor.owner_id,
        check_kind="browser",
        status=False,
        error_kind="selector_not_found",
    ))

    await manager.sweep()

    incidents = await store.find_open_incidents(monitor.id)
    assert [i.title for i in incidents] == ["Browser Check Failed: Shop"]


@pytest.mark.asyncio
async def test_sweep_leaves_refused_monitors_for_later(db) -> None:
    store = ResultStore()
    manager = IncidentManager(store)
    busy = await create_monitor(name="Busy", current_status="down")
    idle = await create_monitor(name="Idle", current_status="down")

    events = await manager.sweep(claim=lambda monitor_id: nullcontext(monitor_id != busy.id))

    assert [e.monitor_id for e in events] == [idle.id]
    assert await store.find_open_incidents(busy.id) == []
