"""Tests for incident correlation."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, make_alert
from erpwatch.detection.correlation import CorrelationEngine
from erpwatch.detection.evaluator import DeviationEvaluator
from erpwatch.detection.manager import AlertManager
from erpwatch.interfaces.alert_store import NotFoundError
from erpwatch.models.alerts import AlertSeverity, AlertStatus
from erpwatch.models.correlation import CorrelationStatus
from erpwatch.storage.memory_store import InMemoryAlertStore


@pytest.fixture
def engine(store):
    return CorrelationEngine(store)


async def _insert(store, *alerts):
    for alert in alerts:
        await store.insert_alert(alert)


def test_score_counts_matching_dimensions(engine):
    a = make_alert(alert_id="A1", created_at=NOW)
    b = make_alert(alert_id="A2", created_at=NOW + timedelta(minutes=5))

    confidence, reason = engine.score([a, b])

    assert confidence == 100
    assert reason == (
        "Same type (Blocking Detected), same severity, "
        "within 10-minute window, same server (AOS01)"
    )


def test_score_without_shared_dimensions(engine):
    a = make_alert(alert_type="Blocking Detected", severity=AlertSeverity.WARNING, server="AOS01")
    b = make_alert(
        alert_type="SQL CPU Usage Anomaly",
        severity=AlertSeverity.CRITICAL,
        server="AOS02",
        created_at=NOW + timedelta(minutes=30),
    )

    confidence, reason = engine.score([a, b])

    assert confidence == 0
    assert reason == "Multiple related alerts detected"


async def test_related_alerts_form_incident(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=4)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2), severity=AlertSeverity.CRITICAL),
    )

    result = await engine.correlate(now=NOW)

    assert len(result.created) == 1
    correlation = result.created[0]
    assert correlation.status == CorrelationStatus.OPEN
    assert correlation.alert_count == 2
    assert correlation.severity == AlertSeverity.CRITICAL
    assert correlation.confidence_score == 75
    assert correlation.first_detected_at == NOW - timedelta(minutes=4)
    assert correlation.title == "Incident: Blocking Detected (2 alerts)"
    for alert_id in ("A1", "A2"):
        assert (await store.get_alert(alert_id)).correlation_id == correlation.correlation_id


async def test_single_alert_is_not_an_incident(store, engine):
    await _insert(store, make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=1)))

    result = await engine.correlate(now=NOW)

    assert result.candidates == 1
    assert result.created == []
    assert (await store.get_alert("A1")).correlation_id is None


async def test_rerun_is_idempotent(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=3)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2)),
    )
    await engine.correlate(now=NOW)

    rerun = await engine.correlate(now=NOW + timedelta(minutes=2))

    assert not rerun.changed
    assert len(await store.list_correlations()) == 1


async def test_new_alert_extends_open_incident(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=3)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2)),
    )
    first = await engine.correlate(now=NOW)
    correlation_id = first.created[0].correlation_id
    await _insert(store, make_alert(alert_id="A3", created_at=NOW + timedelta(minutes=1)))

    second = await engine.correlate(now=NOW + timedelta(minutes=2))

    assert second.created == []
    assert [c.correlation_id for c in second.extended] == [correlation_id]
    assert second.extended[0].alert_count == 3
    assert (await store.get_alert("A3")).correlation_id == correlation_id


async def test_unrelated_alerts_stay_apart(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", alert_type="Blocking Detected", server="AOS01"),
        make_alert(
            alert_id="A2",
            alert_type="Batch Failure",
            severity=AlertSeverity.CRITICAL,
            server="AOS02",
            created_at=NOW - timedelta(minutes=40),
        ),
    )

    result = await engine.correlate(now=NOW + timedelta(minutes=1))

    assert result.created == []


async def test_acknowledged_and_old_alerts_are_not_candidates(store, engine):
    acked = make_alert(alert_id="A1").acknowledge("jane.doe", NOW + timedelta(minutes=1))
    old = make_alert(alert_id="A2", created_at=NOW - timedelta(hours=2))
    await _insert(store, acked, old, make_alert(alert_id="A3"))

    result = await engine.correlate(now=NOW + timedelta(minutes=2))

    assert result.candidates == 1
    assert result.created == []


async def test_shutdown_stops_persistence(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=3)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2)),
    )
    event = asyncio.Event()
    event.set()

    result = await engine.correlate(now=NOW, shutdown_event=event)

    assert result.interrupted
    assert await store.list_correlations() == []


async def test_resolve_cascades_to_members(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=3)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2)),
    )
    created = (await engine.correlate(now=NOW)).created[0]
    acked = (await store.get_alert("A2")).acknowledge("jane.doe", NOW)
    await store.update_alert(acked)

    resolved = await engine.resolve_correlation(created.correlation_id, now=NOW + timedelta(minutes=5))

    assert resolved.status == CorrelationStatus.RESOLVED
    assert resolved.resolved_at == NOW + timedelta(minutes=5)
    members = await engine.get_correlation_alerts(created.correlation_id)
    assert {a.status for a in members} == {AlertStatus.RESOLVED}


async def test_close_requires_resolved(store, engine):
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=3)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=2)),
    )
    created = (await engine.correlate(now=NOW)).created[0]

    with pytest.raises(ValueError):
        await engine.close_correlation(created.correlation_id)

    await engine.resolve_correlation(created.correlation_id, now=NOW + timedelta(minutes=1))
    closed = await engine.close_correlation(created.correlation_id, now=NOW + timedelta(minutes=2))
    assert closed.status == CorrelationStatus.CLOSED


async def test_unknown_correlation(engine):
    with pytest.raises(NotFoundError):
        await engine.get_correlation("CORR_missing")
    with pytest.raises(NotFoundError):
        await engine.resolve_correlation("CORR_missing")


class _YieldingStore(InMemoryAlertStore):
    """Store that suspends after each alert read, before handing it back."""

    async def get_alert(self, alert_id):
        alert = await super().get_alert(alert_id)
        await asyncio.sleep(0)
        return alert


async def test_acknowledge_during_correlation_keeps_membership():
    store = _YieldingStore()
    engine = CorrelationEngine(store)
    manager = AlertManager(store, DeviationEvaluator())
    await _insert(
        store,
        make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=4)),
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=3)),
    )

    acknowledged, result = await asyncio.gather(
        manager.acknowledge_alert("A1", "ops", now=NOW),
        engine.correlate(now=NOW),
    )

    correlation = result.created[0]
    stored = await store.get_alert("A1")
    assert acknowledged.status == AlertStatus.ACKNOWLEDGED
    assert stored.status == AlertStatus.ACKNOWLEDGED
    assert stored.acknowledged_by == "ops"
    assert stored.correlation_id == correlation.correlation_id
    members = await store.get_alerts_for_correlation(correlation.correlation_id)
    assert correlation.alert_count == len(members) == 2
