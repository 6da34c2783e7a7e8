"""Tests for alert creation, deduplication and lifecycle."""

from datetime import timedelta

import pytest

from conftest import CPU_KEY, NOW, make_baseline
from erpwatch.detection.evaluator import DeviationEvaluator
from erpwatch.detection.manager import (
    EVENT_ALERT_ACKNOWLEDGED,
    EVENT_ALERT_CREATED,
    EVENT_ALERT_RESOLVED,
    SKIP_DUPLICATE,
    AlertManager,
)
from erpwatch.interfaces.alert_store import NotFoundError
from erpwatch.models.alerts import AlertSeverity, AlertStatus, AlertTransitionError
from erpwatch.models.baseline import MetricKey, MetricSample


@pytest.fixture
def manager(store, publisher):
    return AlertManager(store, DeviationEvaluator(), publisher=publisher, dedup_window_minutes=10)


def _sample(value, key=CPU_KEY, tags=None):
    return MetricSample(key=key, value=value, timestamp=NOW, tags=tags or {"AosServer": "AOS01"})


async def test_critical_sample_creates_alert(store, manager, publisher):
    await store.insert_baseline(make_baseline(mean=50.0, std=10.0))

    result = await manager.process_sample(_sample(95.0), now=NOW)

    assert result.triggered
    assert result.severity == AlertSeverity.CRITICAL
    alert = await store.get_alert(result.alert_id)
    assert alert.status == AlertStatus.ACTIVE
    assert alert.alert_type == "SQL CPU Usage Anomaly"
    assert alert.created_at == NOW
    assert alert.metadata["metric_key"] == str(CPU_KEY)
    assert alert.metadata["percent_change"] == 90.0
    assert alert.metadata["z_score"] == 4.5
    assert alert.server == "AOS01"
    assert alert.alert_id.startswith("ALERT_20260115_120000_")
    assert publisher.events == [(EVENT_ALERT_CREATED, alert.alert_id)]


async def test_normal_sample_creates_nothing(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))

    result = await manager.process_sample(_sample(51.0), now=NOW)

    assert not result.triggered
    assert result.skip_reason is None
    assert await store.list_alerts() == []


async def test_unclassifiable_sample_reports_skip_reason(store, manager):
    key = MetricKey(metric_name="Active Sessions", metric_type="activesessions")
    result = await manager.process_sample(_sample(500.0, key=key), now=NOW)
    assert not result.triggered
    assert result.skip_reason == "no_threshold"


async def test_repeat_within_window_is_suppressed(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))
    first = await manager.process_sample(_sample(95.0), now=NOW)

    second = await manager.process_sample(_sample(97.0), now=NOW + timedelta(minutes=5))

    assert not second.triggered
    assert second.skip_reason == SKIP_DUPLICATE
    assert second.alert_id == first.alert_id
    assert len(await store.list_alerts()) == 1


async def test_store_is_authority_for_dedup(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))
    first = await manager.process_sample(_sample(95.0), now=NOW)
    manager.clear_suppression_state()

    second = await manager.process_sample(_sample(95.0), now=NOW + timedelta(minutes=1))

    assert second.skip_reason == SKIP_DUPLICATE
    assert second.alert_id == first.alert_id


async def test_new_alert_after_window(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))
    first = await manager.process_sample(_sample(95.0), now=NOW)

    later = await manager.process_sample(_sample(95.0), now=NOW + timedelta(minutes=11))

    assert later.triggered
    assert later.alert_id != first.alert_id


async def test_new_alert_after_acknowledge(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))
    first = await manager.process_sample(_sample(95.0), now=NOW)
    await manager.acknowledge_alert(first.alert_id, "jane.doe", now=NOW + timedelta(minutes=1))

    again = await manager.process_sample(_sample(95.0), now=NOW + timedelta(minutes=2))

    assert again.triggered


async def test_different_metric_class_is_not_a_duplicate(store, manager):
    payroll = MetricKey(metric_name="Batch Errors", metric_type="errorrate", metric_class="Payroll")
    invoicing = payroll.model_copy(update={"metric_class": "Invoicing"})

    first = await manager.process_sample(_sample(20.0, key=payroll), now=NOW)
    second = await manager.process_sample(_sample(20.0, key=invoicing), now=NOW)

    assert first.triggered and second.triggered


async def test_acknowledge_then_resolve(store, manager, publisher):
    await store.insert_baseline(make_baseline(mean=50.0))
    result = await manager.process_sample(_sample(95.0), now=NOW)

    acked = await manager.acknowledge_alert(result.alert_id, "jane.doe", now=NOW + timedelta(minutes=3))
    resolved = await manager.resolve_alert(result.alert_id, now=NOW + timedelta(minutes=9))

    assert acked.status == AlertStatus.ACKNOWLEDGED
    assert acked.acknowledged_by == "jane.doe"
    assert resolved.status == AlertStatus.RESOLVED
    assert resolved.acknowledged_by == "jane.doe"
    assert resolved.resolved_at == NOW + timedelta(minutes=9)
    assert [event for event, _ in publisher.events] == [
        EVENT_ALERT_CREATED,
        EVENT_ALERT_ACKNOWLEDGED,
        EVENT_ALERT_RESOLVED,
    ]


async def test_invalid_transitions(store, manager):
    await store.insert_baseline(make_baseline(mean=50.0))
    result = await manager.process_sample(_sample(95.0), now=NOW)
    await manager.resolve_alert(result.alert_id, now=NOW + timedelta(minutes=1))

    with pytest.raises(AlertTransitionError):
        await manager.acknowledge_alert(result.alert_id, "jane.doe")
    with pytest.raises(AlertTransitionError):
        await manager.resolve_alert(result.alert_id)


async def test_unknown_alert(manager):
    with pytest.raises(NotFoundError):
        await manager.get_alert("ALERT_missing")
    with pytest.raises(NotFoundError):
        await manager.acknowledge_alert("ALERT_missing", "jane.doe")


async def test_publisher_failure_does_not_fail_creation(store):
    class BrokenPublisher:
        async def publish_alert_event(self, event_type, alert):
            raise ConnectionError("redis down")

    manager = AlertManager(store, DeviationEvaluator(), publisher=BrokenPublisher())
    result = await manager.process_sample(_sample(95.0), now=NOW)

    assert result.triggered
    assert await store.get_alert(result.alert_id) is not None
