"""Tests for tiered escalation of unacknowledged alerts."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import CPU_KEY, NOW, RecordingChannel, make_alert, make_baseline
from erpwatch.detection.dispatcher import ChannelDispatcher
from erpwatch.detection.escalation import EscalationEngine, build_escalation_message
from erpwatch.detection.evaluator import DeviationEvaluator
from erpwatch.detection.manager import AlertManager
from erpwatch.interfaces.alert_store import NotFoundError
from erpwatch.models.alerts import AlertSeverity
from erpwatch.models.baseline import MetricSample
from erpwatch.models.escalation import AlertEscalationRule, parse_recipients


def _rule(**overrides):
    fields = dict(
        name="On-call",
        first_escalation_minutes=15,
        first_escalation_recipients="oncall@example.com",
        second_escalation_minutes=30,
        second_escalation_recipients="lead@example.com; manager@example.com",
        final_escalation_minutes=60,
        final_escalation_recipients=["cio@example.com"],
    )
    fields.update(overrides)
    return AlertEscalationRule(**fields)


@pytest.fixture
def engine(store, dispatcher):
    return EscalationEngine(store, dispatcher)


async def test_first_tier_fires_once(store, engine, email_channel, chat_channel):
    rule = await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))

    fired = await engine.check_and_escalate(now=NOW)
    again = await engine.check_and_escalate(now=NOW + timedelta(minutes=1))

    assert [(e.alert_id, e.rule_id, e.level) for e in fired] == [("A1", rule.rule_id, 1)]
    escalation = fired[0]
    assert escalation.minutes_since_alert == 20
    assert escalation.recipients == ["oncall@example.com"]
    assert escalation.sent_via_email and escalation.sent_via_chat
    assert escalation.error_message is None
    assert again == []
    recipients, subject, body = email_channel.sent[0]
    assert recipients == ["oncall@example.com"]
    assert subject == "[Warning] Alert Escalation (Level 1): Blocking Detected"
    assert body.startswith("ALERT ESCALATION (Level 1)")
    assert len(chat_channel.sent) == 1


async def test_tiers_fire_in_order_as_time_passes(store, engine):
    await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW))

    assert await engine.check_and_escalate(now=NOW + timedelta(minutes=10)) == []
    first = await engine.check_and_escalate(now=NOW + timedelta(minutes=16))
    second = await engine.check_and_escalate(now=NOW + timedelta(minutes=31))
    final = await engine.check_and_escalate(now=NOW + timedelta(minutes=61))

    assert [e.level for e in first + second + final] == [1, 2, 3]
    assert second[0].recipients == ["lead@example.com", "manager@example.com"]
    history = await engine.get_escalations_for_alert("A1")
    assert [e.level for e in history] == [1, 2, 3]


async def test_catch_up_fires_all_due_tiers(store, engine):
    await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=70)))

    fired = await engine.check_and_escalate(now=NOW)

    assert [e.level for e in fired] == [1, 2, 3]
    assert {e.minutes_since_alert for e in fired} == {70}


async def test_acknowledged_alert_is_not_escalated(store, engine):
    await engine.create_rule(_rule())
    alert = make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20))
    await store.insert_alert(alert.acknowledge("jane.doe", NOW - timedelta(minutes=1)))

    assert await engine.check_and_escalate(now=NOW) == []


async def test_resolved_alert_stops_further_tiers(store, engine):
    await engine.create_rule(_rule())
    alert = make_alert(alert_id="A1", created_at=NOW)
    await store.insert_alert(alert)
    await engine.check_and_escalate(now=NOW + timedelta(minutes=16))
    await store.update_alert(alert.resolve(NOW + timedelta(minutes=20)))

    assert await engine.check_and_escalate(now=NOW + timedelta(minutes=61)) == []


async def test_rule_filters(store, engine):
    await engine.create_rule(_rule(name="Critical only", min_severity=AlertSeverity.CRITICAL))
    await engine.create_rule(_rule(name="Batch only", alert_type="Batch Failure"))
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))

    assert await engine.check_and_escalate(now=NOW) == []


async def test_each_rule_escalates_independently(store, engine):
    first = await engine.create_rule(_rule(name="A"))
    second = await engine.create_rule(_rule(name="B"))
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))

    fired = await engine.check_and_escalate(now=NOW)

    assert sorted(e.rule_id for e in fired) == [first.rule_id, second.rule_id]


async def test_disabled_rule_is_ignored(store, engine):
    await engine.create_rule(_rule(enabled=False))
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))

    assert await engine.check_and_escalate(now=NOW) == []


async def test_channel_failure_is_recorded(store):
    dispatcher = ChannelDispatcher(
        channels={"email": RecordingChannel("email", error="SMTP error: relay denied")}
    )
    engine = EscalationEngine(store, dispatcher)
    await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))

    fired = await engine.check_and_escalate(now=NOW)

    assert len(fired) == 1
    assert not fired[0].sent_via_email
    assert not fired[0].sent_via_chat
    assert "email: SMTP error: relay denied" in fired[0].error_message
    assert "chat: channel 'chat' not configured" in fired[0].error_message
    assert await engine.check_and_escalate(now=NOW + timedelta(minutes=1)) == []


async def test_raising_channel_does_not_abort_cycle(store):
    dispatcher = ChannelDispatcher(
        channels={
            "email": RecordingChannel("email", raises=True),
            "chat": RecordingChannel("chat"),
        }
    )
    engine = EscalationEngine(store, dispatcher)
    await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))
    await store.insert_alert(make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=20)))

    fired = await engine.check_and_escalate(now=NOW)

    assert [e.alert_id for e in fired] == ["A1", "A2"]
    assert all(e.sent_via_chat and not e.sent_via_email for e in fired)


class _SlowChannel(RecordingChannel):
    async def send(self, recipients, subject, body):
        await asyncio.sleep(0.01)
        return await super().send(recipients, subject, body)


async def test_overlapping_cycles_send_each_tier_once(store, chat_channel):
    email = _SlowChannel("email")
    engine = EscalationEngine(
        store, ChannelDispatcher(channels={"email": email, "chat": chat_channel})
    )
    await engine.create_rule(_rule())
    for alert_id in ("A1", "A2", "A3"):
        await store.insert_alert(
            make_alert(alert_id=alert_id, created_at=NOW - timedelta(minutes=20))
        )

    first, second = await asyncio.gather(
        engine.check_and_escalate(now=NOW),
        engine.check_and_escalate(now=NOW),
    )

    assert sorted(e.alert_id for e in first + second) == ["A1", "A2", "A3"]
    assert len(email.sent) == 3
    assert len(chat_channel.sent) == 3
    for alert_id in ("A1", "A2", "A3"):
        history = await engine.get_escalations_for_alert(alert_id)
        assert [e.level for e in history] == [1]
        assert history[0].sent_via_email and history[0].sent_via_chat
        assert history[0].error_message is None


async def test_critical_sample_escalates_after_first_tier(store, dispatcher, email_channel):
    manager = AlertManager(store, DeviationEvaluator())
    engine = EscalationEngine(store, dispatcher)
    await store.insert_baseline(make_baseline(CPU_KEY, mean=50.0, std=10.0))
    rule = await engine.create_rule(_rule(name="Critical", min_severity=AlertSeverity.CRITICAL))

    result = await manager.process_sample(
        MetricSample(key=CPU_KEY, value=95.0, timestamp=NOW, tags={"AosServer": "AOS01"}),
        now=NOW,
    )
    assert result.triggered
    assert result.severity == AlertSeverity.CRITICAL

    fired = await engine.check_and_escalate(now=NOW + timedelta(minutes=20))

    assert [(e.alert_id, e.rule_id, e.level) for e in fired] == [
        (result.alert_id, rule.rule_id, 1)
    ]
    history = await engine.get_escalations_for_alert(result.alert_id)
    assert [(e.level, e.minutes_since_alert) for e in history] == [(1, 20)]
    assert email_channel.sent[0][1].startswith("[Critical] Alert Escalation (Level 1)")

async def test_shutdown_stops_cycle(store, engine):
    await engine.create_rule(_rule())
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=20)))
    event = asyncio.Event()
    event.set()

    assert await engine.check_and_escalate(now=NOW, shutdown_event=event) == []


async def test_rule_crud(store, engine):
    created = await engine.create_rule(_rule())
    assert created.rule_id is not None

    updated = await engine.update_rule(created.rule_id, _rule(name="Renamed", enabled=False))
    assert updated.name == "Renamed"
    assert updated.rule_id == created.rule_id
    assert updated.updated_at is not None
    assert await engine.list_rules(enabled=True) == []

    await engine.delete_rule(created.rule_id)
    with pytest.raises(NotFoundError):
        await engine.get_rule(created.rule_id)
    with pytest.raises(NotFoundError):
        await engine.update_rule(created.rule_id, _rule())
    with pytest.raises(NotFoundError):
        await engine.delete_rule(created.rule_id)


async def test_history_for_unknown_alert(engine):
    with pytest.raises(NotFoundError):
        await engine.get_escalations_for_alert("ALERT_missing")


def test_rule_tier_validation():
    with pytest.raises(ValidationError):
        _rule(first_escalation_recipients="")
    with pytest.raises(ValidationError):
        _rule(second_escalation_minutes=10)
    with pytest.raises(ValidationError):
        _rule(second_escalation_minutes=None)
    with pytest.raises(ValidationError):
        _rule(final_escalation_minutes=20)


def test_rule_without_optional_tiers():
    rule = _rule(
        second_escalation_minutes=None,
        second_escalation_recipients=[],
        final_escalation_minutes=None,
        final_escalation_recipients=[],
    )
    assert [tier.level for tier in rule.tiers()] == [1]


def test_parse_recipients():
    assert parse_recipients(" a@example.com;b@example.com , ,c@example.com ") == [
        "a@example.com",
        "b@example.com",
        "c@example.com",
    ]
    assert parse_recipients(None) == []


def test_escalation_message_lists_alert_details():
    alert = make_alert(alert_id="A1", created_at=NOW)
    message = build_escalation_message(alert, _rule(), 2, 35)

    assert "Alert: A1" in message
    assert "Severity: Warning" in message
    assert "Created: 2026-01-15 12:00:00 UTC" in message
    assert "Minutes Since Alert: 35" in message
    assert message.endswith("Escalation Rule: On-call")
