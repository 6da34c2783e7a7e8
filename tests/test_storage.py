"""Tests for the in-memory store and PostgreSQL helpers."""

from datetime import timedelta

import pytest

from conftest import BATCH_KEY, CPU_KEY, NOW, make_alert, make_baseline
from erpwatch.config.models import PostgresConnectionConfig
from erpwatch.models.alerts import AlertSeverity, AlertStatus
from erpwatch.models.baseline import MetricKey
from erpwatch.models.escalation import AlertEscalation, AlertEscalationRule
from erpwatch.storage.postgres_client import (
    PostgresClient,
    _affected_rows,
    _from_json,
    _severities_at_least,
)


def _rule(name):
    return AlertEscalationRule(
        name=name,
        first_escalation_minutes=15,
        first_escalation_recipients=["oncall@example.com"],
    )


async def test_duplicate_alert_id_is_rejected(store):
    await store.insert_alert(make_alert(alert_id="A1"))
    with pytest.raises(ValueError):
        await store.insert_alert(make_alert(alert_id="A1"))


async def test_list_alerts_newest_first_with_filters(store):
    await store.insert_alert(make_alert(alert_id="OLD", created_at=NOW - timedelta(hours=2)))
    await store.insert_alert(make_alert(alert_id="NEW", created_at=NOW))
    await store.insert_alert(
        make_alert(alert_id="DONE", created_at=NOW - timedelta(hours=1)).resolve(NOW)
    )

    assert [a.alert_id for a in await store.list_alerts()] == ["NEW", "DONE", "OLD"]
    assert [a.alert_id for a in await store.list_alerts(status=AlertStatus.ACTIVE)] == [
        "NEW",
        "OLD",
    ]
    assert [a.alert_id for a in await store.list_alerts(limit=1)] == ["NEW"]
    before = await store.list_alerts(created_before=NOW)
    assert [a.alert_id for a in before] == ["DONE", "OLD"]


async def test_escalation_candidates_skip_acknowledged(store):
    await store.insert_alert(make_alert(alert_id="A1", created_at=NOW - timedelta(minutes=5)))
    await store.insert_alert(
        make_alert(alert_id="A2", created_at=NOW - timedelta(minutes=10)).acknowledge("ops", NOW)
    )
    await store.insert_alert(
        make_alert(alert_id="A3", severity=AlertSeverity.INFO, created_at=NOW)
    )

    candidates = await store.get_escalation_candidates(None, AlertSeverity.WARNING)

    assert [a.alert_id for a in candidates] == ["A1"]


async def test_delete_alerts_removes_escalations(store):
    await store.insert_alert(make_alert(alert_id="A1"))
    escalation = AlertEscalation(alert_id="A1", rule_id=1, level=1, minutes_since_alert=15)
    await store.insert_escalation(escalation)
    with pytest.raises(ValueError):
        await store.insert_escalation(escalation)

    assert await store.delete_alerts(["A1", "MISSING"]) == 1
    assert not await store.has_escalation("A1", 1, 1)


async def test_latest_baseline_prefers_later_insert_on_tie(store):
    first = make_baseline(CPU_KEY, mean=40.0)
    second = make_baseline(CPU_KEY, mean=60.0)
    await store.insert_baseline(first)
    await store.insert_baseline(second)

    assert (await store.get_latest_baseline(CPU_KEY)).mean == 60.0
    assert await store.get_latest_baseline(BATCH_KEY) is None


async def test_list_baselines_filters_environment(store):
    uat_key = MetricKey(metric_name="SQL CPU Usage", metric_type="cpuusage", environment="UAT")
    await store.insert_baseline(make_baseline(CPU_KEY, computed_at=NOW - timedelta(hours=2)))
    await store.insert_baseline(make_baseline(CPU_KEY, computed_at=NOW - timedelta(hours=1)))
    await store.insert_baseline(make_baseline(uat_key))

    assert len(await store.list_baselines(environment="PROD")) == 1
    assert len(await store.list_baselines(environment="PROD", latest_only=False)) == 2
    assert len(await store.list_baselines()) == 2


async def test_rule_ids_are_assigned_in_order(store):
    first = await store.create_rule(_rule("Zeta"))
    second = await store.create_rule(_rule("Alpha"))

    assert (first.rule_id, second.rule_id) == (1, 2)
    assert [r.name for r in await store.list_rules()] == ["Alpha", "Zeta"]
    assert await store.delete_rule(1)
    assert not await store.delete_rule(1)
    assert not await store.update_rule(_rule("Unsaved"))


@pytest.mark.parametrize(
    "status, expected",
    [("DELETE 3", 3), ("UPDATE 0", 0), ("", 0), ("SELECT", 0)],
)
def test_affected_rows(status, expected):
    assert _affected_rows(status) == expected


def test_from_json_accepts_text_and_mappings():
    assert _from_json('{"server": "AOS01"}') == {"server": "AOS01"}
    assert _from_json({"server": "AOS01"}) == {"server": "AOS01"}
    assert _from_json(None) == {}


def test_severities_at_least():
    assert _severities_at_least(AlertSeverity.WARNING) == ["Warning", "Critical"]
    assert _severities_at_least(AlertSeverity.INFO) == ["Info", "Warning", "Critical"]


def test_connection_url_password_is_masked():
    client = PostgresClient(PostgresConnectionConfig())
    assert not client.is_connected
    assert (
        client._sanitize_url("postgresql://erpwatch:secret@db:5432/erpwatch")
        == "postgresql://erpwatch:***@db:5432/erpwatch"
    )
    assert client._sanitize_url("postgresql://db/erpwatch") == "postgresql://db/erpwatch"


async def test_claim_escalation_once_then_record_outcome(store):
    await store.insert_alert(make_alert(alert_id="A1"))
    claim = AlertEscalation(
        alert_id="A1", rule_id=1, level=1, minutes_since_alert=15, error_message="pending"
    )

    assert await store.claim_escalation(claim)
    assert not await store.claim_escalation(
        AlertEscalation(alert_id="A1", rule_id=1, level=1, minutes_since_alert=16)
    )
    await store.record_escalation_outcome(
        claim.model_copy(update={"sent_via_email": True, "error_message": None})
    )

    [stored] = await store.list_escalations_for_alert("A1")
    assert stored.escalation_id == claim.escalation_id
    assert stored.sent_via_email
    assert stored.error_message is None
    assert stored.minutes_since_alert == 15


async def test_update_alert_keeps_current_correlation(store):
    alert = make_alert(alert_id="A1")
    await store.insert_alert(alert)
    await store.set_alert_correlation("A1", "CORR_1")

    await store.update_alert(alert.acknowledge("ops", NOW))

    stored = await store.get_alert("A1")
    assert stored.status == AlertStatus.ACKNOWLEDGED
    assert stored.acknowledged_by == "ops"
    assert stored.correlation_id == "CORR_1"


class _CapturingClient(PostgresClient):
    """PostgresClient that records statements instead of running them."""

    def __init__(self, row=None):
        super().__init__(PostgresConnectionConfig())
        self.row = row
        self.statements = []

    async def _execute(self, operation, query, *params):
        self.statements.append((operation, query, params))
        return "UPDATE 1"

    async def _fetchrow(self, operation, query, *params):
        self.statements.append((operation, query, params))
        return self.row


async def test_postgres_update_alert_leaves_correlation_alone():
    client = _CapturingClient()
    alert = make_alert(alert_id="A1").acknowledge("ops", NOW)

    await client.update_alert(alert)

    [(operation, query, params)] = client.statements
    assert operation == "update_alert"
    assert "correlation_id" not in query
    assert params == ("A1", "Acknowledged", NOW, "ops", None)


async def test_postgres_claim_escalation_reports_conflict():
    escalation = AlertEscalation(alert_id="A1", rule_id=1, level=1, minutes_since_alert=15)

    assert await _CapturingClient(row={"escalation_id": escalation.escalation_id}).claim_escalation(
        escalation
    )
    client = _CapturingClient(row=None)
    assert not await client.claim_escalation(escalation)
    query = client.statements[0][1]
    assert "ON CONFLICT (alert_id, rule_id, level) DO NOTHING" in query
