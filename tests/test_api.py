"""Tests for the REST API over the in-memory store."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import CPU_KEY, make_alert, make_samples
from erpwatch.config.models import AppConfig
from erpwatch.services.components import build_components
from services.api.app import create_app
from services.api.dependencies import AppState


@pytest.fixture
def components(store, dispatcher):
    return build_components(AppConfig(), store, store, dispatcher=dispatcher)


@pytest.fixture
async def client(components):
    app = create_app(AppState(config=AppConfig(), components=components))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _recent(minutes: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


RULE_BODY = {
    "name": "On-call",
    "first_escalation_minutes": 15,
    "first_escalation_recipients": "oncall@example.com",
    "second_escalation_minutes": 30,
    "second_escalation_recipients": ["lead@example.com"],
}


async def test_alert_lifecycle(client, store):
    await store.insert_alert(make_alert(alert_id="A1", created_at=_recent(5)))

    listed = await client.get("/api/alerts", params={"status": "Active"})
    assert listed.status_code == 200
    assert listed.json()["count"] == 1

    acked = await client.post("/api/alerts/A1/acknowledge", json={"acknowledged_by": "jane.doe"})
    assert acked.status_code == 200
    assert acked.json()["status"] == "Acknowledged"
    assert acked.json()["acknowledged_by"] == "jane.doe"

    again = await client.post("/api/alerts/A1/acknowledge", json={"acknowledged_by": "jane.doe"})
    assert again.status_code == 409
    assert again.json()["current_status"] == "Acknowledged"

    resolved = await client.post("/api/alerts/A1/resolve")
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "Resolved"

    assert (await client.post("/api/alerts/A1/resolve")).status_code == 409
    assert (await client.get("/api/alerts/A1")).json()["status"] == "Resolved"


async def test_unknown_alert_is_404(client):
    assert (await client.get("/api/alerts/ALERT_missing")).status_code == 404
    response = await client.post("/api/alerts/ALERT_missing/resolve")
    assert response.status_code == 404


async def test_acknowledge_requires_operator(client, store):
    await store.insert_alert(make_alert(alert_id="A1", created_at=_recent(5)))
    response = await client.post("/api/alerts/A1/acknowledge", json={"acknowledged_by": ""})
    assert response.status_code == 422


async def test_invalid_status_filter(client):
    assert (await client.get("/api/alerts", params={"status": "Open"})).status_code == 422


async def test_escalation_rule_crud(client):
    created = await client.post("/api/escalation/rules", json=RULE_BODY)
    assert created.status_code == 201
    rule = created.json()
    assert rule["first_escalation_recipients"] == ["oncall@example.com"]
    rule_id = rule["rule_id"]

    listed = await client.get("/api/escalation/rules", params={"enabled": "true"})
    assert listed.json()["count"] == 1

    updated = await client.put(
        f"/api/escalation/rules/{rule_id}", json={**RULE_BODY, "name": "Renamed"}
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Renamed"

    assert (await client.delete(f"/api/escalation/rules/{rule_id}")).status_code == 204
    assert (await client.get(f"/api/escalation/rules/{rule_id}")).status_code == 404


async def test_inconsistent_tiers_are_422(client):
    body = {**RULE_BODY, "second_escalation_minutes": 5}
    response = await client.post("/api/escalation/rules", json=body)
    assert response.status_code == 422
    assert "second escalation must not fire before the first" in response.text


async def test_escalation_check_and_history(client, store, email_channel):
    await client.post("/api/escalation/rules", json=RULE_BODY)
    await store.insert_alert(make_alert(alert_id="A1", created_at=_recent(20)))

    check = await client.post("/api/escalation/check")
    assert check.status_code == 200
    assert check.json()["count"] == 1
    assert len(email_channel.sent) == 1

    history = await client.get("/api/escalation/alerts/A1")
    assert [e["level"] for e in history.json()["escalations"]] == [1]
    assert (await client.get("/api/escalation/alerts/ALERT_missing")).status_code == 404


async def test_correlation_flow(client, store):
    await store.insert_alert(make_alert(alert_id="A1", created_at=_recent(4)))
    await store.insert_alert(make_alert(alert_id="A2", created_at=_recent(3)))

    run = await client.post("/api/correlations/correlate")
    assert run.status_code == 200
    created = run.json()["created"]
    assert len(created) == 1
    correlation_id = created[0]["correlation_id"]

    members = await client.get(f"/api/correlations/{correlation_id}/alerts")
    assert members.json()["count"] == 2

    early_close = await client.post(f"/api/correlations/{correlation_id}/close")
    assert early_close.status_code == 409

    resolved = await client.post(f"/api/correlations/{correlation_id}/resolve")
    assert resolved.json()["status"] == "Resolved"
    assert (await store.get_alert("A1")).status.value == "Resolved"

    closed = await client.post(f"/api/correlations/{correlation_id}/close")
    assert closed.json()["status"] == "Closed"

    listed = await client.get("/api/correlations", params={"status": "Closed"})
    assert listed.json()["count"] == 1
    assert (await client.get("/api/correlations/CORR_missing")).status_code == 404


async def test_baseline_recalculation(client, store, components):
    for sample in make_samples(CPU_KEY, [40.0, 50.0, 60.0], end=_recent(1)):
        await store.record_sample(sample)

    response = await client.post("/api/baselines/recalculate")
    assert response.status_code == 200
    summary = response.json()
    assert summary["calculated"] == [str(CPU_KEY)]
    assert len(summary["skipped"]) == len(components.baseline.metric_keys) - 1

    baselines = (await client.get("/api/baselines", params={"environment": "PROD"})).json()
    assert baselines["count"] == 1
    assert baselines["baselines"][0]["mean"] == 50.0
    other_env = await client.get("/api/baselines", params={"environment": "UAT"})
    assert other_env.json()["count"] == 0


async def test_health_without_redis(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["infrastructure"] == {"store": "connected", "redis": "disconnected"}
    assert sorted(body["channels"]) == ["chat", "email"]


async def test_store_unavailable_answers_503():
    app = create_app(AppState(config=AppConfig(), components=None))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        assert (await client.get("/api/alerts")).status_code == 503
        health = await client.get("/api/health")
        assert health.json()["status"] == "unhealthy"
