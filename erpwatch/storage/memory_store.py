"""
In-memory implementation of AlertStore and MetricSource.

Used by the test suite and for local runs without PostgreSQL. Records are
held in dictionaries keyed by identifier; models are stored as-is since
every write replaces the whole record.

Example:
    >>> store = InMemoryAlertStore()
    >>> await store.insert_alert(alert)
    >>> await store.get_alert(alert.alert_id)
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from erpwatch.interfaces.alert_store import AlertStore
from erpwatch.interfaces.metric_source import MetricSource
from erpwatch.models.alerts import Alert, AlertSeverity, AlertStatus
from erpwatch.models.baseline import MetricBaseline, MetricKey, MetricSample
from erpwatch.models.correlation import AlertCorrelation, CorrelationStatus
from erpwatch.models.escalation import AlertEscalation, AlertEscalationRule

logger = structlog.get_logger(__name__)

# Fields update_alert writes; correlation_id belongs to set_alert_correlation
LIFECYCLE_FIELDS = ("status", "acknowledged_at", "acknowledged_by", "resolved_at")


class InMemoryAlertStore(AlertStore, MetricSource):
    """
    Process-local store.

    A single asyncio lock serializes writes that allocate identifiers or
    enforce uniqueness.
    """

    def __init__(self) -> None:
        self._alerts: Dict[str, Alert] = {}
        self._baselines: Dict[MetricKey, List[MetricBaseline]] = defaultdict(list)
        self._correlations: Dict[str, AlertCorrelation] = {}
        self._rules: Dict[int, AlertEscalationRule] = {}
        self._escalations: List[AlertEscalation] = []
        self._escalation_keys: set = set()
        self._samples: Dict[MetricKey, List[MetricSample]] = defaultdict(list)
        self._next_rule_id = 1
        self._lock = asyncio.Lock()

    async def ping(self) -> bool:
        return True

    # =========================================================================
    # METRIC SAMPLES
    # =========================================================================

    async def record_sample(self, sample: MetricSample) -> None:
        self._samples[sample.key].append(sample)

    async def sample(
        self,
        key: MetricKey,
        start: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        samples = [s for s in self._samples.get(key, []) if start <= s.timestamp <= end]
        return sorted(samples, key=lambda s: s.timestamp)

    # =========================================================================
    # ALERTS
    # =========================================================================

    async def insert_alert(self, alert: Alert) -> None:
        async with self._lock:
            if alert.alert_id in self._alerts:
                raise ValueError(f"duplicate alert id: {alert.alert_id}")
            self._alerts[alert.alert_id] = alert

    async def update_alert(self, alert: Alert) -> None:
        current = self._alerts.get(alert.alert_id)
        if current is not None:
            self._alerts[alert.alert_id] = current.model_copy(
                update={field: getattr(alert, field) for field in LIFECYCLE_FIELDS}
            )

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        limit: int = 100,
        created_before: Optional[datetime] = None,
    ) -> List[Alert]:
        alerts = [
            a
            for a in self._alerts.values()
            if (status is None or a.status == status)
            and (created_before is None or a.created_at < created_before)
        ]
        alerts.sort(key=lambda a: (a.created_at, a.alert_id), reverse=True)
        return alerts[:limit]

    async def find_active_alert(
        self,
        alert_type: str,
        metric_key: str,
        since: datetime,
    ) -> Optional[Alert]:
        matches = [
            a
            for a in self._alerts.values()
            if a.is_active
            and a.alert_type == alert_type
            and a.metadata.get("metric_key") == metric_key
            and a.created_at >= since
        ]
        return max(matches, key=lambda a: a.created_at, default=None)

    async def get_uncorrelated_active_alerts(self, since: datetime) -> List[Alert]:
        alerts = [
            a
            for a in self._alerts.values()
            if a.is_active and a.correlation_id is None and a.created_at >= since
        ]
        return sorted(alerts, key=_oldest_first)

    async def get_alerts_for_correlation(self, correlation_id: str) -> List[Alert]:
        alerts = [a for a in self._alerts.values() if a.correlation_id == correlation_id]
        return sorted(alerts, key=_oldest_first)

    async def count_alerts_for_correlation(self, correlation_id: str) -> int:
        return sum(1 for a in self._alerts.values() if a.correlation_id == correlation_id)

    async def set_alert_correlation(self, alert_id: str, correlation_id: str) -> None:
        alert = self._alerts.get(alert_id)
        if alert is not None:
            self._alerts[alert_id] = alert.correlate(correlation_id)

    async def get_escalation_candidates(
        self,
        alert_type: Optional[str],
        min_severity: AlertSeverity,
    ) -> List[Alert]:
        alerts = [
            a
            for a in self._alerts.values()
            if a.is_active
            and a.acknowledged_at is None
            and a.severity.at_least(min_severity)
            and (alert_type is None or a.alert_type == alert_type)
        ]
        return sorted(alerts, key=_oldest_first)

    async def delete_alerts(self, alert_ids: Sequence[str]) -> int:
        deleted = 0
        async with self._lock:
            for alert_id in alert_ids:
                if self._alerts.pop(alert_id, None) is not None:
                    deleted += 1
            removed = set(alert_ids)
            self._escalations = [e for e in self._escalations if e.alert_id not in removed]
            self._escalation_keys = {k for k in self._escalation_keys if k[0] not in removed}
        return deleted

    # =========================================================================
    # BASELINES
    # =========================================================================

    async def insert_baseline(self, baseline: MetricBaseline) -> None:
        self._baselines[baseline.key].append(baseline)

    async def get_latest_baseline(self, key: MetricKey) -> Optional[MetricBaseline]:
        history = self._baselines.get(key)
        if not history:
            return None
        # Later inserts win ties on computed_at
        return max(enumerate(history), key=lambda item: (item[1].computed_at, item[0]))[1]

    async def list_baselines(
        self,
        environment: Optional[str] = None,
        latest_only: bool = True,
    ) -> List[MetricBaseline]:
        result: List[MetricBaseline] = []
        for key in list(self._baselines):
            if environment is not None and key.environment != environment:
                continue
            if latest_only:
                latest = await self.get_latest_baseline(key)
                if latest is not None:
                    result.append(latest)
            else:
                result.extend(self._baselines[key])
        result.sort(key=lambda b: (b.computed_at, b.key.metric_name), reverse=True)
        return result

    # =========================================================================
    # CORRELATIONS
    # =========================================================================

    async def insert_correlation(self, correlation: AlertCorrelation) -> None:
        async with self._lock:
            if correlation.correlation_id in self._correlations:
                raise ValueError(f"duplicate correlation id: {correlation.correlation_id}")
            self._correlations[correlation.correlation_id] = correlation

    async def update_correlation(self, correlation: AlertCorrelation) -> None:
        if correlation.correlation_id in self._correlations:
            self._correlations[correlation.correlation_id] = correlation

    async def get_correlation(self, correlation_id: str) -> Optional[AlertCorrelation]:
        return self._correlations.get(correlation_id)

    async def list_correlations(
        self,
        status: Optional[CorrelationStatus] = None,
    ) -> List[AlertCorrelation]:
        correlations = [
            c for c in self._correlations.values() if status is None or c.status == status
        ]
        correlations.sort(key=lambda c: (c.first_detected_at, c.correlation_id), reverse=True)
        return correlations

    # =========================================================================
    # ESCALATION RULES
    # =========================================================================

    async def list_rules(self, enabled: Optional[bool] = None) -> List[AlertEscalationRule]:
        rules = [r for r in self._rules.values() if enabled is None or r.enabled == enabled]
        return sorted(rules, key=lambda r: (r.name, r.rule_id or 0))

    async def get_rule(self, rule_id: int) -> Optional[AlertEscalationRule]:
        return self._rules.get(rule_id)

    async def create_rule(self, rule: AlertEscalationRule) -> AlertEscalationRule:
        async with self._lock:
            created = rule.model_copy(update={"rule_id": self._next_rule_id})
            self._rules[self._next_rule_id] = created
            self._next_rule_id += 1
        return created

    async def update_rule(self, rule: AlertEscalationRule) -> bool:
        if rule.rule_id is None or rule.rule_id not in self._rules:
            return False
        self._rules[rule.rule_id] = rule
        return True

    async def delete_rule(self, rule_id: int) -> bool:
        return self._rules.pop(rule_id, None) is not None

    # =========================================================================
    # ESCALATIONS
    # =========================================================================

    async def insert_escalation(self, escalation: AlertEscalation) -> None:
        key: Tuple[str, int, int] = (escalation.alert_id, escalation.rule_id, escalation.level)
        async with self._lock:
            if key in self._escalation_keys:
                raise ValueError(f"escalation already recorded: {key}")
            self._escalation_keys.add(key)
            self._escalations.append(escalation)

    async def claim_escalation(self, escalation: AlertEscalation) -> bool:
        key = (escalation.alert_id, escalation.rule_id, escalation.level)
        async with self._lock:
            if key in self._escalation_keys:
                return False
            self._escalation_keys.add(key)
            self._escalations.append(escalation)
        return True

    async def record_escalation_outcome(self, escalation: AlertEscalation) -> None:
        self._escalations = [
            escalation if e.escalation_id == escalation.escalation_id else e
            for e in self._escalations
        ]

    async def has_escalation(self, alert_id: str, rule_id: int, level: int) -> bool:
        return (alert_id, rule_id, level) in self._escalation_keys

    async def list_escalations_for_alert(self, alert_id: str) -> List[AlertEscalation]:
        escalations = [e for e in self._escalations if e.alert_id == alert_id]
        return sorted(escalations, key=lambda e: (e.escalated_at, e.level))


def _oldest_first(alert: Alert) -> Tuple[datetime, str]:
    return (alert.created_at, alert.alert_id)
