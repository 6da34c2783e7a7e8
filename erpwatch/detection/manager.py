"""
Alert manager for alert lifecycle management.

This module provides the AlertManager class which owns the alert
lifecycle: sample intake, evaluation, deduplication, creation,
acknowledgment and resolution.

Key Features:
    - Evaluates each sample against the latest baseline for its key
    - Suppresses repeats of the same anomaly within the dedup window
    - Persists alerts through the AlertStore
    - Publishes alert events when a publisher is configured

Example:
    >>> manager = AlertManager(store, evaluator)
    >>> result = await manager.process_sample(sample)
    >>> if result.triggered:
    ...     print(f"Created {result.alert_id}")
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import structlog

from erpwatch.detection.evaluator import DeviationEvaluator, Evaluation
from erpwatch.detection.suppression import ExpiringKeyMap
from erpwatch.interfaces.alert_store import AlertStore, NotFoundError
from erpwatch.models.alerts import (
    Alert,
    AlertResult,
    AlertStatus,
    generate_alert_id,
)
from erpwatch.models.baseline import MetricBaseline, MetricSample

logger = structlog.get_logger(__name__)


# Default configuration values
DEFAULT_DEDUP_WINDOW_MINUTES = 10
DEFAULT_SUPPRESSION_CACHE_SIZE = 10_000

SKIP_DUPLICATE = "duplicate"

EVENT_ALERT_CREATED = "alert_created"
EVENT_ALERT_ACKNOWLEDGED = "alert_acknowledged"
EVENT_ALERT_RESOLVED = "alert_resolved"


class AlertEventPublisher(Protocol):
    """Anything that can publish alert lifecycle events."""

    async def publish_alert_event(self, event_type: str, alert: Alert) -> int:
        ...


def build_dedup_key(alert_type: str, metric_key: str) -> str:
    """
    Build the suppression key for an alert type and metric.

    Example:
        >>> build_dedup_key("SQL CPU Usage Anomaly", "SQL CPU Usage|cpuusage||PROD")
        'SQL CPU Usage Anomaly#SQL CPU Usage|cpuusage||PROD'
    """
    return f"{alert_type}#{metric_key}"


class AlertManager:
    """
    Orchestrates the alert lifecycle.

    Responsibilities:
    - Evaluate samples against baselines or fixed thresholds
    - Create Alert objects for actionable deviations
    - Deduplicate: no second Active alert for the same type and metric
      within the dedup window
    - Acknowledge and resolve alerts

    The store query is the authority for deduplication; the in-process
    cache only short-circuits it.

    Attributes:
        store: AlertStore for persistence.
        evaluator: DeviationEvaluator for classification.
        publisher: Optional event publisher (e.g., RedisClient).
        dedup_window_minutes: Suppression window.
    """

    def __init__(
        self,
        store: AlertStore,
        evaluator: DeviationEvaluator,
        publisher: Optional[AlertEventPublisher] = None,
        dedup_window_minutes: int = DEFAULT_DEDUP_WINDOW_MINUTES,
        suppression_cache_size: int = DEFAULT_SUPPRESSION_CACHE_SIZE,
    ) -> None:
        """
        Initialize the AlertManager.

        Args:
            store: AlertStore for persisting alerts.
            evaluator: DeviationEvaluator for classification.
            publisher: Optional alert event publisher.
            dedup_window_minutes: Suppression window for repeated anomalies.
            suppression_cache_size: Maximum entries in the suppression cache.
        """
        self.store = store
        self.evaluator = evaluator
        self.publisher = publisher
        self.dedup_window_minutes = dedup_window_minutes
        self._recent: ExpiringKeyMap[str] = ExpiringKeyMap(
            max_entries=suppression_cache_size,
            ttl_seconds=dedup_window_minutes * 60,
        )

        logger.info(
            "alert_manager_initialized",
            dedup_window_minutes=dedup_window_minutes,
            suppression_cache_size=suppression_cache_size,
            publisher_enabled=publisher is not None,
        )

    async def process_sample(
        self,
        sample: MetricSample,
        now: Optional[datetime] = None,
    ) -> AlertResult:
        """
        Evaluate a sample and create an alert if warranted.

        Args:
            sample: The metric sample.
            now: Current time (defaults to now). Used as the alert's
                creation time and the dedup window anchor.

        Returns:
            AlertResult: Whether an alert was created, or why not.

        Example:
            >>> first = await manager.process_sample(sample)
            >>> second = await manager.process_sample(sample)
            >>> first.triggered, second.skip_reason
            (True, 'duplicate')
        """
        timestamp = now or datetime.now(timezone.utc)

        baseline = await self.store.get_latest_baseline(sample.key)
        evaluation = self.evaluator.evaluate(sample, baseline)

        if evaluation.skip_reason is not None:
            logger.debug(
                "sample_skipped",
                metric_key=str(sample.key),
                skip_reason=evaluation.skip_reason,
            )
            return AlertResult(
                triggered=False,
                alert_type=evaluation.alert_type,
                skip_reason=evaluation.skip_reason,
                message=evaluation.message,
            )

        if not evaluation.should_alert:
            return AlertResult(
                triggered=False,
                alert_type=evaluation.alert_type,
                message=evaluation.message,
            )

        alert_type = evaluation.alert_type or sample.key.metric_name
        metric_key = str(sample.key)

        existing_id = await self._find_duplicate(alert_type, metric_key, timestamp)
        if existing_id is not None:
            logger.info(
                "alert_suppressed",
                alert_type=alert_type,
                metric_key=metric_key,
                existing_alert_id=existing_id,
            )
            return AlertResult(
                triggered=False,
                alert_id=existing_id,
                alert_type=alert_type,
                severity=evaluation.severity,
                skip_reason=SKIP_DUPLICATE,
                message=evaluation.message,
            )

        alert = self._create_alert(sample, evaluation, alert_type, baseline, timestamp)
        await self.store.insert_alert(alert)
        self._recent.set(build_dedup_key(alert_type, metric_key), alert.alert_id)

        logger.info(
            "alert_created",
            alert_id=alert.alert_id,
            alert_type=alert_type,
            severity=alert.severity.value,
            metric_key=metric_key,
            value=sample.value,
        )
        await self._publish(EVENT_ALERT_CREATED, alert)

        return AlertResult(
            triggered=True,
            alert_id=alert.alert_id,
            alert_type=alert_type,
            severity=alert.severity,
            message=alert.message,
        )

    async def acknowledge_alert(
        self,
        alert_id: str,
        acknowledged_by: str,
        now: Optional[datetime] = None,
    ) -> Alert:
        """
        Acknowledge an Active alert.

        Args:
            alert_id: Alert identifier.
            acknowledged_by: Operator acknowledging the alert.
            now: Acknowledgment time (defaults to now).

        Returns:
            Alert: The acknowledged alert.

        Raises:
            NotFoundError: If the alert does not exist.
            AlertTransitionError: If the alert is not Active.
        """
        alert = await self._require_alert(alert_id)
        updated = alert.acknowledge(acknowledged_by, now or datetime.now(timezone.utc))
        await self.store.update_alert(updated)

        logger.info(
            "alert_acknowledged",
            alert_id=alert_id,
            acknowledged_by=acknowledged_by,
        )
        await self._publish(EVENT_ALERT_ACKNOWLEDGED, updated)
        return updated

    async def resolve_alert(
        self,
        alert_id: str,
        now: Optional[datetime] = None,
    ) -> Alert:
        """
        Resolve an Active or Acknowledged alert.

        Args:
            alert_id: Alert identifier.
            now: Resolution time (defaults to now).

        Returns:
            Alert: The resolved alert.

        Raises:
            NotFoundError: If the alert does not exist.
            AlertTransitionError: If the alert is already resolved.
        """
        alert = await self._require_alert(alert_id)
        updated = alert.resolve(now or datetime.now(timezone.utc))
        await self.store.update_alert(updated)

        metric_key = alert.metadata.get("metric_key")
        if metric_key:
            self._recent.discard(build_dedup_key(alert.alert_type, str(metric_key)))

        logger.info("alert_resolved", alert_id=alert_id)
        await self._publish(EVENT_ALERT_RESOLVED, updated)
        return updated

    async def get_alert(self, alert_id: str) -> Alert:
        """
        Get an alert by identifier.

        Raises:
            NotFoundError: If the alert does not exist.
        """
        return await self._require_alert(alert_id)

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        limit: int = 100,
    ) -> List[Alert]:
        """List alerts, newest first."""
        return await self.store.list_alerts(status=status, limit=limit)

    def clear_suppression_state(self) -> None:
        """Clear the in-process suppression cache."""
        self._recent.clear()
        logger.info("suppression_state_cleared")

    async def _find_duplicate(
        self,
        alert_type: str,
        metric_key: str,
        now: datetime,
    ) -> Optional[str]:
        """Return the id of an Active alert suppressing this one, if any."""
        since = now - timedelta(minutes=self.dedup_window_minutes)
        dedup_key = build_dedup_key(alert_type, metric_key)

        cached_id = self._recent.get(dedup_key)
        if cached_id is not None:
            cached = await self.store.get_alert(cached_id)
            if cached is not None and cached.is_active and cached.created_at >= since:
                return cached_id
            self._recent.discard(dedup_key)

        existing = await self.store.find_active_alert(alert_type, metric_key, since)
        if existing is None:
            return None
        self._recent.set(dedup_key, existing.alert_id)
        return existing.alert_id

    def _create_alert(
        self,
        sample: MetricSample,
        evaluation: Evaluation,
        alert_type: str,
        baseline: Optional[MetricBaseline],
        timestamp: datetime,
    ) -> Alert:
        """Build a new Alert from an evaluation."""
        metadata: Dict[str, Any] = dict(sample.tags)
        metadata.update(
            {
                "metric_key": str(sample.key),
                "metric_name": sample.key.metric_name,
                "metric_type": sample.key.metric_type,
                "metric_class": sample.key.metric_class,
                "environment": sample.key.environment,
                "value": sample.value,
                "sample_timestamp": sample.timestamp.isoformat(),
                "method": evaluation.method,
                "deviation_status": evaluation.status.value,
                "z_score": evaluation.z_score,
                "percent_change": evaluation.percent_change,
                "threshold": evaluation.threshold,
                "baseline_mean": baseline.mean if baseline is not None else None,
                "baseline_std": baseline.standard_deviation if baseline is not None else None,
            }
        )
        return Alert(
            alert_id=generate_alert_id(timestamp),
            alert_type=alert_type,
            severity=evaluation.severity,
            message=evaluation.message,
            metadata=metadata,
            created_at=timestamp,
        )

    async def _require_alert(self, alert_id: str) -> Alert:
        alert = await self.store.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("alert", alert_id)
        return alert

    async def _publish(self, event_type: str, alert: Alert) -> None:
        """Publish an alert event; failures are logged, not raised."""
        if self.publisher is None:
            return
        try:
            await self.publisher.publish_alert_event(event_type, alert)
        except Exception as e:
            logger.warning(
                "alert_event_publish_failed",
                event_type=event_type,
                alert_id=alert.alert_id,
                error=str(e),
            )


def create_alert_manager(
    store: AlertStore,
    evaluator: Optional[DeviationEvaluator] = None,
    publisher: Optional[AlertEventPublisher] = None,
    dedup_window_minutes: int = DEFAULT_DEDUP_WINDOW_MINUTES,
    suppression_cache_size: int = DEFAULT_SUPPRESSION_CACHE_SIZE,
) -> AlertManager:
    """
    Factory function to create an AlertManager.

    Example:
        >>> manager = create_alert_manager(store)
    """
    return AlertManager(
        store=store,
        evaluator=evaluator or DeviationEvaluator(),
        publisher=publisher,
        dedup_window_minutes=dedup_window_minutes,
        suppression_cache_size=suppression_cache_size,
    )
