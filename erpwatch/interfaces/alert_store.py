"""
Abstract base class for the alert store.

The alert store holds the authoritative records of the engine: alerts,
baselines, correlations, escalation rules and escalation records. Records
reference each other by identifier only.

Implementations:
    erpwatch.storage.postgres_client.PostgresClient: PostgreSQL via asyncpg
    erpwatch.storage.memory_store.InMemoryAlertStore: process-local store
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from erpwatch.models.alerts import Alert, AlertSeverity, AlertStatus
from erpwatch.models.baseline import MetricBaseline, MetricKey
from erpwatch.models.correlation import AlertCorrelation, CorrelationStatus
from erpwatch.models.escalation import AlertEscalation, AlertEscalationRule


class NotFoundError(Exception):
    """
    Raised when a referenced record does not exist.

    Attributes:
        entity: Record kind (e.g., "alert", "correlation").
        identifier: The missing identifier.
    """

    def __init__(self, entity: str, identifier: object) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class AlertStore(ABC):
    """
    Persistence contract for the alert lifecycle engine.

    Writes are single-record operations; no method requires a lock
    spanning several records.
    """

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the store is reachable."""
        pass

    # =========================================================================
    # ALERTS
    # =========================================================================

    @abstractmethod
    async def insert_alert(self, alert: Alert) -> None:
        """Insert a new alert."""
        pass

    @abstractmethod
    async def update_alert(self, alert: Alert) -> None:
        """
        Persist the lifecycle fields of an existing alert.

        Only status, acknowledged_at, acknowledged_by and resolved_at are
        written; correlation_id is owned by set_alert_correlation.
        """
        pass

    @abstractmethod
    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        """Return an alert by identifier, or None."""
        pass

    @abstractmethod
    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        limit: int = 100,
        created_before: Optional[datetime] = None,
    ) -> List[Alert]:
        """
        List alerts, newest first.

        Args:
            status: Optional status filter.
            limit: Maximum number of results.
            created_before: Only alerts created strictly before this time.
        """
        pass

    @abstractmethod
    async def find_active_alert(
        self,
        alert_type: str,
        metric_key: str,
        since: datetime,
    ) -> Optional[Alert]:
        """
        Find the newest Active alert of a type and metric created since a time.

        Args:
            alert_type: Alert type to match.
            metric_key: Value of ``metadata["metric_key"]`` to match.
            since: Inclusive lower bound on ``created_at``.
        """
        pass

    @abstractmethod
    async def get_uncorrelated_active_alerts(self, since: datetime) -> List[Alert]:
        """Return Active alerts without a correlation created at or after ``since``."""
        pass

    @abstractmethod
    async def get_alerts_for_correlation(self, correlation_id: str) -> List[Alert]:
        """Return all alerts referencing a correlation, oldest first."""
        pass

    @abstractmethod
    async def count_alerts_for_correlation(self, correlation_id: str) -> int:
        """Count alerts referencing a correlation."""
        pass

    @abstractmethod
    async def set_alert_correlation(self, alert_id: str, correlation_id: str) -> None:
        """Stamp an alert with a correlation identifier."""
        pass

    @abstractmethod
    async def get_escalation_candidates(
        self,
        alert_type: Optional[str],
        min_severity: AlertSeverity,
    ) -> List[Alert]:
        """
        Return Active (unacknowledged, unresolved) alerts for a rule.

        Args:
            alert_type: Type filter, None for all types.
            min_severity: Minimum severity.
        """
        pass

    @abstractmethod
    async def delete_alerts(self, alert_ids: Sequence[str]) -> int:
        """Delete alerts by identifier, returning the number deleted."""
        pass

    # =========================================================================
    # BASELINES
    # =========================================================================

    @abstractmethod
    async def insert_baseline(self, baseline: MetricBaseline) -> None:
        """Append a baseline record."""
        pass

    @abstractmethod
    async def get_latest_baseline(self, key: MetricKey) -> Optional[MetricBaseline]:
        """Return the newest baseline for a key, or None."""
        pass

    @abstractmethod
    async def list_baselines(
        self,
        environment: Optional[str] = None,
        latest_only: bool = True,
    ) -> List[MetricBaseline]:
        """
        List baselines, newest first.

        Args:
            environment: Optional environment filter.
            latest_only: Return only the newest record per key.
        """
        pass

    # =========================================================================
    # CORRELATIONS
    # =========================================================================

    @abstractmethod
    async def insert_correlation(self, correlation: AlertCorrelation) -> None:
        """Insert a new correlation."""
        pass

    @abstractmethod
    async def update_correlation(self, correlation: AlertCorrelation) -> None:
        """Persist an existing correlation."""
        pass

    @abstractmethod
    async def get_correlation(self, correlation_id: str) -> Optional[AlertCorrelation]:
        """Return a correlation by identifier, or None."""
        pass

    @abstractmethod
    async def list_correlations(
        self,
        status: Optional[CorrelationStatus] = None,
    ) -> List[AlertCorrelation]:
        """List correlations, most recently detected first."""
        pass

    # =========================================================================
    # ESCALATION RULES
    # =========================================================================

    @abstractmethod
    async def list_rules(self, enabled: Optional[bool] = None) -> List[AlertEscalationRule]:
        """List escalation rules ordered by name."""
        pass

    @abstractmethod
    async def get_rule(self, rule_id: int) -> Optional[AlertEscalationRule]:
        """Return a rule by identifier, or None."""
        pass

    @abstractmethod
    async def create_rule(self, rule: AlertEscalationRule) -> AlertEscalationRule:
        """Insert a rule and return it with its assigned identifier."""
        pass

    @abstractmethod
    async def update_rule(self, rule: AlertEscalationRule) -> bool:
        """Replace a rule; returns False if it does not exist."""
        pass

    @abstractmethod
    async def delete_rule(self, rule_id: int) -> bool:
        """Delete a rule; returns False if it does not exist."""
        pass

    # =========================================================================
    # ESCALATIONS
    # =========================================================================

    @abstractmethod
    async def insert_escalation(self, escalation: AlertEscalation) -> None:
        """Append an escalation record."""
        pass

    @abstractmethod
    async def claim_escalation(self, escalation: AlertEscalation) -> bool:
        """
        Insert an escalation record unless (alert, rule, level) is taken.

        Returns:
            bool: True if this call inserted the record.
        """
        pass

    @abstractmethod
    async def record_escalation_outcome(self, escalation: AlertEscalation) -> None:
        """Write delivery flags and error text onto a claimed record."""
        pass

    @abstractmethod
    async def has_escalation(self, alert_id: str, rule_id: int, level: int) -> bool:
        """Check whether a tier was already recorded for an alert and rule."""
        pass

    @abstractmethod
    async def list_escalations_for_alert(self, alert_id: str) -> List[AlertEscalation]:
        """Return escalation records for an alert, oldest first."""
        pass
