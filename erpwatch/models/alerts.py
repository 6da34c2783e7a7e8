"""
Alert data models for the ERP monitoring engine.

This module defines the alert record, its severity and lifecycle status,
and the evaluation result produced when a metric sample is classified.

Models:
    AlertSeverity: Ordered severity levels (Info < Warning < Critical)
    AlertStatus: Lifecycle status (Active, Acknowledged, Resolved)
    AlertResult: Outcome of processing one metric sample
    Alert: Active or historical alert instance
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class AlertTransitionError(Exception):
    """
    Raised when an alert lifecycle transition is not allowed.

    Attributes:
        alert_id: The alert the transition was attempted on.
        current_status: Status the alert was in.
        target_status: Status that was requested.
    """

    def __init__(
        self,
        alert_id: str,
        current_status: "AlertStatus",
        target_status: "AlertStatus",
    ) -> None:
        self.alert_id = alert_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Alert {alert_id} cannot move from {current_status.value} "
            f"to {target_status.value}"
        )


class AlertSeverity(str, Enum):
    """
    Alert severity levels.

    Severities are ordered; use ``rank`` for comparisons.

    Attributes:
        INFO: Informational, no immediate concern.
        WARNING: Elevated condition requiring investigation.
        CRITICAL: Severe condition requiring immediate attention.
    """

    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Numeric order of the severity (Info=1, Warning=2, Critical=3)."""
        return _SEVERITY_RANK[self]

    def at_least(self, other: "AlertSeverity") -> bool:
        """Check if this severity is greater than or equal to another."""
        return self.rank >= other.rank

    @classmethod
    def highest(cls, severities: Any) -> "AlertSeverity":
        """
        Return the highest severity from an iterable.

        Args:
            severities: Iterable of AlertSeverity values.

        Returns:
            AlertSeverity: The maximum severity, INFO for an empty iterable.
        """
        return max(severities, key=lambda s: s.rank, default=cls.INFO)


_SEVERITY_RANK = {
    AlertSeverity.INFO: 1,
    AlertSeverity.WARNING: 2,
    AlertSeverity.CRITICAL: 3,
}


class AlertStatus(str, Enum):
    """
    Alert lifecycle status.

    Allowed transitions:
        Active -> Acknowledged -> Resolved
        Active -> Resolved
    """

    ACTIVE = "Active"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"


def generate_alert_id(timestamp: Optional[datetime] = None) -> str:
    """
    Build a new alert identifier.

    Format: ``ALERT_{yyyyMMdd_HHmmss}_{hex8}``.

    Args:
        timestamp: Creation time, defaults to now.

    Returns:
        str: Unique alert identifier.
    """
    ts = timestamp or datetime.now(timezone.utc)
    return f"ALERT_{ts:%Y%m%d_%H%M%S}_{uuid4().hex[:8]}"


class AlertResult(BaseModel):
    """
    Result of processing a metric sample through the alert manager.

    Attributes:
        triggered: Whether a new alert was created.
        alert_id: Identifier of the created (or suppressing) alert.
        alert_type: The alert type that was evaluated.
        severity: The severity if triggered.
        skip_reason: Why no alert was created (e.g., "duplicate", "normal").
        message: Optional message with details.

    Example:
        >>> result = AlertResult(
        ...     triggered=False,
        ...     alert_type="SQL CPU Usage Anomaly",
        ...     skip_reason="duplicate",
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    triggered: bool = Field(
        ...,
        description="Whether a new alert was created",
    )
    alert_id: Optional[str] = Field(
        default=None,
        description="Identifier of the created or suppressing alert",
    )
    alert_type: Optional[str] = Field(
        default=None,
        description="The alert type that was evaluated",
    )
    severity: Optional[AlertSeverity] = Field(
        default=None,
        description="The severity if triggered",
    )
    skip_reason: Optional[str] = Field(
        default=None,
        description="Reason no alert was created (e.g., 'duplicate', 'normal')",
    )
    message: Optional[str] = Field(
        default=None,
        description="Optional message with details",
    )

    @property
    def was_skipped(self) -> bool:
        """Check if the sample was skipped rather than evaluated as normal."""
        return not self.triggered and self.skip_reason is not None


class Alert(BaseModel):
    """
    Active or historical alert instance.

    Attributes:
        alert_id: Unique identifier for this alert instance.
        alert_type: Type of alert (e.g., "Blocking Detected").
        severity: Alert severity.
        message: Human-readable message.
        metadata: Free-form context (metric key, value, server tags, ...).
        status: Lifecycle status.
        created_at: When the alert was created.
        acknowledged_at: When an operator acknowledged the alert.
        acknowledged_by: Who acknowledged the alert.
        resolved_at: When the alert was resolved.
        correlation_id: Incident this alert belongs to, if any.

    Example:
        >>> alert = Alert(
        ...     alert_type="Blocking Detected",
        ...     severity=AlertSeverity.WARNING,
        ...     message="Blocking chain on AOS01",
        ...     metadata={"AosServer": "AOS01"},
        ...     created_at=datetime.now(timezone.utc),
        ... )
        >>> acked = alert.acknowledge("ops@example.com")
    """

    model_config = {"extra": "forbid"}

    # Identification
    alert_id: str = Field(
        default_factory=generate_alert_id,
        description="Unique identifier for this alert instance",
    )
    alert_type: str = Field(
        ...,
        description="Type of alert",
        min_length=1,
        max_length=200,
    )

    # Classification
    severity: AlertSeverity = Field(
        ...,
        description="Alert severity",
    )
    message: str = Field(
        default="",
        description="Human-readable alert message",
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form alert context",
    )

    # Lifecycle
    status: AlertStatus = Field(
        default=AlertStatus.ACTIVE,
        description="Lifecycle status",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the alert was created",
    )
    acknowledged_at: Optional[datetime] = Field(
        default=None,
        description="When the alert was acknowledged",
    )
    acknowledged_by: Optional[str] = Field(
        default=None,
        description="Who acknowledged the alert",
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        description="When the alert was resolved",
    )

    # Correlation reference (identifier only)
    correlation_id: Optional[str] = Field(
        default=None,
        description="Identifier of the correlation this alert belongs to",
    )

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "Alert":
        """Validate lifecycle invariants."""
        if self.acknowledged_at is not None:
            if not self.acknowledged_by:
                raise ValueError("acknowledged_at requires acknowledged_by")
            if self.status == AlertStatus.ACTIVE:
                raise ValueError("acknowledged alert cannot be Active")
        if self.status == AlertStatus.ACKNOWLEDGED and self.acknowledged_at is None:
            raise ValueError("Acknowledged status requires acknowledged_at")
        if self.status == AlertStatus.RESOLVED and self.resolved_at is None:
            raise ValueError("Resolved status requires resolved_at")
        if self.resolved_at is not None and self.resolved_at < self.created_at:
            raise ValueError("resolved_at must not precede created_at")
        return self

    @property
    def is_active(self) -> bool:
        """Check if the alert is Active (open and unacknowledged)."""
        return self.status == AlertStatus.ACTIVE

    @property
    def is_acknowledged(self) -> bool:
        """Check if the alert has been acknowledged."""
        return self.acknowledged_at is not None

    @property
    def is_resolved(self) -> bool:
        """Check if the alert has been resolved."""
        return self.status == AlertStatus.RESOLVED

    @property
    def server(self) -> Optional[str]:
        """Originating server tag from metadata, if present."""
        for key in ("AosServer", "server"):
            value = self.metadata.get(key)
            if value:
                return str(value)
        return None

    def age_minutes(self, now: Optional[datetime] = None) -> float:
        """Minutes elapsed since the alert was created."""
        current = now or datetime.now(timezone.utc)
        return (current - self.created_at).total_seconds() / 60.0

    def acknowledge(
        self,
        acknowledged_by: str,
        timestamp: Optional[datetime] = None,
    ) -> "Alert":
        """
        Mark the alert as acknowledged.

        Args:
            acknowledged_by: Operator acknowledging the alert.
            timestamp: Acknowledgment time, defaults to now.

        Returns:
            Alert: Updated alert.

        Raises:
            AlertTransitionError: If the alert is not Active.
        """
        if self.status != AlertStatus.ACTIVE:
            raise AlertTransitionError(
                self.alert_id, self.status, AlertStatus.ACKNOWLEDGED
            )
        return self.model_copy(
            update={
                "status": AlertStatus.ACKNOWLEDGED,
                "acknowledged_at": timestamp or datetime.now(timezone.utc),
                "acknowledged_by": acknowledged_by,
            }
        )

    def resolve(self, timestamp: Optional[datetime] = None) -> "Alert":
        """
        Resolve the alert.

        The resolution time is clamped to ``created_at`` so it never
        precedes creation.

        Args:
            timestamp: Resolution time, defaults to now.

        Returns:
            Alert: Updated alert.

        Raises:
            AlertTransitionError: If the alert is already resolved.
        """
        if self.status == AlertStatus.RESOLVED:
            raise AlertTransitionError(
                self.alert_id, self.status, AlertStatus.RESOLVED
            )
        resolved_time = max(timestamp or datetime.now(timezone.utc), self.created_at)
        return self.model_copy(
            update={
                "status": AlertStatus.RESOLVED,
                "resolved_at": resolved_time,
            }
        )

    def correlate(self, correlation_id: str) -> "Alert":
        """Return a copy referencing the given correlation."""
        return self.model_copy(update={"correlation_id": correlation_id})
