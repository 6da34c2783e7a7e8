"""
Alert correlation (incident) models.

Models:
    CorrelationStatus: Incident status (Open -> Resolved -> Closed)
    AlertCorrelation: A group of alerts believed to share a root cause
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from erpwatch.models.alerts import AlertSeverity


class CorrelationStatus(str, Enum):
    """Incident status."""

    OPEN = "Open"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


def generate_correlation_id(timestamp: Optional[datetime] = None) -> str:
    """
    Build a new correlation identifier.

    Format: ``CORR_{yyyyMMdd_HHmmss}_{hex8}``.
    """
    ts = timestamp or datetime.now(timezone.utc)
    return f"CORR_{ts:%Y%m%d_%H%M%S}_{uuid4().hex[:8]}"


class AlertCorrelation(BaseModel):
    """
    An incident grouping one or more alerts.

    Member alerts reference the correlation by ``correlation_id``; the
    correlation itself holds no alert objects.

    Attributes:
        correlation_id: Unique incident identifier.
        title: Short title (e.g., "Incident: Blocking Detected (2 alerts)").
        description: Longer description.
        severity: Maximum severity of member alerts.
        status: Incident status.
        first_detected_at: Creation time of the earliest member alert.
        alert_count: Number of alerts referencing this correlation.
        confidence_score: Grouping confidence (0-100).
        correlation_reason: Why the alerts were grouped.
        created_at: When the correlation was created.
        updated_at: When the correlation was last changed.
        resolved_at: When the correlation was resolved.
    """

    model_config = {"extra": "forbid"}

    correlation_id: str = Field(
        default_factory=generate_correlation_id,
        description="Unique incident identifier",
    )
    title: str = Field(
        ...,
        description="Short incident title",
    )
    description: str = Field(
        default="",
        description="Incident description",
    )
    severity: AlertSeverity = Field(
        ...,
        description="Maximum severity of member alerts",
    )
    status: CorrelationStatus = Field(
        default=CorrelationStatus.OPEN,
        description="Incident status",
    )
    first_detected_at: datetime = Field(
        ...,
        description="Creation time of the earliest member alert",
    )
    alert_count: int = Field(
        default=0,
        description="Number of alerts referencing this correlation",
        ge=0,
    )
    confidence_score: int = Field(
        default=0,
        description="Grouping confidence score",
        ge=0,
        le=100,
    )
    correlation_reason: str = Field(
        default="",
        description="Human-readable grouping reason",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the correlation was created",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="When the correlation was last changed",
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        description="When the correlation was resolved",
    )

    @property
    def is_open(self) -> bool:
        """Check if the incident is still open."""
        return self.status == CorrelationStatus.OPEN
