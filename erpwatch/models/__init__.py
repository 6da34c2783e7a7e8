"""
Shared Pydantic data models for the ERP alert engine.

Modules:
    alerts: Alert records, severity and lifecycle status
    baseline: Metric keys, samples, baselines and deviation status
    correlation: Incident grouping of related alerts
    escalation: Escalation rules, tiers and escalation records

Example:
    >>> from erpwatch.models import Alert, AlertSeverity, MetricKey
"""

# Alert models
from erpwatch.models.alerts import (
    Alert,
    AlertResult,
    AlertSeverity,
    AlertStatus,
    AlertTransitionError,
    generate_alert_id,
)

# Baseline models
from erpwatch.models.baseline import (
    DEFAULT_ENVIRONMENT,
    DeviationStatus,
    MetricBaseline,
    MetricKey,
    MetricSample,
)

# Correlation models
from erpwatch.models.correlation import (
    AlertCorrelation,
    CorrelationStatus,
    generate_correlation_id,
)

# Escalation models
from erpwatch.models.escalation import (
    AlertEscalation,
    AlertEscalationRule,
    DeliveryResult,
    EscalationTier,
    parse_recipients,
)

__all__ = [
    # Alerts
    "Alert",
    "AlertResult",
    "AlertSeverity",
    "AlertStatus",
    "AlertTransitionError",
    "generate_alert_id",
    # Baselines
    "DEFAULT_ENVIRONMENT",
    "DeviationStatus",
    "MetricBaseline",
    "MetricKey",
    "MetricSample",
    # Correlations
    "AlertCorrelation",
    "CorrelationStatus",
    "generate_correlation_id",
    # Escalations
    "AlertEscalation",
    "AlertEscalationRule",
    "DeliveryResult",
    "EscalationTier",
    "parse_recipients",
]
