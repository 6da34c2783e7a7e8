"""
Alert detection and lifecycle for the ERP alert engine.

This package contains sample evaluation, alert lifecycle management,
incident correlation, escalation and archiving.

Components:
    evaluator: DeviationEvaluator for baseline/threshold classification
    suppression: ExpiringKeyMap for dedup bookkeeping
    manager: AlertManager for alert lifecycle
    correlation: CorrelationEngine for incident grouping
    escalation: EscalationEngine for tiered notifications
    archiving: ArchivingEngine for retention sweeps
    dispatcher: ChannelDispatcher for notification routing
    channels/: Notification channels (email, chat)

Example:
    >>> from erpwatch.detection import (
    ...     AlertManager,
    ...     CorrelationEngine,
    ...     DeviationEvaluator,
    ...     EscalationEngine,
    ... )
    >>> manager = AlertManager(store, DeviationEvaluator())
    >>> correlations = CorrelationEngine(store)
    >>> escalations = EscalationEngine(store, dispatcher)
"""

from erpwatch.detection.archiving import (
    ArchiveResult,
    ArchivingEngine,
    create_archiving_engine,
)
from erpwatch.detection.correlation import (
    CorrelationEngine,
    CorrelationRunResult,
    create_correlation_engine,
)
from erpwatch.detection.dispatcher import (
    CHANNEL_CHAT,
    CHANNEL_EMAIL,
    ChannelDispatcher,
    NotificationChannel,
)
from erpwatch.detection.escalation import (
    EscalationEngine,
    build_escalation_message,
)
from erpwatch.detection.evaluator import (
    DeviationEvaluator,
    Evaluation,
    create_evaluator,
)
from erpwatch.detection.manager import (
    DEFAULT_DEDUP_WINDOW_MINUTES,
    AlertManager,
    create_alert_manager,
)
from erpwatch.detection.suppression import ExpiringKeyMap

__all__ = [
    # Archiving
    "ArchiveResult",
    "ArchivingEngine",
    "create_archiving_engine",
    # Correlation
    "CorrelationEngine",
    "CorrelationRunResult",
    "create_correlation_engine",
    # Dispatcher
    "CHANNEL_CHAT",
    "CHANNEL_EMAIL",
    "ChannelDispatcher",
    "NotificationChannel",
    # Escalation
    "EscalationEngine",
    "build_escalation_message",
    # Evaluator
    "DeviationEvaluator",
    "Evaluation",
    "create_evaluator",
    # Manager
    "DEFAULT_DEDUP_WINDOW_MINUTES",
    "AlertManager",
    "create_alert_manager",
    # Suppression
    "ExpiringKeyMap",
]
