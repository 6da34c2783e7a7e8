"""
Abstract interfaces for the ERP alert engine.

These are the seams to external collaborators: the metric collectors and
the persistence technology. Notification channels are a structural
Protocol in erpwatch.detection.dispatcher.

Example:
    >>> from erpwatch.interfaces import AlertStore, MetricSource
    >>> class MyStore(AlertStore):
    ...     async def insert_alert(self, alert): ...
    ...     # ... implement other abstract methods

Modules:
    alert_store: AlertStore ABC and NotFoundError
    metric_source: MetricSource ABC for historical samples
"""

from erpwatch.interfaces.alert_store import AlertStore, NotFoundError
from erpwatch.interfaces.metric_source import MetricSource

__all__: list[str] = [
    "AlertStore",
    "MetricSource",
    "NotFoundError",
]
