"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from erpwatch.detection.dispatcher import ChannelDispatcher
from erpwatch.models.alerts import Alert, AlertSeverity
from erpwatch.models.baseline import MetricBaseline, MetricKey, MetricSample
from erpwatch.models.escalation import DeliveryResult
from erpwatch.storage.memory_store import InMemoryAlertStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

CPU_KEY = MetricKey(metric_name="SQL CPU Usage", metric_type="cpuusage")
BATCH_KEY = MetricKey(
    metric_name="Batch Job Duration",
    metric_type="duration",
    metric_class="Payroll",
)


class RecordingChannel:
    """Channel that records every message and answers with a fixed outcome."""

    def __init__(self, name: str, error: Optional[str] = None, raises: bool = False):
        self.name = name
        self.error = error
        self.raises = raises
        self.sent: List[Tuple[List[str], str, str]] = []
        self.closed = False

    async def send(self, recipients: Sequence[str], subject: str, body: str) -> DeliveryResult:
        self.sent.append((list(recipients), subject, body))
        if self.raises:
            raise RuntimeError(f"{self.name} exploded")
        if self.error is not None:
            return DeliveryResult.failed(self.name, self.error)
        return DeliveryResult.ok(self.name)

    async def close(self) -> None:
        self.closed = True


class RecordingPublisher:
    """Alert event publisher that keeps events in memory."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str]] = []

    async def publish_alert_event(self, event_type: str, alert: Alert) -> int:
        self.events.append((event_type, alert.alert_id))
        return 1


def make_alert(
    alert_type: str = "Blocking Detected",
    severity: AlertSeverity = AlertSeverity.WARNING,
    created_at: datetime = NOW,
    server: Optional[str] = "AOS01",
    alert_id: Optional[str] = None,
    **kwargs,
) -> Alert:
    metadata: Dict[str, str] = {"AosServer": server} if server else {}
    fields = dict(
        alert_type=alert_type,
        severity=severity,
        message=f"{alert_type} on {server}",
        metadata=metadata,
        created_at=created_at,
    )
    if alert_id is not None:
        fields["alert_id"] = alert_id
    fields.update(kwargs)
    return Alert(**fields)


def make_samples(
    key: MetricKey,
    values: Sequence[float],
    end: datetime = NOW,
    step: timedelta = timedelta(hours=1),
) -> List[MetricSample]:
    """Samples spaced ``step`` apart, the last one at ``end``."""
    count = len(values)
    return [
        MetricSample(key=key, value=value, timestamp=end - step * (count - 1 - i))
        for i, value in enumerate(values)
    ]


def make_baseline(
    key: MetricKey = CPU_KEY,
    mean: float = 50.0,
    std: float = 10.0,
    computed_at: datetime = NOW - timedelta(hours=1),
) -> MetricBaseline:
    return MetricBaseline(
        key=key,
        percentile_50=mean,
        percentile_95=mean + 2 * std,
        percentile_99=mean + 3 * std,
        mean=mean,
        standard_deviation=std,
        sample_count=100,
        window_start=computed_at - timedelta(days=14),
        window_end=computed_at,
        computed_at=computed_at,
    )


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def email_channel() -> RecordingChannel:
    return RecordingChannel("email")


@pytest.fixture
def chat_channel() -> RecordingChannel:
    return RecordingChannel("chat")


@pytest.fixture
def dispatcher(email_channel, chat_channel) -> ChannelDispatcher:
    return ChannelDispatcher(channels={"email": email_channel, "chat": chat_channel})


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
