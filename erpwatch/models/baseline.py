"""
Metric sample and baseline models.

A metric is identified by a MetricKey (name, type, optional class,
environment). Samples for a key come from the external metric source;
baselines are statistical summaries of those samples over a trailing
window and are stored append-only.

Models:
    MetricKey: Identity of a monitored metric
    MetricSample: One observed value of a metric
    MetricBaseline: Statistical baseline for a metric key
    DeviationStatus: Classification of a sample against its baseline
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


DEFAULT_ENVIRONMENT = "PROD"


class DeviationStatus(str, Enum):
    """
    Classification of a sample's deviation from its baseline.

    Attributes:
        IMPROVED: Below baseline by more than the improvement band.
        NORMAL: Within the normal band.
        WARNING: Moderately above baseline.
        ALERT: Significantly above baseline.
        CRITICAL: Far above baseline.
    """

    IMPROVED = "Improved"
    NORMAL = "Normal"
    WARNING = "Warning"
    ALERT = "Alert"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Numeric order used for monotonicity checks."""
        return _DEVIATION_RANK[self]

    @property
    def is_actionable(self) -> bool:
        """Check if this classification should raise an alert."""
        return self.rank >= _DEVIATION_RANK[DeviationStatus.WARNING]


_DEVIATION_RANK = {
    DeviationStatus.IMPROVED: 0,
    DeviationStatus.NORMAL: 1,
    DeviationStatus.WARNING: 2,
    DeviationStatus.ALERT: 3,
    DeviationStatus.CRITICAL: 4,
}


class MetricKey(BaseModel):
    """
    Identity of a monitored metric.

    Attributes:
        metric_name: Human-readable metric name (e.g., "SQL CPU Usage").
        metric_type: Metric type code (e.g., "cpuusage").
        metric_class: Optional sub-class (e.g., a batch job class name).
        environment: Environment code (e.g., "PROD").

    Example:
        >>> key = MetricKey(metric_name="SQL CPU Usage", metric_type="cpuusage")
        >>> str(key)
        'SQL CPU Usage|cpuusage||PROD'
    """

    model_config = {"frozen": True, "extra": "forbid"}

    metric_name: str = Field(
        ...,
        description="Human-readable metric name",
        min_length=1,
    )
    metric_type: str = Field(
        ...,
        description="Metric type code",
        min_length=1,
    )
    metric_class: Optional[str] = Field(
        default=None,
        description="Optional metric sub-class",
    )
    environment: str = Field(
        default=DEFAULT_ENVIRONMENT,
        description="Environment code",
    )

    def __str__(self) -> str:
        return "|".join(
            [
                self.metric_name,
                self.metric_type,
                self.metric_class or "",
                self.environment,
            ]
        )


class MetricSample(BaseModel):
    """
    One observed value of a metric.

    Attributes:
        key: Metric identity.
        value: Observed value.
        timestamp: Observation time.
        tags: Source tags (e.g., {"AosServer": "AOS01"}).
    """

    model_config = {"frozen": True, "extra": "forbid"}

    key: MetricKey = Field(
        ...,
        description="Metric identity",
    )
    value: float = Field(
        ...,
        description="Observed value",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Observation time",
    )
    tags: Dict[str, str] = Field(
        default_factory=dict,
        description="Source tags",
    )


class MetricBaseline(BaseModel):
    """
    Statistical baseline for a metric key over a trailing window.

    Baselines are never mutated; each recalculation appends a new record
    and the newest one for a key is used for evaluation.

    Attributes:
        key: Metric identity.
        percentile_50: Median of the window.
        percentile_95: 95th percentile of the window.
        percentile_99: 99th percentile of the window.
        mean: Arithmetic mean of the window.
        standard_deviation: Population standard deviation of the window.
        sample_count: Number of samples used.
        window_start: Start of the trailing window.
        window_end: End of the trailing window.
        computed_at: When the baseline was computed.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    key: MetricKey = Field(
        ...,
        description="Metric identity",
    )
    percentile_50: float = Field(..., description="P50 of the window")
    percentile_95: float = Field(..., description="P95 of the window")
    percentile_99: float = Field(..., description="P99 of the window")
    mean: float = Field(..., description="Mean of the window")
    standard_deviation: float = Field(
        ...,
        description="Population standard deviation of the window",
        ge=0,
    )
    sample_count: int = Field(
        ...,
        description="Number of samples used",
        ge=1,
    )
    window_start: datetime = Field(..., description="Start of the trailing window")
    window_end: datetime = Field(..., description="End of the trailing window")
    computed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the baseline was computed",
    )

    @model_validator(mode="after")
    def validate_window(self) -> "MetricBaseline":
        """Validate window bounds and percentile ordering."""
        if self.window_end < self.window_start:
            raise ValueError("window_end must not precede window_start")
        if not (self.percentile_50 <= self.percentile_95 <= self.percentile_99):
            raise ValueError("percentiles must be non-decreasing")
        return self
