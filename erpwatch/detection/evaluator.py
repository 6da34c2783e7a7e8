"""
Deviation evaluator for metric samples.

This module provides the DeviationEvaluator class which classifies a metric
sample against the latest baseline for its key, or against fixed operator
thresholds when no usable baseline exists.

Key Features:
    - Baseline mode: percent change from the baseline mean, mapped to
      Improved / Normal / Warning / Alert / Critical bands
    - Threshold mode: fixed warning/critical values per metric type
    - Z-score reported alongside (None when the baseline is flat)
    - Stateless; deduplication is handled by AlertManager

Example:
    >>> evaluator = DeviationEvaluator()
    >>> evaluation = evaluator.evaluate(sample, baseline)
    >>> if evaluation.should_alert:
    ...     print(evaluation.alert_type, evaluation.severity)
"""

from typing import Dict, Optional

import structlog
from pydantic import BaseModel, Field

from erpwatch.config.models import (
    DEFAULT_FIXED_THRESHOLDS,
    DeviationBands,
    FixedThreshold,
)
from erpwatch.metrics.statistics import percent_change, zscore
from erpwatch.models.alerts import AlertSeverity
from erpwatch.models.baseline import DeviationStatus, MetricBaseline, MetricSample

logger = structlog.get_logger(__name__)


METHOD_BASELINE = "baseline"
METHOD_THRESHOLD = "threshold"

SKIP_NO_THRESHOLD = "no_threshold"

_STATUS_SEVERITY: Dict[DeviationStatus, AlertSeverity] = {
    DeviationStatus.WARNING: AlertSeverity.WARNING,
    DeviationStatus.ALERT: AlertSeverity.WARNING,
    DeviationStatus.CRITICAL: AlertSeverity.CRITICAL,
}


class Evaluation(BaseModel):
    """
    Classification of one metric sample.

    Attributes:
        status: Deviation classification.
        severity: Alert severity, None when no alert is warranted.
        alert_type: Alert type an alert would carry.
        method: "baseline" or "threshold", None when skipped.
        z_score: Deviation in standard deviations (None if undefined).
        percent_change: Percent change from the baseline mean.
        threshold: Fixed threshold that was crossed (threshold mode).
        message: Human-readable description.
        skip_reason: Why the sample could not be classified.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    status: DeviationStatus = Field(..., description="Deviation classification")
    severity: Optional[AlertSeverity] = Field(default=None)
    alert_type: Optional[str] = Field(default=None)
    method: Optional[str] = Field(default=None)
    z_score: Optional[float] = Field(default=None)
    percent_change: Optional[float] = Field(default=None)
    threshold: Optional[float] = Field(default=None)
    message: str = Field(default="")
    skip_reason: Optional[str] = Field(default=None)

    @property
    def should_alert(self) -> bool:
        """Check if this evaluation warrants an alert."""
        return self.severity is not None


def anomaly_alert_type(metric_name: str) -> str:
    """Alert type for a baseline deviation."""
    return f"{metric_name} Anomaly"


def threshold_alert_type(metric_name: str) -> str:
    """Alert type for a fixed threshold breach."""
    return f"{metric_name} Threshold"


class DeviationEvaluator:
    """
    Classifies metric samples against baselines or fixed thresholds.

    Policy, in order:
        1. No baseline, or a baseline with zero mean: fixed thresholds for
           the metric type. value > critical is Critical, value > warning
           is Warning. Unknown types are Normal with skip_reason
           "no_threshold".
        2. Otherwise percent change from the mean selects the band:
           > critical_percent Critical, > alert_percent Alert,
           >= warning_percent Warning, < improved_percent Improved,
           else Normal.

    Warning and Alert map to Warning severity, Critical to Critical.
    For a fixed baseline a larger value never classifies lower.

    Attributes:
        bands: Percent-change bands.
        fixed_thresholds: Thresholds keyed by lower-case metric type.
    """

    def __init__(
        self,
        bands: Optional[DeviationBands] = None,
        fixed_thresholds: Optional[Dict[str, FixedThreshold]] = None,
    ) -> None:
        """
        Initialize the evaluator.

        Args:
            bands: Deviation bands (defaults to 10/20/50/-10).
            fixed_thresholds: Per-type thresholds (defaults to the built-in set).
        """
        self.bands = bands or DeviationBands()
        source = fixed_thresholds if fixed_thresholds is not None else DEFAULT_FIXED_THRESHOLDS
        self.fixed_thresholds = {k.lower(): v for k, v in source.items()}

    def evaluate(
        self,
        sample: MetricSample,
        baseline: Optional[MetricBaseline],
    ) -> Evaluation:
        """
        Classify a sample.

        Args:
            sample: The metric sample.
            baseline: Latest baseline for the sample's key, if any.

        Returns:
            Evaluation: Classification and supporting numbers.

        Example:
            >>> # value 95 against mean 50, std 10
            >>> evaluation = evaluator.evaluate(sample, baseline)
            >>> evaluation.status, evaluation.z_score, evaluation.percent_change
            (<DeviationStatus.CRITICAL: 'Critical'>, 4.5, 90.0)
        """
        if baseline is None or baseline.mean == 0:
            return self._evaluate_threshold(sample)
        return self._evaluate_baseline(sample, baseline)

    def classify_percent(self, pct: float) -> DeviationStatus:
        """
        Map a percent change to a deviation band.

        Example:
            >>> DeviationEvaluator().classify_percent(15.0)
            <DeviationStatus.WARNING: 'Warning'>
        """
        if pct > self.bands.critical_percent:
            return DeviationStatus.CRITICAL
        if pct > self.bands.alert_percent:
            return DeviationStatus.ALERT
        if pct >= self.bands.warning_percent:
            return DeviationStatus.WARNING
        if pct < self.bands.improved_percent:
            return DeviationStatus.IMPROVED
        return DeviationStatus.NORMAL

    def _evaluate_baseline(
        self,
        sample: MetricSample,
        baseline: MetricBaseline,
    ) -> Evaluation:
        name = sample.key.metric_name
        pct = percent_change(sample.value, baseline.mean)
        z = zscore(sample.value, baseline.mean, baseline.standard_deviation)
        status = self.classify_percent(pct)
        severity = _STATUS_SEVERITY.get(status)

        message = (
            f"{name} is {sample.value:.2f}, {pct:+.1f}% against baseline mean "
            f"{baseline.mean:.2f} ({status.value})"
        )
        logger.debug(
            "sample_evaluated",
            metric_key=str(sample.key),
            method=METHOD_BASELINE,
            value=sample.value,
            percent_change=round(pct, 2),
            z_score=round(z, 2) if z is not None else None,
            status=status.value,
        )
        return Evaluation(
            status=status,
            severity=severity,
            alert_type=anomaly_alert_type(name),
            method=METHOD_BASELINE,
            z_score=z,
            percent_change=pct,
            message=message,
        )

    def _evaluate_threshold(self, sample: MetricSample) -> Evaluation:
        name = sample.key.metric_name
        threshold = self.fixed_thresholds.get(sample.key.metric_type.lower())
        if threshold is None:
            return Evaluation(
                status=DeviationStatus.NORMAL,
                alert_type=threshold_alert_type(name),
                skip_reason=SKIP_NO_THRESHOLD,
                message=f"No baseline or fixed threshold for {name}",
            )

        if sample.value > threshold.critical:
            status, crossed, label = DeviationStatus.CRITICAL, threshold.critical, "critical"
        elif sample.value > threshold.warning:
            status, crossed, label = DeviationStatus.WARNING, threshold.warning, "warning"
        else:
            return Evaluation(
                status=DeviationStatus.NORMAL,
                alert_type=threshold_alert_type(name),
                method=METHOD_THRESHOLD,
                message=f"{name} is {sample.value:.2f}, within thresholds",
            )

        return Evaluation(
            status=status,
            severity=_STATUS_SEVERITY[status],
            alert_type=threshold_alert_type(name),
            method=METHOD_THRESHOLD,
            threshold=crossed,
            message=f"{name} is {sample.value:.2f}, above {label} threshold {crossed:.2f}",
        )


def create_evaluator(
    bands: Optional[DeviationBands] = None,
    fixed_thresholds: Optional[Dict[str, FixedThreshold]] = None,
) -> DeviationEvaluator:
    """
    Factory function to create a DeviationEvaluator.

    Example:
        >>> evaluator = create_evaluator()
    """
    return DeviationEvaluator(bands=bands, fixed_thresholds=fixed_thresholds)
