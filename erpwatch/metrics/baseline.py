"""
Baseline engine for ERP metrics.

Computes a statistical baseline per metric key over a trailing window of
historical samples and appends it to the alert store. Previous baselines
are never modified; the newest record for a key is the one the evaluator
uses.

Classes:
    BaselineEngine: Computes and stores baselines
    BaselineRunSummary: Outcome of one recalculation run

Example:
    >>> engine = BaselineEngine(store, source, metric_keys=DEFAULT_METRIC_KEYS)
    >>> summary = await engine.recalculate_all()
    >>> summary.calculated_count
    6
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import structlog

from erpwatch.interfaces.alert_store import AlertStore
from erpwatch.interfaces.metric_source import MetricSource
from erpwatch.metrics.statistics import summarize
from erpwatch.models.baseline import MetricBaseline, MetricKey

logger = structlog.get_logger(__name__)


DEFAULT_WINDOW_DAYS = 14
DEFAULT_MIN_SAMPLES = 2
DEFAULT_ABOVE_BASELINE_PERCENT = 30.0

DEFAULT_METRIC_KEYS: List[MetricKey] = [
    MetricKey(metric_name="Batch Backlog", metric_type="batchduration"),
    MetricKey(metric_name="Batch Error Rate", metric_type="errorrate"),
    MetricKey(metric_name="Active Sessions", metric_type="activesessions"),
    MetricKey(metric_name="Blocking Chains", metric_type="blockingchains"),
    MetricKey(metric_name="SQL CPU Usage", metric_type="cpuusage"),
    MetricKey(metric_name="SQL Memory Usage", metric_type="memoryusage"),
]


@dataclass
class BaselineRunSummary:
    """
    Outcome of a recalculation run.

    Attributes:
        calculated: Keys that received a new baseline.
        skipped: Keys with insufficient data.
        failed: Keys whose calculation raised.
        interrupted: True if shutdown stopped the run early.
    """

    calculated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def calculated_count(self) -> int:
        return len(self.calculated)


class BaselineEngine:
    """
    Computes rolling baselines per metric key.

    For each key, samples over ``[now - window_days, now]`` are read from
    the metric source, sorted, and summarized (mean, population standard
    deviation, P50/P95/P99). Keys with fewer than ``min_samples`` samples
    are skipped and nothing is stored for them.

    Attributes:
        store: AlertStore receiving the baselines.
        source: MetricSource providing historical samples.
        metric_keys: Keys recalculated by ``recalculate_all``.
        window_days: Default trailing window length.
        min_samples: Minimum samples required.
    """

    def __init__(
        self,
        store: AlertStore,
        source: MetricSource,
        metric_keys: Optional[Sequence[MetricKey]] = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
        min_samples: int = DEFAULT_MIN_SAMPLES,
    ) -> None:
        """
        Initialize the baseline engine.

        Args:
            store: AlertStore receiving the baselines.
            source: MetricSource providing historical samples.
            metric_keys: Keys to recalculate (defaults to DEFAULT_METRIC_KEYS).
            window_days: Trailing window length in days.
            min_samples: Minimum samples required to emit a baseline.

        Raises:
            ValueError: If window_days < 1 or min_samples < 1.
        """
        if window_days < 1:
            raise ValueError(f"window_days must be >= 1, got {window_days}")
        if min_samples < 1:
            raise ValueError(f"min_samples must be >= 1, got {min_samples}")

        self.store = store
        self.source = source
        self.metric_keys = list(metric_keys) if metric_keys is not None else list(DEFAULT_METRIC_KEYS)
        self.window_days = window_days
        self.min_samples = min_samples

    async def calculate_baseline(
        self,
        key: MetricKey,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[MetricBaseline]:
        """
        Calculate and store a baseline for one metric key.

        Args:
            key: Metric key to calculate.
            window_days: Override the trailing window length.
            now: Window end (defaults to now).

        Returns:
            Optional[MetricBaseline]: The stored baseline, or None when
                there were fewer than ``min_samples`` samples.

        Raises:
            Exception: Errors from the metric source or store propagate.
        """
        days = window_days if window_days is not None else self.window_days
        window_end = now or datetime.now(timezone.utc)
        window_start = window_end - timedelta(days=days)

        samples = await self.source.sample(key, window_start, window_end)
        if len(samples) < self.min_samples:
            logger.info(
                "baseline_insufficient_data",
                metric_key=str(key),
                sample_count=len(samples),
                min_samples=self.min_samples,
            )
            return None

        stats = summarize([s.value for s in samples])
        baseline = MetricBaseline(
            key=key,
            percentile_50=stats.p50,
            percentile_95=stats.p95,
            percentile_99=stats.p99,
            mean=stats.mean,
            standard_deviation=stats.std,
            sample_count=stats.count,
            window_start=window_start,
            window_end=window_end,
            computed_at=window_end,
        )
        await self.store.insert_baseline(baseline)

        logger.info(
            "baseline_calculated",
            metric_key=str(key),
            sample_count=stats.count,
            mean=round(stats.mean, 4),
            p95=round(stats.p95, 4),
        )
        return baseline

    async def recalculate_all(
        self,
        keys: Optional[Sequence[MetricKey]] = None,
        now: Optional[datetime] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> BaselineRunSummary:
        """
        Recalculate baselines for all configured keys.

        A failure on one key is logged and does not stop the others.
        Shutdown is checked between keys.

        Args:
            keys: Keys to recalculate (defaults to ``metric_keys``).
            now: Shared window end for the run.
            shutdown_event: Stops the run between keys when set.

        Returns:
            BaselineRunSummary: Calculated, skipped and failed keys.
        """
        run_now = now or datetime.now(timezone.utc)
        summary = BaselineRunSummary()
        start = time.monotonic()

        for key in keys if keys is not None else self.metric_keys:
            if shutdown_event is not None and shutdown_event.is_set():
                summary.interrupted = True
                logger.info("baseline_run_interrupted", remaining_from=str(key))
                break
            try:
                baseline = await self.calculate_baseline(key, now=run_now)
            except Exception as e:
                summary.failed.append(str(key))
                logger.error(
                    "baseline_calculation_failed",
                    metric_key=str(key),
                    error=str(e),
                )
                continue
            if baseline is None:
                summary.skipped.append(str(key))
            else:
                summary.calculated.append(str(key))

        logger.info(
            "baseline_run_completed",
            calculated=len(summary.calculated),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return summary

    async def is_above_baseline(
        self,
        key: MetricKey,
        value: float,
        threshold_percent: float = DEFAULT_ABOVE_BASELINE_PERCENT,
    ) -> bool:
        """
        Check whether a value exceeds the latest P95 by a margin.

        Args:
            key: Metric key.
            value: Value to test.
            threshold_percent: Margin above P95 in percent.

        Returns:
            bool: ``value > P95 * (1 + threshold_percent / 100)``; False
                when the key has no baseline.
        """
        baseline = await self.store.get_latest_baseline(key)
        if baseline is None:
            return False
        return value > baseline.percentile_95 * (1 + threshold_percent / 100.0)


def create_baseline_engine(
    store: AlertStore,
    source: MetricSource,
    metric_keys: Optional[Sequence[MetricKey]] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    min_samples: int = DEFAULT_MIN_SAMPLES,
) -> BaselineEngine:
    """
    Factory function to create a BaselineEngine.

    Example:
        >>> engine = create_baseline_engine(store, source, window_days=7)
    """
    return BaselineEngine(
        store=store,
        source=source,
        metric_keys=metric_keys,
        window_days=window_days,
        min_samples=min_samples,
    )
