"""
Metric statistics and baseline calculation.

Modules:
    statistics: Pure descriptive statistics (mean, std, percentiles)
    baseline: BaselineEngine for rolling per-key baselines
"""

from erpwatch.metrics.baseline import (
    DEFAULT_METRIC_KEYS,
    BaselineEngine,
    BaselineRunSummary,
    create_baseline_engine,
)
from erpwatch.metrics.statistics import (
    SampleStatistics,
    mean,
    percent_change,
    percentile,
    population_std,
    summarize,
    zscore,
)

__all__ = [
    "DEFAULT_METRIC_KEYS",
    "BaselineEngine",
    "BaselineRunSummary",
    "create_baseline_engine",
    "SampleStatistics",
    "mean",
    "percent_change",
    "percentile",
    "population_std",
    "summarize",
    "zscore",
]
