"""
Descriptive statistics for metric baselines.

Pure, deterministic functions over a finite sample set. The same input
always produces bit-for-bit identical output: values are sorted before any
order-dependent computation and sums are taken over the sorted sequence.

Functions:
    mean: Arithmetic mean
    population_std: Population standard deviation (n in denominator)
    percentile: Linear interpolation between closest ranks
    zscore: Deviation in standard-deviation units
    percent_change: Relative deviation from a reference value

Classes:
    SampleStatistics: Summary of one sample set
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class SampleStatistics:
    """
    Summary statistics of a sample set.

    Attributes:
        count: Number of samples.
        mean: Arithmetic mean.
        std: Population standard deviation.
        p50: 50th percentile.
        p95: 95th percentile.
        p99: 99th percentile.
    """

    count: int
    mean: float
    std: float
    p50: float
    p95: float
    p99: float


def mean(values: Sequence[float]) -> float:
    """
    Calculate the arithmetic mean.

    Raises:
        ValueError: If values is empty.
    """
    if not values:
        raise ValueError("mean requires at least one value")
    return math.fsum(values) / len(values)


def population_std(values: Sequence[float], mu: Optional[float] = None) -> float:
    """
    Calculate the population standard deviation.

    Uses n (not n-1) in the denominator: the baseline describes the
    observed window itself, not an estimate of a wider population.

    Args:
        values: Sample values.
        mu: Pre-computed mean, to avoid recalculation.

    Returns:
        float: Standard deviation (0.0 for a single value).
    """
    if not values:
        raise ValueError("population_std requires at least one value")
    if mu is None:
        mu = mean(values)
    variance = math.fsum((x - mu) ** 2 for x in values) / len(values)
    return math.sqrt(variance)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Calculate a percentile by linear interpolation between ranks.

    ``index = p * (n - 1)``; the result interpolates between the values at
    ``floor(index)`` and ``ceil(index)``.

    Args:
        sorted_values: Values sorted ascending.
        p: Percentile as a fraction in [0, 1].

    Returns:
        float: Interpolated percentile value.

    Raises:
        ValueError: If values is empty or p is outside [0, 1].

    Example:
        >>> percentile([10.0, 20.0, 30.0, 40.0], 0.5)
        25.0
    """
    if not sorted_values:
        raise ValueError("percentile requires at least one value")
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"percentile fraction must be in [0, 1], got {p}")

    index = p * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return float(sorted_values[lower])

    fraction = index - lower
    low_value = sorted_values[lower]
    high_value = sorted_values[upper]
    return low_value + (high_value - low_value) * fraction


def summarize(values: Sequence[float]) -> SampleStatistics:
    """
    Compute the full summary of a sample set.

    Args:
        values: Sample values in any order.

    Returns:
        SampleStatistics: Count, mean, population std and P50/P95/P99.

    Raises:
        ValueError: If values is empty.
    """
    ordered = sorted(float(v) for v in values)
    mu = mean(ordered)
    return SampleStatistics(
        count=len(ordered),
        mean=mu,
        std=population_std(ordered, mu),
        p50=percentile(ordered, 0.50),
        p95=percentile(ordered, 0.95),
        p99=percentile(ordered, 0.99),
    )


def zscore(value: float, mu: float, std: float) -> Optional[float]:
    """
    Deviation of a value from the mean in standard-deviation units.

    Returns:
        Optional[float]: Z-score, or None when std is zero.
    """
    if std <= 0:
        return None
    return (value - mu) / std


def percent_change(value: float, reference: float) -> Optional[float]:
    """
    Relative change of a value against a reference, in percent.

    Returns:
        Optional[float]: Percent change, or None when the reference is zero.

    Example:
        >>> percent_change(95.0, 50.0)
        90.0
    """
    if reference == 0:
        return None
    return (value - reference) / abs(reference) * 100.0
