"""Tests for baseline statistics."""

import math

import pytest

from erpwatch.metrics.statistics import (
    mean,
    percent_change,
    percentile,
    population_std,
    summarize,
    zscore,
)


def test_percentile_interpolates_between_ranks():
    values = [10.0, 20.0, 30.0, 40.0]
    assert percentile(values, 0.5) == 25.0
    assert percentile(values, 0.0) == 10.0
    assert percentile(values, 1.0) == 40.0
    assert percentile(values, 0.95) == pytest.approx(38.5)


def test_percentile_single_value():
    assert percentile([7.0], 0.99) == 7.0


def test_percentile_rejects_bad_input():
    with pytest.raises(ValueError):
        percentile([], 0.5)
    with pytest.raises(ValueError):
        percentile([1.0], 1.5)


def test_population_std_uses_n():
    values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
    assert mean(values) == 5.0
    assert population_std(values) == 2.0


def test_population_std_single_value_is_zero():
    assert population_std([3.0]) == 0.0


def test_summarize_is_order_independent():
    forward = summarize([1.0, 2.0, 3.0, 4.0, 100.0])
    shuffled = summarize([100.0, 3.0, 1.0, 4.0, 2.0])
    assert forward == shuffled
    assert forward.count == 5
    assert forward.p50 == 3.0
    assert forward.p50 <= forward.p95 <= forward.p99


def test_summarize_empty_raises():
    with pytest.raises(ValueError):
        summarize([])


def test_zscore_and_percent_change():
    assert zscore(95.0, 50.0, 10.0) == 4.5
    assert zscore(95.0, 50.0, 0.0) is None
    assert percent_change(95.0, 50.0) == 90.0
    assert percent_change(40.0, 50.0) == -20.0
    assert percent_change(1.0, 0.0) is None


def test_percent_change_uses_absolute_reference():
    assert math.isclose(percent_change(-5.0, -10.0), 50.0)
