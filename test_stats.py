"""Tests for the numeric metric primitives."""
import math

import pytest

from evaluation import stats


def test_mean_and_variance_of_empty_input_are_zero():
    assert stats.mean([]) == 0.0
    assert stats.variance([]) == 0.0
    assert stats.std_dev([]) == 0.0
    assert stats.rmse([]) == 0.0
    assert stats.mae([]) == 0.0


def test_population_variance():
    assert stats.variance([1.0, 3.0]) == pytest.approx(1.0)
    assert stats.std_dev([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(2.0)


def test_rmse_and_mae():
    errors = [0.3, -0.4]
    assert stats.rmse(errors) == pytest.approx(math.sqrt((0.09 + 0.16) / 2))
    assert stats.mae(errors) == pytest.approx(0.35)


def test_correlation_of_identical_series_is_one():
    assert stats.pearson_correlation([0.2, 0.8], [0.2, 0.8]) == pytest.approx(1.0)


def test_correlation_of_inverse_series_is_minus_one():
    assert stats.pearson_correlation([0.1, 0.5, 0.9], [0.9, 0.5, 0.1]) == pytest.approx(-1.0)


@pytest.mark.parametrize("x, y", [
    ([0.5, 0.5, 0.5], [0.1, 0.4, 0.9]),
    ([0.3], [0.7]),
    ([], []),
])
def test_correlation_guards_zero_variance(x, y):
    assert stats.pearson_correlation(x, y) == 0.0


def test_correlation_of_mismatched_lengths_is_zero():
    assert stats.pearson_correlation([0.1, 0.2], [0.1]) == 0.0


def test_bucket_key_rounds_to_width():
    assert stats.bucket_key(0.46) == pytest.approx(0.5)
    assert stats.bucket_key(0.44) == pytest.approx(0.4)
    assert stats.bucket_key(0.26, width=0.25) == pytest.approx(0.25)


def test_consistency_is_one_without_repeated_buckets():
    assert stats.grouped_consistency([0.1, 0.5, 0.9], [0.1, 0.5, 0.9]) == 1.0


def test_consistency_penalizes_spread_within_a_bucket():
    # Both truths land in the 0.5 bucket; predictions 0.0 and 1.0 have variance 0.25
    consistency = stats.grouped_consistency([0.0, 1.0], [0.5, 0.52])
    assert consistency == pytest.approx(0.75)
