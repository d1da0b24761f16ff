"""Numeric metric primitives used by the evaluation strategies.

All functions are pure and guard against empty input: an empty sequence
yields 0 rather than raising ZeroDivisionError.
"""
import math
from typing import Dict, List, Sequence


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def variance(values: Sequence[float]) -> float:
    """Population variance."""
    if not values:
        return 0.0
    m = mean(values)
    return sum((v - m) ** 2 for v in values) / len(values)


def std_dev(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation of two equal-length series.

    Returns 0 when either series has zero variance (including single points).
    """
    n = len(x)
    if n == 0 or n != len(y):
        return 0.0

    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(xi * yi for xi, yi in zip(x, y))
    sum_x2 = sum(xi * xi for xi in x)
    sum_y2 = sum(yi * yi for yi in y)

    numerator = n * sum_xy - sum_x * sum_y
    radicand = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    # Float cancellation can leave a tiny negative radicand for constant series
    if radicand <= 0:
        return 0.0
    denominator = math.sqrt(radicand)
    if denominator == 0:
        return 0.0
    return max(-1.0, min(1.0, numerator / denominator))


def rmse(errors: Sequence[float]) -> float:
    if not errors:
        return 0.0
    return math.sqrt(sum(e * e for e in errors) / len(errors))


def mae(errors: Sequence[float]) -> float:
    if not errors:
        return 0.0
    return sum(abs(e) for e in errors) / len(errors)


def bucket_key(value: float, width: float = 0.1) -> float:
    """Round ``value`` to the nearest multiple of ``width``."""
    return round(round(value / width) * width, 10)


def grouped_consistency(predictions: Sequence[float], ground_truth: Sequence[float], width: float = 0.1) -> float:
    """
    How stable predictions are for similar ground-truth values.

    Ground truth is bucketed into ``width``-wide groups; each group with at
    least two members contributes ``max(0, 1 - variance(predictions))``. The
    result is the mean over contributing groups, or 1 when no group has two
    members (no evidence of inconsistency).
    """
    groups: Dict[float, List[float]] = {}
    for prediction, truth in zip(predictions, ground_truth):
        groups.setdefault(bucket_key(truth, width), []).append(prediction)

    contributions = [
        max(0.0, 1.0 - variance(group))
        for group in groups.values()
        if len(group) > 1
    ]
    if not contributions:
        return 1.0
    return sum(contributions) / len(contributions)
