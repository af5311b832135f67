"""
Statistical helpers for worker throughput.

Chunk sweeps are noisy (scheduler, thermal throttling, the first chunk
paying for imports), so rates are summarised robustly.
"""

import statistics
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy import stats


@dataclass
class ThroughputSummary:
    """
    Keys-per-second figures over the chunks a worker searched.

    Attributes:
        chunks: Number of chunks with a measurable duration
        keys_tested: Total keys tried
        mean_rate: Mean keys/second after outlier removal
        median_rate: Median keys/second
        ci_low: Lower bound of the confidence interval for the mean
        ci_high: Upper bound of the confidence interval for the mean
    """
    chunks: int
    keys_tested: int
    mean_rate: float
    median_rate: float
    ci_low: float
    ci_high: float


def remove_outliers(data: List[float], std_dev_threshold: float = 3.0) -> List[float]:
    """
    Remove outliers using the Z-score method.

    Points more than `std_dev_threshold` standard deviations from
    the mean are considered outliers.

    Example:
        >>> remove_outliers([1.0, 1.1, 1.0, 1.2, 10.0, 1.1], 2.0)
        [1.0, 1.1, 1.0, 1.2, 1.1]
    """
    if len(data) < 3:
        return data

    mean = statistics.mean(data)
    std_dev = statistics.stdev(data)

    if std_dev == 0:
        return data

    return [
        x for x in data
        if abs((x - mean) / std_dev) <= std_dev_threshold
    ]


def calculate_confidence_interval(
    data: List[float],
    confidence: float = 0.95
) -> Tuple[float, float]:
    """
    Calculate confidence interval for the mean.

    Uses t-distribution for small sample sizes.
    """
    if len(data) < 2:
        return (0.0, 0.0)

    n = len(data)
    mean = float(np.mean(data))
    std_err = stats.sem(data)

    if std_err == 0:
        return (mean, mean)

    t_value = stats.t.ppf((1 + confidence) / 2, n - 1)
    margin_of_error = t_value * std_err

    return (mean - margin_of_error, mean + margin_of_error)


def summarize_throughput(
    sizes: Sequence[int],
    durations: Sequence[float],
    confidence: float = 0.95
) -> ThroughputSummary:
    """
    Summarise per-chunk search rates.

    Chunks that took no measurable time are counted in `keys_tested`
    but left out of the rate statistics.

    Args:
        sizes: Keys tested per chunk
        durations: Seconds spent per chunk
        confidence: Confidence level for the interval (0-1)

    Returns:
        ThroughputSummary for the given chunks
    """
    if len(sizes) != len(durations):
        raise ValueError("sizes and durations must have the same length")

    keys_tested = int(sum(sizes))
    rates = [s / d for s, d in zip(sizes, durations) if d > 0 and s > 0]

    if not rates:
        return ThroughputSummary(0, keys_tested, 0.0, 0.0, 0.0, 0.0)

    cleaned = remove_outliers(rates)
    ci_low, ci_high = calculate_confidence_interval(cleaned, confidence)

    return ThroughputSummary(
        chunks=len(rates),
        keys_tested=keys_tested,
        mean_rate=float(np.mean(cleaned)),
        median_rate=float(np.median(rates)),
        ci_low=ci_low,
        ci_high=ci_high
    )
