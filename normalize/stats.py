"""
Reduction of a metric time series to a single representative value.
"""
import logging
from dataclasses import dataclass
from typing import List, Tuple

from normalize import math as m
from normalize.series import values_from_series

logger = logging.getLogger(__name__)

# relative deviation above which a series is reported as unevenly distributed
DISTRIBUTION_TOLERANCE = 0.1


class NoDataError(ValueError):
    """Raised when a series has no usable samples."""
    pass


@dataclass
class ValueStats:
    n: int
    min: float
    max: float
    sum: float
    mean: float
    median: float
    stdev: float


def compute_stats(values: List[float]) -> ValueStats:
    if not values:
        raise NoDataError("no values to compute statistics over")
    total = m.finite_sum(values)
    return ValueStats(
        n=len(values),
        min=min(values),
        max=max(values),
        sum=total,
        mean=total / len(values),
        median=m.median(values),
        stdev=m.stdev(values),
    )


def distribution_warnings(stats: ValueStats, label: str = "") -> List[str]:
    warnings: List[str] = []
    if abs(stats.mean - stats.median) > DISTRIBUTION_TOLERANCE * stats.mean:
        warnings.append(f"Potentially uneven distribution for {label}: average {stats.mean}, median {stats.median}")
    if stats.mean != 0 and stats.stdev / stats.mean > DISTRIBUTION_TOLERANCE:
        warnings.append(f"Potentially uneven distribution for {label}: average {stats.mean}, stdev {stats.stdev}")
    return warnings


def value_from_samples(samples: List[Tuple[float, float]], label: str = "") -> Tuple[float, List[str]]:
    """Return the representative value of a series and advisory distribution warnings.

    The representative value is the rounded mean. Raises NoDataError when
    the series holds no usable samples; callers treat that as "no data for
    this metric", not as zero.
    """
    values = values_from_series(samples)
    if not values:
        raise NoDataError(f"No samples in data series for {label}")

    stats = compute_stats(values)
    logger.debug(f"Series statistics for {label}: {stats}")

    return m.magic_round(stats.mean), distribution_warnings(stats, label)
