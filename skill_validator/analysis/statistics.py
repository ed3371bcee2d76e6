"""
Statistics for skill verdicts.

Bootstrap confidence intervals over improvement scores, a significance
check, and the Wilson score interval for pass rates. Degenerate inputs
(empty or single samples) return special-cased intervals and never raise.
"""

import math
from typing import Sequence

from ..models.result import ConfidenceInterval

_MASK32 = 0xFFFFFFFF

# z-scores for the supported confidence levels
Z_SCORES = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}
DEFAULT_Z = 1.96


def seeded_random(seed: int) -> float:
    """Deterministic value in [0, 1) from an integer seed.

    A splitmix-style 32-bit hash, so a given seed always maps to the
    same value on every platform.
    """
    x = seed & _MASK32
    x = (x + 0x9E3779B9) & _MASK32
    x = ((x ^ (x >> 16)) * 0x85EBCA6B) & _MASK32
    x = ((x ^ (x >> 13)) * 0xC2B2AE35) & _MASK32
    x ^= x >> 16
    return x / 0x100000000


def bootstrap_confidence_interval(
    data: Sequence[float],
    confidence_level: float = 0.95,
    iterations: int = 10000,
) -> ConfidenceInterval:
    """Percentile bootstrap interval for the mean of ``data``.

    Element ``j`` of resample ``i`` is drawn with ``seeded_random(i * n + j)``,
    so identical input always yields an identical interval.

    Args:
        data: Observations (e.g. per-run improvement scores)
        confidence_level: Interval coverage, e.g. 0.95
        iterations: Number of resamples

    Returns:
        ConfidenceInterval; (0, 0) for empty input, a point interval for
        a single observation
    """
    n = len(data)
    if n == 0:
        return ConfidenceInterval(low=0.0, high=0.0, level=confidence_level)
    if n == 1:
        value = float(data[0])
        return ConfidenceInterval(low=value, high=value, level=confidence_level)

    means = []
    for i in range(iterations):
        total = 0.0
        base = i * n
        for j in range(n):
            total += data[math.floor(seeded_random(base + j) * n)]
        means.append(total / n)
    means.sort()

    alpha = 1 - confidence_level
    low_idx = math.floor((alpha / 2) * len(means))
    high_idx = math.floor((1 - alpha / 2) * len(means)) - 1

    return ConfidenceInterval(
        low=means[max(0, min(len(means) - 1, low_idx))],
        high=means[max(0, min(len(means) - 1, high_idx))],
        level=confidence_level,
    )


def is_statistically_significant(ci: ConfidenceInterval) -> bool:
    """True when the interval excludes zero; touching zero does not count."""
    return ci.low > 0 or ci.high < 0


def z_score(confidence_level: float) -> float:
    for level, z in Z_SCORES.items():
        if math.isclose(level, confidence_level):
            return z
    return DEFAULT_Z


def wilson_score_interval(
    successes: int,
    total: int,
    confidence_level: float = 0.95,
) -> ConfidenceInterval:
    """Wilson score interval for a binomial proportion, clamped to [0, 1]."""
    if total == 0:
        return ConfidenceInterval(low=0.0, high=0.0, level=confidence_level)

    z = z_score(confidence_level)
    p = successes / total
    n = total

    denominator = 1 + z * z / n
    center = (p + z * z / (2 * n)) / denominator
    margin = (z / denominator) * math.sqrt(p * (1 - p) / n + z * z / (4 * n * n))

    return ConfidenceInterval(
        low=max(0.0, center - margin),
        high=min(1.0, center + margin),
        level=confidence_level,
    )
