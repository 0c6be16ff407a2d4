"""
Deterministic statistics used by the analysis tools.

All functions are pure and independent of any store or language model so
they can be tested directly.
"""

import math
import statistics
from dataclasses import dataclass
from typing import Iterable, Sequence


# Two-sided z values for the supported confidence levels.
Z_SCORES: dict[float, float] = {
    0.5: 0.674,
    0.8: 1.282,
    0.9: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}


@dataclass(frozen=True)
class LinearFit:
    """Ordinary least-squares fit of y against x = 0..n-1."""

    slope: float
    intercept: float
    r_squared: float
    correlation: float
    std_error: float
    n: int
    mean_x: float
    sxx: float

    def predict(self, x: float) -> float:
        return self.intercept + self.slope * x

    def prediction_margin(self, x: float, z: float) -> float:
        """Half-width of the prediction interval at ``x``."""
        if self.n == 0 or self.sxx == 0:
            return 0.0
        leverage = 1 + 1 / self.n + (x - self.mean_x) ** 2 / self.sxx
        return z * self.std_error * math.sqrt(leverage)


def mean_and_stddev(values: Sequence[float]) -> tuple[float, float]:
    """Mean and population standard deviation; (0, 0) for an empty sequence."""
    if not values:
        return 0.0, 0.0
    return statistics.fmean(values), statistics.pstdev(values)


def linear_regression(ys: Sequence[float]) -> LinearFit:
    """
    Fit y = intercept + slope * x over x = 0..n-1.

    R^2 is 0 when the series is constant (no variance to explain); the
    standard error is sqrt(SSE / (n - 2)) and 0 for two points.

    Raises:
        ValueError: With fewer than two points.
    """
    n = len(ys)
    if n < 2:
        raise ValueError("linear regression needs at least two points")

    mean_x = (n - 1) / 2
    mean_y = statistics.fmean(ys)
    sxx = sum((x - mean_x) ** 2 for x in range(n))
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in enumerate(ys))
    syy = sum((y - mean_y) ** 2 for y in ys)

    slope = sxy / sxx
    intercept = mean_y - slope * mean_x
    sse = sum((y - (intercept + slope * x)) ** 2 for x, y in enumerate(ys))

    r_squared = max(0.0, 1 - sse / syy) if syy > 0 else 0.0
    correlation = sxy / math.sqrt(sxx * syy) if syy > 0 else 0.0
    std_error = math.sqrt(sse / (n - 2)) if n > 2 else 0.0

    return LinearFit(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        correlation=correlation,
        std_error=std_error,
        n=n,
        mean_x=mean_x,
        sxx=sxx,
    )


def z_for_confidence(level: float) -> float:
    """z value of the nearest supported confidence level."""
    nearest = min(Z_SCORES, key=lambda known: abs(known - level))
    return Z_SCORES[nearest]


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation; 0 when either side has no variance."""
    if len(xs) != len(ys) or len(xs) < 2:
        return 0.0
    mean_x = statistics.fmean(xs)
    mean_y = statistics.fmean(ys)
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    sxx = sum((x - mean_x) ** 2 for x in xs)
    syy = sum((y - mean_y) ** 2 for y in ys)
    if sxx == 0 or syy == 0:
        return 0.0
    return sxy / math.sqrt(sxx * syy)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors; 0 for mismatched lengths or zero vectors."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard index of two collections; 0 when both are empty."""
    left, right = set(a), set(b)
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def share(part: int, whole: int) -> float:
    return part / whole if whole else 0.0
