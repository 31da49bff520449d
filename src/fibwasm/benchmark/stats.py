"""Timing statistics for benchmark runs.

Samples are wall-clock durations in seconds. The helpers here summarize
them (mean, spread, IQR outliers, 95% confidence interval) and drive the
adaptive loop that keeps sampling until the coefficient of variation drops
below a target.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Callable
from dataclasses import dataclass, field

# Two-tailed 95% critical values of Student's t, keyed by degrees of freedom.
_T_95 = (
    (1, 12.706),
    (2, 4.303),
    (3, 3.182),
    (4, 2.776),
    (5, 2.571),
    (6, 2.447),
    (7, 2.365),
    (8, 2.306),
    (9, 2.262),
    (14, 2.145),
    (19, 2.093),
    (29, 2.045),
    (49, 2.009),
    (99, 1.984),
)
_Z_95 = 1.96


@dataclass(frozen=True)
class BenchmarkStats:
    """Statistical summary of benchmark runs.

    Attributes:
        times: Raw timing data (in seconds), outliers included.
        mean: Mean of the retained samples.
        median: Median of the retained samples.
        stddev: Sample standard deviation.
        cv: Coefficient of variation (stddev/mean).
        min: Fastest retained sample.
        max: Slowest retained sample.
        outliers: Samples dropped by the IQR filter.
        confidence_95: 95% confidence interval of the mean.
        runs: Number of timed runs taken.
    """

    times: tuple[float, ...]
    mean: float
    median: float
    stddev: float
    cv: float
    min: float
    max: float
    outliers: tuple[float, ...] = field(default_factory=tuple)
    confidence_95: tuple[float, float] = (0.0, 0.0)
    runs: int = 0


EMPTY_STATS = BenchmarkStats(
    times=(), mean=0.0, median=0.0, stddev=0.0, cv=0.0, min=0.0, max=0.0
)


def compute_quartiles(data: list[float]) -> tuple[float, float, float]:
    """Compute (Q1, median, Q3) with inclusive interpolation.

    Fewer than four samples give the median for all three.
    """
    if len(data) < 4:
        med = statistics.median(data)
        return med, med, med
    q1, q2, q3 = statistics.quantiles(data, n=4, method="inclusive")
    return q1, q2, q3


def detect_outliers(data: list[float], factor: float = 1.5) -> list[float]:
    """Return samples outside ``[Q1 - factor*IQR, Q3 + factor*IQR]``."""
    if len(data) < 4:
        return []
    q1, _, q3 = compute_quartiles(data)
    spread = factor * (q3 - q1)
    return [x for x in data if x < q1 - spread or x > q3 + spread]


def _t_critical(dof: int) -> float:
    for limit, t in _T_95:
        if dof <= limit:
            return t
    return _Z_95


def compute_confidence_interval(data: list[float]) -> tuple[float, float]:
    """Compute the 95% confidence interval for the mean.

    Args:
        data: Sample data.

    Returns:
        Tuple of (lower_bound, upper_bound). With fewer than two samples the
        interval collapses onto the single value (or 0.0).
    """
    if len(data) < 2:
        value = data[0] if data else 0.0
        return value, value

    mean = statistics.mean(data)
    stderr = statistics.stdev(data) / math.sqrt(len(data))
    margin = _t_critical(len(data) - 1) * stderr
    return mean - margin, mean + margin


def compute_stats(times: list[float], remove_outliers: bool = True) -> BenchmarkStats:
    """Summarize timing samples.

    Args:
        times: Timing measurements (in seconds).
        remove_outliers: Whether to exclude IQR outliers from the summary.

    Returns:
        BenchmarkStats; EMPTY_STATS when there are no samples.
    """
    if not times:
        return EMPTY_STATS

    outliers = detect_outliers(times)
    kept = times
    if remove_outliers and outliers:
        dropped = set(outliers)
        kept = [t for t in times if t not in dropped]
        if len(kept) < 2:
            kept = times

    mean = statistics.mean(kept)
    stddev = statistics.stdev(kept) if len(kept) > 1 else 0.0

    return BenchmarkStats(
        times=tuple(times),
        mean=mean,
        median=statistics.median(kept),
        stddev=stddev,
        cv=stddev / mean if mean > 0 else 0.0,
        min=min(kept),
        max=max(kept),
        outliers=tuple(outliers),
        confidence_95=compute_confidence_interval(kept),
        runs=len(times),
    )


def current_cv(times: list[float]) -> float:
    """Coefficient of variation of raw samples (inf when undefined)."""
    if len(times) < 2:
        return math.inf
    mean = statistics.mean(times)
    if mean <= 0:
        return math.inf
    return statistics.stdev(times) / mean


def run_until_stable(
    runner: Callable[[], float],
    min_runs: int = 5,
    max_runs: int = 50,
    target_cv: float = 0.01,
    warmup: int = 3,
    batch_size: int = 5,
) -> BenchmarkStats:
    """Sample ``runner`` until the CV is at or below ``target_cv``.

    Warmup results are discarded. After ``min_runs`` samples, batches of
    ``batch_size`` are added until the CV target or ``max_runs`` is hit.

    Args:
        runner: Callable returning one duration in seconds.
        min_runs: Samples taken before the first CV check.
        max_runs: Upper bound on samples.
        target_cv: Target coefficient of variation (0.01 = 1%).
        warmup: Discarded runs before sampling.
        batch_size: Samples added per round.

    Returns:
        BenchmarkStats over every timed sample.
    """
    for _ in range(warmup):
        runner()

    times = [runner() for _ in range(min(min_runs, max_runs))]

    while len(times) < max_runs and current_cv(times) > target_cv:
        for _ in range(min(batch_size, max_runs - len(times))):
            times.append(runner())

    return compute_stats(times)


def format_stats(stats: BenchmarkStats, unit: str = "us") -> str:
    """Format statistics like ``"12.3us +/- 0.4us (CV=3.25%, 10 runs)"``.

    Args:
        stats: Statistics to format.
        unit: One of "s", "ms", "us", "ns".
    """
    scale = {"s": 1.0, "ms": 1e3, "us": 1e6, "ns": 1e9}[unit]
    mean = stats.mean * scale
    stddev = stats.stddev * scale
    return (
        f"{mean:.1f}{unit} +/- {stddev:.1f}{unit} "
        f"(CV={stats.cv * 100:.2f}%, {len(stats.times)} runs)"
    )
