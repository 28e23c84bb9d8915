"""
Correlation Analyzer

Pearson correlation over two aligned price series, plus the derived
statistics used to decide whether a candidate edge is historically backed:

- pearson_correlation: sums-of-products Pearson r, 0.0 on degenerate input
- lagged_correlation: best |r| over small forward lags
- correlation_confidence: Fisher z-transform significance (1 - p)
- CorrelationCache: bounded, time-limited cache keyed by market pair

Results computed over fewer than MIN_SAMPLE_SIZE points are returned but
must not be treated as statistically usable.
"""

import logging
import math
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from causal_sim.models import CorrelationResult

logger = logging.getLogger(__name__)


# Minimum aligned points before a correlation is considered usable
MIN_SAMPLE_SIZE = 10

# Denominators below this are treated as zero variance
_VARIANCE_EPSILON = 1e-12


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Calculate the sample Pearson correlation coefficient.

    Formula:
        r = (n·Σxy − Σx·Σy) / sqrt((n·Σx² − (Σx)²) · (n·Σy² − (Σy)²))

    Args:
        x: First series
        y: Second series (same length as x)

    Returns:
        r in [-1, 1]; 0.0 for unequal lengths, fewer than 2 points,
        or a constant series
    """
    if len(x) != len(y) or len(x) < 2:
        return 0.0

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    n = len(xs)

    sum_x = xs.sum()
    sum_y = ys.sum()
    sum_xy = (xs * ys).sum()
    sum_x2 = (xs * xs).sum()
    sum_y2 = (ys * ys).sum()

    var_x = n * sum_x2 - sum_x * sum_x
    var_y = n * sum_y2 - sum_y * sum_y

    # Constant series: guard explicitly, the sums formula can leave
    # rounding residue instead of an exact zero
    if var_x <= _VARIANCE_EPSILON * n * n or var_y <= _VARIANCE_EPSILON * n * n:
        return 0.0

    r = (n * sum_xy - sum_x * sum_y) / math.sqrt(var_x * var_y)

    if not math.isfinite(r):
        return 0.0

    return float(max(-1.0, min(1.0, r)))


def lagged_correlation(
    x: Sequence[float],
    y: Sequence[float],
    max_lag: int = 7
) -> Tuple[float, int]:
    """
    Find the forward lag of y relative to x with the strongest correlation.

    For each lag in 0..min(max_lag, n-2), correlates x[:n-lag] with
    y[lag:]. Windows shorter than 3 points are skipped.

    Args:
        x: Leading series
        y: Lagging series
        max_lag: Largest lag (in samples) to try

    Returns:
        Tuple of (correlation, lag); (0.0, 0) when nothing qualifies
    """
    n = min(len(x), len(y))
    best_correlation = 0.0
    best_lag = 0

    for lag in range(0, min(max_lag, n - 2) + 1):
        x_window = list(x[:n - lag])
        y_window = list(y[lag:n])
        if len(x_window) < 3:
            continue

        r = pearson_correlation(x_window, y_window)
        if abs(r) > abs(best_correlation):
            best_correlation = r
            best_lag = lag

    return best_correlation, best_lag


def correlation_confidence(correlation: float, sample_size: int) -> float:
    """
    Statistical confidence that a correlation is non-zero.

    Uses the Fisher z-transformation with standard error 1/sqrt(n-3) and a
    two-sided p-value from the standard normal distribution.

    Args:
        correlation: Pearson r
        sample_size: Number of aligned points

    Returns:
        1 - p in [0, 1]
    """
    if sample_size <= 3:
        return 0.0

    r = abs(correlation)
    if r >= 1.0:
        return 1.0

    z = math.atanh(r)
    standard_error = 1.0 / math.sqrt(sample_size - 3)
    z_score = z / standard_error

    p_value = 2.0 * (1.0 - stats.norm.cdf(abs(z_score)))
    return float(max(0.0, min(1.0, 1.0 - p_value)))


def analyze_correlation(
    x: Sequence[float],
    y: Sequence[float],
    max_lag: int = 7
) -> CorrelationResult:
    """
    Compute the full CorrelationResult for two aligned series.

    The coefficient is the zero-lag Pearson r; lag records the best
    forward lag for explanation purposes only.
    """
    coefficient = pearson_correlation(x, y)
    sample_size = min(len(x), len(y))
    _, lag = lagged_correlation(x, y, max_lag=max_lag)

    return CorrelationResult(
        coefficient=coefficient,
        sample_size=sample_size,
        confidence=correlation_confidence(coefficient, sample_size),
        lag=lag
    )


def is_statistically_usable(result: Optional[CorrelationResult]) -> bool:
    """True when the result was computed over at least MIN_SAMPLE_SIZE points."""
    return result is not None and result.sample_size >= MIN_SAMPLE_SIZE


class CorrelationCache:
    """
    Bounded cache of correlation results keyed by (source, target) market ids.

    Entries expire ttl_seconds after insertion; beyond max_entries the
    least recently used entry is evicted. Safe to share between the
    worker threads of a single run.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Tuple[str, str], Tuple[float, CorrelationResult]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, source_id: str, target_id: str) -> Optional[CorrelationResult]:
        key = (source_id, target_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            stored_at, result = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                logger.debug(f"Correlation cache entry expired: {source_id} -> {target_id}")
                return None

            self._entries.move_to_end(key)
            self.hits += 1
            return result

    def put(self, source_id: str, target_id: str, result: CorrelationResult) -> None:
        key = (source_id, target_id)
        with self._lock:
            self._entries[key] = (self._clock(), result)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Correlation cache evicted {evicted[0]} -> {evicted[1]}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
