"""
Series Aligner

Merges two irregularly-timestamped price series into equal-length,
timestamp-matched sequences.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from causal_sim.models import PricePoint

logger = logging.getLogger(__name__)


# Maximum timestamp gap (seconds) for two points to count as simultaneous
DEFAULT_TOLERANCE = 3600


@dataclass
class AlignedSeries:
    """Two equal-length price sequences and the timestamp of each pair."""
    prices_a: List[float] = field(default_factory=list)
    prices_b: List[float] = field(default_factory=list)
    timestamps: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)


def _dedupe_sorted(series: Sequence[PricePoint]) -> List[PricePoint]:
    """Sort by timestamp, keeping the last observation for a repeated timestamp."""
    by_timestamp = {}
    for point in series:
        by_timestamp[point.timestamp] = point
    return [by_timestamp[t] for t in sorted(by_timestamp)]


def align_price_series(
    series_a: Sequence[PricePoint],
    series_b: Sequence[PricePoint],
    tolerance: int = DEFAULT_TOLERANCE
) -> AlignedSeries:
    """
    Align two price series by timestamp.

    Both series are sorted, then merged with two pointers. When the
    current timestamps are within tolerance a pair is emitted and both
    pointers advance; otherwise the earlier pointer advances. Repeated
    timestamps within one series collapse to their last observation, so
    output timestamps are strictly increasing.

    Args:
        series_a: First price series (any order)
        series_b: Second price series (any order)
        tolerance: Maximum gap in seconds between matched points

    Returns:
        AlignedSeries; empty if either input is empty
    """
    aligned = AlignedSeries()

    if not series_a or not series_b:
        return aligned

    sorted_a = _dedupe_sorted(series_a)
    sorted_b = _dedupe_sorted(series_b)

    i = 0
    j = 0
    while i < len(sorted_a) and j < len(sorted_b):
        point_a = sorted_a[i]
        point_b = sorted_b[j]

        if abs(point_a.timestamp - point_b.timestamp) <= tolerance:
            aligned.prices_a.append(point_a.price)
            aligned.prices_b.append(point_b.price)
            aligned.timestamps.append(min(point_a.timestamp, point_b.timestamp))
            i += 1
            j += 1
        elif point_a.timestamp < point_b.timestamp:
            i += 1
        else:
            j += 1

    logger.debug(
        f"Aligned {len(aligned)} points from {len(series_a)} and {len(series_b)}"
    )

    return aligned
