"""
Tests for timestamp alignment of price series.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from causal_sim.alignment import align_price_series
from causal_sim.models import PricePoint


class TestAlignPriceSeries:
    """Tests for causal_sim.alignment.align_price_series"""

    def test_identical_timestamps(self, make_series):
        a = make_series([0.1, 0.2, 0.3])
        b = make_series([0.5, 0.6, 0.7])
        aligned = align_price_series(a, b)
        assert aligned.prices_a == [0.1, 0.2, 0.3]
        assert aligned.prices_b == [0.5, 0.6, 0.7]
        assert aligned.timestamps == [p.timestamp for p in a]

    def test_within_tolerance_uses_earlier_timestamp(self):
        a = [PricePoint(1000, 0.1)]
        b = [PricePoint(1500, 0.2)]
        aligned = align_price_series(a, b, tolerance=600)
        assert aligned.timestamps == [1000]
        assert len(aligned) == 1

    def test_outside_tolerance(self):
        a = [PricePoint(1000, 0.1)]
        b = [PricePoint(5000, 0.2)]
        assert len(align_price_series(a, b, tolerance=3600)) == 0

    def test_empty_input(self, make_series):
        assert len(align_price_series([], make_series([0.1, 0.2]))) == 0
        assert len(align_price_series(make_series([0.1]), [])) == 0

    def test_unsorted_input(self):
        a = [PricePoint(3000, 0.3), PricePoint(1000, 0.1), PricePoint(2000, 0.2)]
        b = [PricePoint(2000, 0.6), PricePoint(3000, 0.7), PricePoint(1000, 0.5)]
        aligned = align_price_series(a, b, tolerance=10)
        assert aligned.prices_a == [0.1, 0.2, 0.3]
        assert aligned.prices_b == [0.5, 0.6, 0.7]

    def test_skips_unmatched_points(self):
        """Gaps in one series drop only the unmatched points."""
        a = [PricePoint(t, 0.1) for t in (0, 100, 200, 300)]
        b = [PricePoint(t, 0.2) for t in (0, 300)]
        aligned = align_price_series(a, b, tolerance=10)
        assert aligned.timestamps == [0, 300]

    def test_timestamps_strictly_increasing_with_duplicates(self):
        """Repeated timestamps collapse to their last observation."""
        a = [PricePoint(1000, 0.1), PricePoint(1000, 0.15), PricePoint(2000, 0.2)]
        b = [PricePoint(1000, 0.5), PricePoint(2000, 0.6), PricePoint(2000, 0.65)]
        aligned = align_price_series(a, b, tolerance=10)
        assert aligned.timestamps == [1000, 2000]
        assert aligned.prices_a == [0.15, 0.2]
        assert aligned.prices_b == [0.5, 0.65]

    def test_idempotent(self):
        """Re-aligning aligned output changes nothing."""
        a = [PricePoint(t, t / 10000) for t in (0, 1800, 4000, 7300, 9000)]
        b = [PricePoint(t, t / 20000) for t in (100, 2000, 3900, 7000, 12000)]
        first = align_price_series(a, b, tolerance=600)

        a2 = [PricePoint(t, p) for t, p in zip(first.timestamps, first.prices_a)]
        b2 = [PricePoint(t, p) for t, p in zip(first.timestamps, first.prices_b)]
        second = align_price_series(a2, b2, tolerance=600)

        assert second.timestamps == first.timestamps
        assert second.prices_a == first.prices_a
        assert second.prices_b == first.prices_b
