"""
Tests for correlation analysis and the correlation cache.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from causal_sim.correlation import (
    CorrelationCache,
    analyze_correlation,
    correlation_confidence,
    is_statistically_usable,
    lagged_correlation,
    pearson_correlation,
)
from causal_sim.models import CorrelationResult


class TestPearsonCorrelation:
    """Tests for causal_sim.correlation.pearson_correlation"""

    def test_perfect_positive(self):
        """Linear series correlate at 1.0."""
        x = [0.1, 0.2, 0.3, 0.4, 0.5]
        y = [0.2, 0.4, 0.6, 0.8, 1.0]
        assert pearson_correlation(x, y) == pytest.approx(1.0)

    def test_perfect_negative(self):
        """Mirrored series correlate at -1.0."""
        x = [0.1, 0.2, 0.3, 0.4, 0.5]
        y = [0.9, 0.8, 0.7, 0.6, 0.5]
        assert pearson_correlation(x, y) == pytest.approx(-1.0)

    def test_constant_series_is_zero(self):
        """Zero variance gives 0, not NaN."""
        assert pearson_correlation([0.5] * 12, [0.1 * i for i in range(12)]) == 0.0
        assert pearson_correlation([0.3] * 12, [0.3] * 12) == 0.0

    def test_unequal_lengths_is_zero(self):
        assert pearson_correlation([0.1, 0.2, 0.3], [0.1, 0.2]) == 0.0

    def test_too_short_is_zero(self):
        assert pearson_correlation([0.5], [0.5]) == 0.0
        assert pearson_correlation([], []) == 0.0

    def test_symmetric(self, trigger_values, correlated_values):
        """corr(x, y) == corr(y, x)."""
        y = correlated_values(0.37)
        assert pearson_correlation(trigger_values, y) == pytest.approx(
            pearson_correlation(y, trigger_values)
        )

    def test_known_coefficient(self, trigger_values, correlated_values):
        """Constructed series recover the requested coefficient."""
        for r in (0.5, -0.5, 0.1, 0.9):
            assert pearson_correlation(trigger_values, correlated_values(r)) == pytest.approx(r, abs=1e-9)

    def test_result_within_bounds(self):
        """Rounding never pushes r outside [-1, 1]."""
        x = [0.1 + 1e-9 * i for i in range(50)]
        r = pearson_correlation(x, x)
        assert -1.0 <= r <= 1.0


class TestLaggedCorrelation:
    """Tests for causal_sim.correlation.lagged_correlation"""

    def test_detects_forward_lag(self):
        """y that repeats x two steps later peaks at lag 2."""
        x = [0.1, 0.5, 0.2, 0.9, 0.3, 0.7, 0.4, 0.8, 0.15, 0.6, 0.25, 0.85]
        y = [0.5, 0.5] + x[:-2]
        r, lag = lagged_correlation(x, y, max_lag=5)
        assert lag == 2
        assert r == pytest.approx(1.0)

    def test_short_series(self):
        """Nothing qualifies for very short input."""
        assert lagged_correlation([0.1, 0.2], [0.2, 0.1]) == (0.0, 0)


class TestCorrelationConfidence:
    """Tests for Fisher-z confidence"""

    def test_small_sample_has_no_confidence(self):
        assert correlation_confidence(0.9, 3) == 0.0

    def test_zero_correlation(self):
        assert correlation_confidence(0.0, 50) == pytest.approx(0.0)

    def test_grows_with_sample_size(self):
        """The same r is more significant over more points."""
        assert correlation_confidence(0.4, 12) < correlation_confidence(0.4, 100)

    def test_perfect_correlation(self):
        assert correlation_confidence(-1.0, 20) == 1.0


class TestAnalyzeCorrelation:
    """Tests for analyze_correlation / is_statistically_usable"""

    def test_result_fields(self, trigger_values, correlated_values):
        result = analyze_correlation(trigger_values, correlated_values(0.5))
        assert result.coefficient == pytest.approx(0.5, abs=1e-9)
        assert result.sample_size == 12
        assert 0.0 < result.confidence < 1.0
        assert result.direction == "positive"

    def test_usable_requires_ten_points(self):
        assert is_statistically_usable(CorrelationResult(0.5, 10, 0.9))
        assert not is_statistically_usable(CorrelationResult(0.5, 9, 0.9))
        assert not is_statistically_usable(None)


class TestCorrelationCache:
    """Tests for causal_sim.correlation.CorrelationCache"""

    def setup_method(self):
        self.now = 0.0
        self.result = CorrelationResult(coefficient=0.4, sample_size=20, confidence=0.9)

    def _clock(self):
        return self.now

    def test_hit_and_miss(self):
        cache = CorrelationCache(ttl_seconds=60, clock=self._clock)
        assert cache.get("a", "b") is None
        cache.put("a", "b", self.result)
        assert cache.get("a", "b") is self.result
        assert cache.hits == 1
        assert cache.misses == 1

    def test_keys_are_directional(self):
        cache = CorrelationCache(clock=self._clock)
        cache.put("a", "b", self.result)
        assert cache.get("b", "a") is None

    def test_entries_expire(self):
        cache = CorrelationCache(ttl_seconds=60, clock=self._clock)
        cache.put("a", "b", self.result)
        self.now = 61.0
        assert cache.get("a", "b") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        """Least recently used entry is evicted first."""
        cache = CorrelationCache(max_entries=2, clock=self._clock)
        cache.put("a", "b", self.result)
        cache.put("a", "c", self.result)
        cache.get("a", "b")
        cache.put("a", "d", self.result)
        assert cache.get("a", "c") is None
        assert cache.get("a", "b") is self.result
        assert len(cache) == 2

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            CorrelationCache(ttl_seconds=0)
        with pytest.raises(ValueError):
            CorrelationCache(max_entries=0)
