"""
Tests for impact estimation.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from causal_sim.impact import (
    calculate_impact_ratio,
    clamp_probability,
    classify_impact_level,
    estimate_impact,
    percent_change,
    trigger_shock,
)


class TestEstimateImpact:
    """Tests for causal_sim.impact.estimate_impact"""

    def test_validated_positive_correlation(self):
        """Trigger 0.20 → shock 0.8; r=0.5 moves a 0.30 market to 0.50."""
        shock = trigger_shock(0.20)
        estimate = estimate_impact(0.30, shock, correlation=0.5, claimed_strength=0.6,
                                   claimed_direction="decrease")
        assert shock == pytest.approx(0.8)
        assert estimate.magnitude == pytest.approx(0.2)
        assert estimate.direction == "increase"
        assert estimate.predicted_probability == pytest.approx(0.50)
        assert estimate.percent_change == pytest.approx(66.67, abs=0.01)
        assert estimate.impact_level == "high"

    def test_negative_correlation_decreases(self):
        """Direction follows the sign of r, not the claim."""
        estimate = estimate_impact(0.60, 0.5, correlation=-0.4, claimed_strength=0.9,
                                   claimed_direction="increase")
        assert estimate.direction == "decrease"
        assert estimate.predicted_probability == pytest.approx(0.60 - 0.4 * 0.5 * 0.5)

    def test_unvalidated_uses_claim(self):
        """Without correlation: strength × 0.10 in the claimed direction."""
        estimate = estimate_impact(0.40, 0.9, correlation=None, claimed_strength=0.8,
                                   claimed_direction="decrease")
        assert estimate.magnitude == pytest.approx(0.08)
        assert estimate.predicted_probability == pytest.approx(0.32)

    def test_prediction_is_clamped(self):
        high = estimate_impact(0.95, 0.8, correlation=0.9, claimed_strength=0.9,
                               claimed_direction="increase")
        low = estimate_impact(0.05, 0.8, correlation=-0.9, claimed_strength=0.9,
                              claimed_direction="increase")
        assert high.predicted_probability == 0.99
        assert low.predicted_probability == 0.01


class TestHelpers:
    """Tests for clamping, percent change and impact levels"""

    def test_clamp(self):
        assert clamp_probability(1.2) == 0.99
        assert clamp_probability(-0.1) == 0.01
        assert clamp_probability(0.42) == 0.42

    def test_percent_change_zero_current(self):
        assert percent_change(0.0, 0.5) == 0.0

    def test_impact_level_thresholds(self):
        """Thresholds are strict: exactly 30% is medium, exactly 10% is low."""
        assert classify_impact_level(30.5) == "high"
        assert classify_impact_level(30.0) == "medium"
        assert classify_impact_level(-15.0) == "medium"
        assert classify_impact_level(10.0) == "low"
        assert classify_impact_level(-45.0) == "high"


class TestImpactRatio:
    """Tests for causal_sim.impact.calculate_impact_ratio"""

    def test_median_of_qualifying_steps(self):
        """B moves half as much as A in relative terms."""
        a = [0.50, 0.60, 0.48]
        b = [0.40, 0.44, 0.396]
        assert calculate_impact_ratio(a, b) == pytest.approx(0.5)

    def test_even_count_takes_upper_middle(self):
        """Ratios 0.5 and 1.0 report 1.0, not their mean."""
        a = [0.50, 0.60, 0.72]
        b = [0.40, 0.44, 0.528]
        assert calculate_impact_ratio(a, b) == pytest.approx(1.0)

    def test_small_moves_ignored(self):
        a = [0.50, 0.51, 0.52]
        b = [0.40, 0.60, 0.20]
        assert calculate_impact_ratio(a, b) == 0.0
