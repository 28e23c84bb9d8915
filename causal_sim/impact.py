"""
Impact Estimator

Converts a validated correlation and the trigger shock into an expected
probability change for a target market.

    magnitude = |r| × shock × 0.5          (historical correlation available)
    magnitude = claimed_strength × 0.10    (no historical data)

Direction comes from the correlation sign when a correlation exists,
otherwise from the direction claimed by the reasoning service.
Predicted probabilities are clamped to [0.01, 0.99].
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from causal_sim.models import ImpactDirection, ImpactLevel

logger = logging.getLogger(__name__)


CORRELATION_DAMPENING = 0.5
UNVALIDATED_STRENGTH_SCALE = 0.10

MIN_PROBABILITY = 0.01
MAX_PROBABILITY = 0.99

HIGH_IMPACT_PERCENT = 30.0
MEDIUM_IMPACT_PERCENT = 10.0


@dataclass
class ImpactEstimate:
    """Expected effect of the trigger on one target market."""
    magnitude: float
    direction: ImpactDirection
    current_probability: float
    predicted_probability: float

    @property
    def probability_change(self) -> float:
        return self.predicted_probability - self.current_probability

    @property
    def percent_change(self) -> float:
        return percent_change(self.current_probability, self.predicted_probability)

    @property
    def impact_level(self) -> ImpactLevel:
        return classify_impact_level(self.percent_change)


def clamp_probability(probability: float) -> float:
    """Clamp to [0.01, 0.99] so no prediction represents certainty."""
    return max(MIN_PROBABILITY, min(MAX_PROBABILITY, probability))


def percent_change(current: float, predicted: float) -> float:
    """Relative change in percent; 0.0 when current is zero."""
    if current == 0:
        return 0.0
    return (predicted - current) / current * 100.0


def classify_impact_level(percent: float) -> ImpactLevel:
    """high above 30%, medium above 10%, otherwise low (by absolute value)."""
    magnitude = abs(percent)
    if magnitude > HIGH_IMPACT_PERCENT:
        return "high"
    if magnitude > MEDIUM_IMPACT_PERCENT:
        return "medium"
    return "low"


def trigger_shock(prior_probability: float) -> float:
    """Belief change imposed on the trigger: 1 - prior of the simulated outcome."""
    return 1.0 - prior_probability


def estimate_impact(
    current_probability: float,
    shock: float,
    correlation: Optional[float],
    claimed_strength: float,
    claimed_direction: ImpactDirection
) -> ImpactEstimate:
    """
    Estimate the probability change of a target market.

    Args:
        current_probability: Target market's current probability
        shock: Trigger shock (1 - trigger prior)
        correlation: Validated Pearson r, or None without historical data
        claimed_strength: Strength claimed by the reasoning service
        claimed_direction: Direction claimed by the reasoning service

    Returns:
        ImpactEstimate with clamped predicted probability
    """
    if correlation is not None:
        magnitude = abs(correlation) * shock * CORRELATION_DAMPENING
        direction: ImpactDirection = "increase" if correlation > 0 else "decrease"
    else:
        magnitude = claimed_strength * UNVALIDATED_STRENGTH_SCALE
        direction = claimed_direction

    sign = 1 if direction == "increase" else -1
    predicted = clamp_probability(current_probability + sign * magnitude)

    return ImpactEstimate(
        magnitude=magnitude,
        direction=direction,
        current_probability=current_probability,
        predicted_probability=predicted
    )


def calculate_impact_ratio(
    prices_a: Sequence[float],
    prices_b: Sequence[float],
    threshold: float = 0.05
) -> float:
    """
    Median ratio of B's relative move to A's relative move.

    Only steps where A moved by at least threshold (relative) count.

    Args:
        prices_a: Aligned source prices
        prices_b: Aligned target prices
        threshold: Minimum relative change in A to sample a step

    Returns:
        Median ratio (upper middle for an even count), or 0.0 when no
        step qualifies
    """
    n = min(len(prices_a), len(prices_b))
    ratios = []

    for i in range(1, n):
        if prices_a[i - 1] == 0 or prices_b[i - 1] == 0:
            continue

        change_a = (prices_a[i] - prices_a[i - 1]) / prices_a[i - 1]
        if abs(change_a) < threshold:
            continue

        change_b = (prices_b[i] - prices_b[i - 1]) / prices_b[i - 1]
        ratios.append(change_b / change_a)

    if not ratios:
        return 0.0

    return float(np.sort(ratios)[len(ratios) // 2])
