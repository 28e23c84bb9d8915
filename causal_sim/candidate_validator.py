"""
Candidate Validator

Checks each externally-proposed relationship against historical prices.

For a candidate target market:
1. No price token, or trigger history shorter than MIN_SAMPLE_SIZE
   → downgrade (strength halved, no historical data)
2. Fetch target history and align with the trigger history; fewer than
   MIN_SAMPLE_SIZE aligned points → downgrade
3. Correlate; accept only if |r| >= MIN_CORRELATION AND claimed strength
   >= MIN_CLAIMED_STRENGTH. Rejected candidates are dropped.

Accepted strength = (|r| + claimed strength) / 2.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from causal_sim.alignment import DEFAULT_TOLERANCE, align_price_series
from causal_sim.correlation import (
    MIN_SAMPLE_SIZE,
    CorrelationCache,
    analyze_correlation,
)
from causal_sim.impact import calculate_impact_ratio
from causal_sim.models import (
    CandidateRelationship,
    ConfidenceLevel,
    CorrelationResult,
    Market,
    PricePoint,
)

logger = logging.getLogger(__name__)


MIN_CORRELATION = 0.20
MIN_CLAIMED_STRENGTH = 0.5
DOWNGRADE_FACTOR = 0.5

HIGH_CONFIDENCE_CORRELATION = 0.6
MEDIUM_CONFIDENCE_CORRELATION = 0.3


class PriceHistoryProvider(Protocol):
    """Source of price history for a market's price token."""

    def get_price_history(
        self,
        token_id: str,
        interval: str = "1w",
        fidelity: Optional[int] = None
    ) -> List[PricePoint]:
        ...


@dataclass
class ValidatedCandidate:
    """A candidate that survived validation (accepted or downgraded)."""
    candidate: CandidateRelationship
    market: Market
    strength: float
    has_historical_data: bool
    correlation: Optional[CorrelationResult] = None
    impact_ratio: Optional[float] = None

    @property
    def sort_key(self) -> float:
        """Ranking value: |r| when available, otherwise strength."""
        if self.correlation is not None:
            return abs(self.correlation.coefficient)
        return self.strength

    @property
    def confidence_level(self) -> ConfidenceLevel:
        if self.correlation is None:
            return "LOW"
        return confidence_level_for(self.correlation.coefficient)


def confidence_level_for(correlation: float) -> ConfidenceLevel:
    """HIGH above |r| 0.6, MEDIUM above 0.3, otherwise LOW."""
    magnitude = abs(correlation)
    if magnitude > HIGH_CONFIDENCE_CORRELATION:
        return "HIGH"
    if magnitude > MEDIUM_CONFIDENCE_CORRELATION:
        return "MEDIUM"
    return "LOW"


def passes_acceptance_gate(correlation: float, claimed_strength: float) -> bool:
    """Both the statistical and the claimed signal must clear their thresholds."""
    return abs(correlation) >= MIN_CORRELATION and claimed_strength >= MIN_CLAIMED_STRENGTH


class CandidateValidator:
    """
    Validates candidate relationships against the trigger's price history.

    The trigger series is fetched once by the caller and passed in; a
    CorrelationCache may be shared across runs.
    """

    def __init__(
        self,
        provider: PriceHistoryProvider,
        trigger: Market,
        trigger_series: Sequence[PricePoint],
        cache: Optional[CorrelationCache] = None,
        interval: str = "1w",
        fidelity: Optional[int] = 60,
        tolerance: int = DEFAULT_TOLERANCE
    ):
        """
        Initialize validator.

        Args:
            provider: Price history provider
            trigger: Trigger market (correlation source for every candidate)
            trigger_series: Trigger price history, fetched once per run
            cache: Optional correlation cache
            interval: Price history interval requested from the provider
            fidelity: Price history resolution in minutes
            tolerance: Alignment tolerance in seconds
        """
        self.provider = provider
        self.trigger = trigger
        self.trigger_series = list(trigger_series)
        self.cache = cache
        self.interval = interval
        self.fidelity = fidelity
        self.tolerance = tolerance

    def _downgrade(self, candidate: CandidateRelationship, market: Market, reason: str) -> ValidatedCandidate:
        logger.info(f"  DOWNGRADE {market.market_id}: {reason}")
        return ValidatedCandidate(
            candidate=candidate,
            market=market,
            strength=candidate.strength * DOWNGRADE_FACTOR,
            has_historical_data=False
        )

    def _fetch_series(self, market: Market) -> List[PricePoint]:
        try:
            return self.provider.get_price_history(
                market.price_token, self.interval, self.fidelity
            ) or []
        except Exception as e:
            # Timeouts and provider failures degrade, they never abort the run
            logger.warning(f"Price history fetch failed for {market.market_id}: {e}")
            return []

    def validate(
        self,
        candidate: CandidateRelationship,
        market: Market
    ) -> Optional[ValidatedCandidate]:
        """
        Validate one candidate.

        Args:
            candidate: Relationship claimed by the reasoning service
            market: The candidate's target market

        Returns:
            ValidatedCandidate (accepted or downgraded), or None if rejected
        """
        if not market.price_token or len(self.trigger_series) < MIN_SAMPLE_SIZE:
            return self._downgrade(candidate, market, "no price token or insufficient trigger history")

        cached = self.cache.get(self.trigger.market_id, market.market_id) if self.cache is not None else None

        if cached is not None:
            correlation = cached
            logger.debug(f"Correlation cache hit for {market.market_id}")
        else:
            target_series = self._fetch_series(market)
            if len(target_series) < MIN_SAMPLE_SIZE:
                return self._downgrade(candidate, market, f"only {len(target_series)} price points")

            aligned = align_price_series(self.trigger_series, target_series, self.tolerance)
            if len(aligned) < MIN_SAMPLE_SIZE:
                return self._downgrade(candidate, market, f"only {len(aligned)} aligned points")

            correlation = analyze_correlation(aligned.prices_a, aligned.prices_b)
            correlation.impact_ratio = calculate_impact_ratio(
                aligned.prices_a, aligned.prices_b, threshold=0.05
            )

            if self.cache is not None:
                self.cache.put(self.trigger.market_id, market.market_id, correlation)

        r = correlation.coefficient

        if not passes_acceptance_gate(r, candidate.strength):
            reason = "weak correlation" if abs(r) < MIN_CORRELATION else "low claimed strength"
            logger.info(
                f"  REJECTED {market.market_id}: {reason} "
                f"(|r|={abs(r):.3f}, strength={candidate.strength:.2f})"
            )
            return None

        strength = (abs(r) + candidate.strength) / 2
        logger.info(
            f"  ACCEPTED {market.market_id}: |r|={abs(r):.3f}, "
            f"claimed={candidate.strength:.2f}, final={strength:.3f}"
        )

        return ValidatedCandidate(
            candidate=candidate,
            market=market,
            strength=min(1.0, strength),
            has_historical_data=True,
            correlation=correlation,
            impact_ratio=correlation.impact_ratio
        )
