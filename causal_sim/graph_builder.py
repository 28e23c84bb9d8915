"""
Layered Graph Builder

Grows a simulation graph outward from the trigger market with a bounded
breadth-first traversal:

1. Validate the simulated outcome (fatal if unknown)
2. Fetch the trigger's price history once
3. Dequeue frontier markets while their layer < max_depth
4. Ask the candidate generator for affected markets among the markets
   not yet processed
5. Validate candidates concurrently, then re-sort deterministically
6. Keep historically-backed candidates, capped by LAYER_FANOUT_LIMITS
7. Add one node and one edge per admitted candidate; enqueue it for
   expansion only if its strength > 0.5

A market enters the graph at most once (first discovery wins).
"""

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from causal_sim.alignment import DEFAULT_TOLERANCE
from causal_sim.candidate_generator import CandidateGenerator
from causal_sim.candidate_validator import (
    CandidateValidator,
    PriceHistoryProvider,
    ValidatedCandidate,
)
from causal_sim.correlation import CorrelationCache
from causal_sim.impact import estimate_impact, trigger_shock
from causal_sim.models import (
    CandidateRelationship,
    CausalEdge,
    Market,
    PricePoint,
    SimulationGraph,
    SimulationNode,
)

logger = logging.getLogger(__name__)


# Maximum new nodes admitted per parent, keyed by the layer being created.
# Layer 1 has a single parent (the trigger), so it holds at most 3 nodes.
LAYER_FANOUT_LIMITS: Dict[int, int] = {
    1: 3,
    2: 2,
    3: 1,
}

DEFAULT_MAX_DEPTH = 3

# Only relationships stronger than this are expanded further
EXPANSION_STRENGTH = 0.5


class InvalidOutcomeError(ValueError):
    """The simulated outcome is not one of the trigger market's outcomes."""


class SimulationCancelledError(RuntimeError):
    """The caller cancelled the run; no partial graph is returned."""


def max_nodes_for_layer(layer: int) -> int:
    """Fan-out cap for a layer; 0 for layers outside the table."""
    return LAYER_FANOUT_LIMITS.get(layer, 0)


class GraphBuilder:
    """
    Builds simulation graphs for a trigger market and outcome.

    Depends only on the CandidateGenerator and PriceHistoryProvider
    interfaces, so the traversal can be exercised with fixtures.
    """

    def __init__(
        self,
        generator: CandidateGenerator,
        provider: PriceHistoryProvider,
        max_depth: int = DEFAULT_MAX_DEPTH,
        cache: Optional[CorrelationCache] = None,
        max_workers: int = 4,
        price_interval: str = "1w",
        price_fidelity: Optional[int] = 60,
        tolerance: int = DEFAULT_TOLERANCE
    ):
        """
        Initialize graph builder.

        Args:
            generator: Candidate relationship generator
            provider: Price history provider
            max_depth: Deepest layer that may be created
            cache: Optional correlation cache shared across runs
            max_workers: Concurrent candidate validations per frontier market
            price_interval: Price history interval
            price_fidelity: Price history resolution in minutes
            tolerance: Alignment tolerance in seconds
        """
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")

        self.generator = generator
        self.provider = provider
        self.max_depth = max_depth
        self.cache = cache
        self.max_workers = max(1, max_workers)
        self.price_interval = price_interval
        self.price_fidelity = price_fidelity
        self.tolerance = tolerance

    def _fetch_trigger_series(self, trigger: Market) -> List[PricePoint]:
        if not trigger.price_token:
            logger.warning(f"Trigger market {trigger.market_id} has no price token")
            return []

        try:
            series = self.provider.get_price_history(
                trigger.price_token, self.price_interval, self.price_fidelity
            ) or []
        except Exception as e:
            logger.warning(f"Trigger price history fetch failed: {e}")
            return []

        logger.info(f"Got {len(series)} price points for trigger market")
        return series

    def _request_candidates(
        self,
        market: Market,
        outcome: str,
        pool: Sequence[Market]
    ) -> List[CandidateRelationship]:
        try:
            return list(self.generator.generate_candidates(market, outcome, pool) or [])
        except Exception as e:
            logger.error(f"Candidate generator failed for {market.market_id}: {e}")
            return []

    def _validate_all(
        self,
        validator: CandidateValidator,
        pairs: List[Tuple[CandidateRelationship, Market]],
        cancel_event: Optional[threading.Event]
    ) -> List[ValidatedCandidate]:
        """
        Validate candidates concurrently.

        Results are collected by input position so the outcome does not
        depend on completion order.
        """
        results: List[Optional[ValidatedCandidate]] = [None] * len(pairs)

        def run(index: int) -> None:
            if cancel_event is not None and cancel_event.is_set():
                return
            candidate, market = pairs[index]
            results[index] = validator.validate(candidate, market)

        if len(pairs) <= 1 or self.max_workers == 1:
            for i in range(len(pairs)):
                run(i)
        else:
            executor = ThreadPoolExecutor(max_workers=self.max_workers)
            try:
                futures = [executor.submit(run, i) for i in range(len(pairs))]
                for future in futures:
                    future.result()
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        self._check_cancelled(cancel_event)
        return [r for r in results if r is not None]

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelledError("Simulation cancelled")

    @staticmethod
    def _generate_explanation(result: ValidatedCandidate) -> str:
        reasoning = result.candidate.reasoning.strip()
        if result.correlation is not None:
            r = result.correlation.coefficient
            kind = "positive" if r > 0 else "negative/inverse"
            text = f"{reasoning} Historical correlation: {r * 100:.1f}% ({kind})"
            if result.correlation.lag:
                text += f", strongest at lag {result.correlation.lag}"
            return text.strip()
        return f"{reasoning} (Estimated impact)".strip()

    def _make_trigger_node(self, trigger: Market, outcome: str) -> SimulationNode:
        prior = trigger.outcome_probability(outcome)
        if not prior:
            prior = 0.5

        return SimulationNode(
            market=trigger,
            current_probability=prior,
            predicted_probability=1.0,
            probability_change=trigger_shock(prior),
            percent_change=100.0,
            layer=0,
            impact_level="high"
        )

    def build(
        self,
        trigger: Market,
        outcome: str,
        markets: Sequence[Market],
        cancel_event: Optional[threading.Event] = None
    ) -> SimulationGraph:
        """
        Build the simulation graph.

        Args:
            trigger: Trigger market
            outcome: Outcome assumed to occur (must be one of trigger.outcomes)
            markets: All markets available for propagation
            cancel_event: Optional event; when set the run aborts

        Returns:
            Complete SimulationGraph

        Raises:
            InvalidOutcomeError: outcome is not an outcome of the trigger
            SimulationCancelledError: cancel_event was set during the run
        """
        if outcome not in trigger.outcomes:
            raise InvalidOutcomeError(
                f"Outcome '{outcome}' not in {trigger.outcomes} for market {trigger.market_id}"
            )

        logger.info(f"Building simulation graph: {trigger.question} → {outcome}")
        logger.info(f"Analyzing {len(markets)} available markets, max depth {self.max_depth}")

        trigger_node = self._make_trigger_node(trigger, outcome)
        shock = trigger_node.probability_change

        nodes: Dict[str, SimulationNode] = {trigger.market_id: trigger_node}
        edges: List[CausalEdge] = []
        processed: Set[str] = {trigger.market_id}
        market_lookup: Dict[str, Market] = {m.market_id: m for m in markets}

        self._check_cancelled(cancel_event)
        trigger_series = self._fetch_trigger_series(trigger)

        validator = CandidateValidator(
            provider=self.provider,
            trigger=trigger,
            trigger_series=trigger_series,
            cache=self.cache,
            interval=self.price_interval,
            fidelity=self.price_fidelity,
            tolerance=self.tolerance
        )

        queue: Deque[Tuple[Market, int]] = deque([(trigger, 0)])

        while queue and queue[0][1] < self.max_depth:
            self._check_cancelled(cancel_event)

            current, layer = queue.popleft()
            next_layer = layer + 1
            cap = max_nodes_for_layer(next_layer)

            logger.info(f"--- LAYER {next_layer} --- expanding {current.question[:60]}")

            if cap == 0:
                logger.info(f"Layer {next_layer} admits no nodes, skipping")
                continue

            pool = [m for m in markets if m.market_id not in processed]
            candidates = self._request_candidates(current, outcome, pool)
            logger.info(f"Generator returned {len(candidates)} candidates for layer {next_layer}")

            pairs: List[Tuple[CandidateRelationship, Market]] = []
            requested: Set[str] = set()
            for candidate in candidates:
                market = market_lookup.get(candidate.target_market_id)
                if market is None or market.market_id in processed:
                    continue
                if market.market_id in requested:
                    continue
                requested.add(market.market_id)
                pairs.append((candidate, market))

            validated = self._validate_all(validator, pairs, cancel_event)

            # Stable sort keeps generator order among equal keys
            backed = [v for v in validated if v.has_historical_data]
            backed.sort(key=lambda v: v.sort_key, reverse=True)
            admitted = backed[:cap]

            logger.info(
                f"Validated {len(validated)} of {len(pairs)}; adding top {len(admitted)} "
                f"data-backed markets to layer {next_layer} (max: {cap})"
            )

            parent = nodes[current.market_id]

            for result in admitted:
                market = result.market
                if market.market_id in processed:
                    continue
                processed.add(market.market_id)

                coefficient = result.correlation.coefficient if result.correlation else None
                estimate = estimate_impact(
                    current_probability=market.primary_probability,
                    shock=shock,
                    correlation=coefficient,
                    claimed_strength=result.candidate.strength,
                    claimed_direction=result.candidate.impact_direction
                )

                edge = CausalEdge(
                    source_market_id=current.market_id,
                    target_market_id=market.market_id,
                    strength=result.strength,
                    direction=estimate.direction,
                    time_lag=result.candidate.time_lag,
                    confidence_level=result.confidence_level,
                    explanation=self._generate_explanation(result),
                    correlation=result.correlation,
                    has_historical_data=result.has_historical_data,
                    impact_ratio=result.impact_ratio
                )

                node = SimulationNode(
                    market=market,
                    current_probability=estimate.current_probability,
                    predicted_probability=estimate.predicted_probability,
                    probability_change=estimate.probability_change,
                    percent_change=estimate.percent_change,
                    layer=next_layer,
                    impact_level=estimate.impact_level,
                    incoming_edges=[edge]
                )
                parent.outgoing_edges.append(edge)
                nodes[market.market_id] = node
                edges.append(edge)

                logger.info(
                    f"    {market.question[:50]}: {estimate.current_probability * 100:.1f}% → "
                    f"{estimate.predicted_probability * 100:.1f}% ({estimate.direction})"
                )

                if result.strength > EXPANSION_STRENGTH and next_layer < self.max_depth:
                    queue.append((market, next_layer))

        self._check_cancelled(cancel_event)

        graph = SimulationGraph(
            trigger_market_id=trigger.market_id,
            trigger_outcome=outcome,
            nodes=list(nodes.values()),
            edges=edges,
            max_depth=self.max_depth
        )

        logger.info(f"Built simulation graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
        return graph
