"""
Simulation Engine

Runs one complete simulation:

1. Build the layered graph (GraphBuilder)
2. Propagate probabilities over multi-parent nodes
3. Compute confidence intervals and scenario variants
4. Check for feedback loops
5. Summarize the result as ScenarioMetadata

Steps 2-4 run only when run_propagation is set; by default the scenario
reports the builder's predictions.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from causal_sim.candidate_generator import CandidateGenerator
from causal_sim.candidate_validator import PriceHistoryProvider
from causal_sim.config import SimulationConfig
from causal_sim.correlation import CorrelationCache
from causal_sim.graph import (
    calculate_confidence_intervals,
    check_graph_loops,
    generate_scenario_variants,
    propagate_probabilities,
)
from causal_sim.graph_builder import GraphBuilder
from causal_sim.models import (
    Market,
    ScenarioMetadata,
    SimulationGraph,
    SimulationScenario,
    TimeLag,
)

logger = logging.getLogger(__name__)


# Edge confidence → score contribution (0-100)
CONFIDENCE_SCORES = {
    "HIGH": 90.0,
    "MEDIUM": 70.0,
    "LOW": 50.0,
}


def time_horizon_for_layer(max_layer: int) -> TimeLag:
    """Discretize the deepest layer reached into a horizon label."""
    if max_layer >= 3:
        return "weeks"
    if max_layer >= 2:
        return "days"
    if max_layer >= 1:
        return "hours"
    return "immediate"


def compute_metadata(graph: SimulationGraph) -> ScenarioMetadata:
    """
    Summarize a simulation graph.

    Shifts are absolute probability changes over non-trigger nodes. A
    trigger-only graph reports zero markets affected and zero shift.
    """
    affected = [n for n in graph.nodes if n.layer > 0]
    shifts = [abs(n.probability_change) for n in affected]

    avg_shift = sum(shifts) / len(shifts) if shifts else 0.0
    max_shift = max(shifts) if shifts else 0.0

    scores = [CONFIDENCE_SCORES.get(e.confidence_level, CONFIDENCE_SCORES["LOW"]) for e in graph.edges]
    confidence_score = sum(scores) / len(scores) if scores else 0.0

    max_layer = max((n.layer for n in graph.nodes), default=0)

    return ScenarioMetadata(
        total_markets_affected=len(affected),
        avg_probability_shift=avg_shift,
        max_probability_shift=max_shift,
        confidence_score=confidence_score,
        time_horizon=time_horizon_for_layer(max_layer)
    )


class SimulationEngine:
    """
    Builds a graph and runs the post-processing passes over it.
    """

    def __init__(
        self,
        generator: CandidateGenerator,
        provider: PriceHistoryProvider,
        config: Optional[SimulationConfig] = None,
        cache: Optional[CorrelationCache] = None
    ):
        self.config = config or SimulationConfig()
        if cache is None:
            cache = CorrelationCache(
                ttl_seconds=self.config.correlation_cache_ttl,
                max_entries=self.config.correlation_cache_size
            )
        self.cache = cache
        self.builder = GraphBuilder(
            generator=generator,
            provider=provider,
            max_depth=self.config.max_depth,
            cache=self.cache,
            max_workers=self.config.max_workers,
            price_interval=self.config.price_interval,
            price_fidelity=self.config.price_fidelity,
            tolerance=self.config.alignment_tolerance
        )

    def _pass_output_dir(self, trigger: Market) -> Optional[Path]:
        if self.config.log_path is None:
            return None
        safe_id = trigger.market_id.replace("/", "_").replace("\\", "_")
        return self.config.log_path / safe_id

    def run(
        self,
        trigger: Market,
        outcome: str,
        markets: Sequence[Market],
        name: Optional[str] = None,
        description: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> SimulationScenario:
        """
        Run a simulation.

        Args:
            trigger: Trigger market
            outcome: Outcome assumed to occur
            markets: Markets available for propagation
            name: Scenario name (default: "<question> → <outcome>")
            description: Scenario description
            cancel_event: Optional cancellation event

        Returns:
            SimulationScenario

        Raises:
            InvalidOutcomeError: outcome is not an outcome of the trigger
            SimulationCancelledError: the run was cancelled
        """
        graph = self.builder.build(trigger, outcome, markets, cancel_event=cancel_event)

        problems = graph.validate()
        if problems:
            logger.error(f"Built graph violates invariants: {problems}")

        intervals = []
        variants = None
        loops: List[List[str]] = []

        if self.config.run_propagation:
            output_dir = self._pass_output_dir(trigger)

            nodes, _ = propagate_probabilities(graph, output_dir)
            graph = graph.with_nodes(nodes)

            intervals = calculate_confidence_intervals(graph.nodes, graph.edges, output_dir)
            variants = generate_scenario_variants(graph.nodes, graph.edges, intervals)

            loops = check_graph_loops(graph, output_dir)
            if loops:
                logger.warning(f"Simulation graph contains {len(loops)} feedback loops")

            if self.config.conservative_mode:
                logger.info("Conservative mode: reporting lower-bound predictions")
                graph = graph.with_nodes(variants.conservative)

        metadata = compute_metadata(graph)

        logger.info(
            f"Simulation complete: {metadata.total_markets_affected} markets affected, "
            f"avg shift {metadata.avg_probability_shift * 100:.1f}%, "
            f"confidence {metadata.confidence_score:.0f}, horizon {metadata.time_horizon}"
        )

        return SimulationScenario(
            name=name or f"{trigger.question} → {outcome}",
            description=description or f"Simulation of {outcome} occurring",
            trigger_market=trigger,
            trigger_outcome=outcome,
            trigger_probability=graph.trigger_node.predicted_probability,
            graph=graph,
            metadata=metadata,
            confidence_intervals=intervals,
            variants=variants,
            feedback_loops=loops
        )
