"""
Scenario Variant Generation Module

Builds conservative / expected / aggressive node sets from one graph by
substituting each non-trigger node's prediction with the lower bound,
nothing, or the upper bound of its confidence interval.
"""

from dataclasses import replace
from typing import List, Optional, Sequence

from causal_sim.impact import classify_impact_level, percent_change
from causal_sim.models import (
    CausalEdge,
    ConfidenceInterval,
    ScenarioVariants,
    SimulationNode,
)

from .uncertainty import calculate_confidence_intervals


def _with_prediction(node: SimulationNode, predicted: float) -> SimulationNode:
    change_pct = percent_change(node.current_probability, predicted)
    return replace(
        node,
        predicted_probability=predicted,
        probability_change=predicted - node.current_probability,
        percent_change=change_pct,
        impact_level=classify_impact_level(change_pct)
    )


def generate_scenario_variants(
    nodes: Sequence[SimulationNode],
    edges: Sequence[CausalEdge],
    intervals: Optional[Sequence[ConfidenceInterval]] = None
) -> ScenarioVariants:
    """
    Generate the three scenario variants.

    Args:
        nodes: Simulation nodes (typically after propagation)
        edges: Graph edges
        intervals: Precomputed intervals parallel to nodes (computed if None)

    Returns:
        ScenarioVariants; trigger nodes are identical in all three
    """
    if intervals is None:
        intervals = calculate_confidence_intervals(nodes, edges)

    conservative: List[SimulationNode] = []
    aggressive: List[SimulationNode] = []

    for node, interval in zip(nodes, intervals):
        if node.layer == 0:
            conservative.append(node)
            aggressive.append(node)
            continue

        conservative.append(_with_prediction(node, interval.lower))
        aggressive.append(_with_prediction(node, interval.upper))

    return ScenarioVariants(
        conservative=conservative,
        expected=list(nodes),
        aggressive=aggressive
    )
