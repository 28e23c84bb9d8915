"""
Uncertainty Estimation Module

Derives a ± band around each node's predicted probability:

    uncertainty = layer × 0.05 + (1 − mean confidence weight) × 0.15

using incoming-edge weights HIGH=0.9, MEDIUM=0.7, LOW=0.5. Bounds are
clamped to [0.01, 0.99]; the trigger has a zero-width band.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from causal_sim.impact import MAX_PROBABILITY, MIN_PROBABILITY
from causal_sim.models import CausalEdge, ConfidenceInterval, SimulationNode

from .logging_utils import log_summary, prepare_output_files, setup_graph_logger


UNCERTAINTY_WEIGHTS: Dict[str, float] = {
    "HIGH": 0.9,
    "MEDIUM": 0.7,
    "LOW": 0.5,
}

LAYER_UNCERTAINTY = 0.05
CONFIDENCE_UNCERTAINTY = 0.15


def node_uncertainty(node: SimulationNode, incoming: Sequence[CausalEdge]) -> float:
    """Half-width of the band for a non-trigger node."""
    if incoming:
        avg_confidence = sum(
            UNCERTAINTY_WEIGHTS.get(e.confidence_level, UNCERTAINTY_WEIGHTS["LOW"])
            for e in incoming
        ) / len(incoming)
    else:
        avg_confidence = 0.0

    return node.layer * LAYER_UNCERTAINTY + (1 - avg_confidence) * CONFIDENCE_UNCERTAINTY


def calculate_confidence_intervals(
    nodes: Sequence[SimulationNode],
    edges: Sequence[CausalEdge],
    output_dir: Optional[Path] = None
) -> List[ConfidenceInterval]:
    """
    Calculate confidence intervals for every node.

    Args:
        nodes: Simulation nodes (typically after propagation)
        edges: Graph edges
        output_dir: Optional directory for the summary file

    Returns:
        One ConfidenceInterval per node, in input order
    """
    logger = setup_graph_logger("uncertainty", output_dir)
    _, summary_file = prepare_output_files(output_dir, "uncertainty")

    intervals = []

    for node in nodes:
        if node.layer == 0:
            intervals.append(ConfidenceInterval(
                market_id=node.market_id,
                lower=node.predicted_probability,
                upper=node.predicted_probability,
                uncertainty=0.0
            ))
            continue

        incoming = [e for e in edges if e.target_market_id == node.market_id]
        uncertainty = node_uncertainty(node, incoming)

        intervals.append(ConfidenceInterval(
            market_id=node.market_id,
            lower=max(MIN_PROBABILITY, node.predicted_probability - uncertainty),
            upper=min(MAX_PROBABILITY, node.predicted_probability + uncertainty),
            uncertainty=uncertainty
        ))

    widths = [ci.uncertainty for ci in intervals if ci.uncertainty > 0]
    summary = {
        "module": "uncertainty",
        "nodes": len(intervals),
        "mean_uncertainty": round(sum(widths) / len(widths), 4) if widths else 0.0,
        "max_uncertainty": round(max(widths), 4) if widths else 0.0
    }
    log_summary(summary_file, summary)
    logger.info(f"Computed {len(intervals)} confidence intervals")

    return intervals
