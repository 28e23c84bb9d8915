"""
Probability Propagation Module

Recomputes each non-trigger node's predicted probability from all of its
incoming edges, in ascending layer order:

    influence_e = (source.predicted - source.current) × strength_e × sign_e
    predicted   = clamp(current + Σ w_e·influence_e / Σ w_e)

with confidence weights HIGH=1.0, MEDIUM=0.7, LOW=0.4. The trigger and
nodes without incoming edges keep their values. Returns new nodes; the
input graph is not modified.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from causal_sim.impact import classify_impact_level, clamp_probability, percent_change
from causal_sim.models import SimulationGraph, SimulationNode

from .logging_utils import (
    log_node_update,
    log_summary,
    prepare_output_files,
    setup_graph_logger,
)


PROPAGATION_WEIGHTS: Dict[str, float] = {
    "HIGH": 1.0,
    "MEDIUM": 0.7,
    "LOW": 0.4,
}


def propagate_probabilities(
    graph: SimulationGraph,
    output_dir: Optional[Path] = None
) -> Tuple[List[SimulationNode], Dict]:
    """
    Propagate probability changes through the graph.

    Args:
        graph: Built simulation graph
        output_dir: Optional directory for JSONL update logs

    Returns:
        Tuple of (nodes sorted by layer, summary_stats)
    """
    logger = setup_graph_logger("propagation", output_dir)
    updates_file, summary_file = prepare_output_files(output_dir, "propagation")

    logger.info(
        f"Starting propagation on graph with {len(graph.nodes)} nodes, {len(graph.edges)} edges"
    )

    ordered = sorted(graph.nodes, key=lambda n: n.layer)
    original = {n.market_id: n for n in ordered}
    updated: Dict[str, SimulationNode] = {}

    nodes_updated = 0
    nodes_skipped = 0

    for node in ordered:
        if node.layer == 0:
            updated[node.market_id] = node
            continue

        incoming = graph.incoming_edges(node.market_id)

        total_influence = 0.0
        total_weight = 0.0

        for edge in incoming:
            # Sources not yet visited contribute their built values
            source = updated.get(edge.source_market_id) or original.get(edge.source_market_id)
            if source is None:
                continue

            source_shock = source.predicted_probability - source.current_probability
            influence = source_shock * edge.strength * edge.sign
            weight = PROPAGATION_WEIGHTS.get(edge.confidence_level, PROPAGATION_WEIGHTS["LOW"])

            total_influence += influence * weight
            total_weight += weight

        if total_weight == 0:
            updated[node.market_id] = node
            nodes_skipped += 1
            continue

        before = node.predicted_probability
        new_probability = clamp_probability(node.current_probability + total_influence / total_weight)
        change_pct = percent_change(node.current_probability, new_probability)

        updated[node.market_id] = replace(
            node,
            predicted_probability=new_probability,
            probability_change=new_probability - node.current_probability,
            percent_change=change_pct,
            impact_level=classify_impact_level(change_pct)
        )
        nodes_updated += 1

        log_node_update(updates_file, {
            "market_id": node.market_id,
            "layer": node.layer,
            "incoming_edges": len(incoming),
            "predicted_before": round(before, 4),
            "predicted_after": round(new_probability, 4)
        })
        logger.debug(
            f"Layer {node.layer} {node.market_id}: {before:.3f} → {new_probability:.3f} "
            f"from {len(incoming)} incoming edges"
        )

    result = [updated[n.market_id] for n in ordered]

    summary = {
        "module": "propagation",
        "nodes_updated": nodes_updated,
        "nodes_without_parents": nodes_skipped,
        "max_layer": max((n.layer for n in ordered), default=0)
    }
    log_summary(summary_file, summary)
    logger.info(f"Propagation complete: {nodes_updated} nodes updated, {nodes_skipped} unchanged")

    return result, summary
