"""
Feedback Loop Detection Module

Depth-first cycle detection over the directed edge set. The builder's
processed-set discipline should never produce cycles; this check runs
independently as a diagnostic on built (or merged/replayed) graphs.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import networkx as nx

from causal_sim.models import CausalEdge, SimulationGraph, SimulationNode

from .logging_utils import log_summary, prepare_output_files, setup_graph_logger


def detect_feedback_loops(
    nodes: Sequence[SimulationNode],
    edges: Sequence[CausalEdge]
) -> List[List[str]]:
    """
    Find cycles in the edge set.

    Uses a visited set and an on-stack set; whenever an edge reaches a
    node on the current path, the path suffix starting at that node is
    recorded as a loop.

    Args:
        nodes: Graph nodes (DFS roots, in order)
        edges: Directed edges

    Returns:
        List of loops, each a list of market ids
    """
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_market_id, []).append(edge.target_market_id)

    loops: List[List[str]] = []
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    def dfs(node_id: str, path: List[str]) -> None:
        visited.add(node_id)
        on_stack.add(node_id)
        path.append(node_id)

        for target in adjacency.get(node_id, []):
            if target not in visited:
                dfs(target, list(path))
            elif target in on_stack:
                loops.append(path[path.index(target):])

        on_stack.discard(node_id)

    roots = [n.market_id for n in nodes]
    # Edge endpoints without nodes still get visited
    roots += [e.source_market_id for e in edges]

    for root in roots:
        if root not in visited:
            dfs(root, [])

    return loops


def check_graph_loops(
    graph: SimulationGraph,
    output_dir: Optional[Path] = None
) -> List[List[str]]:
    """
    Run loop detection on a graph and log the outcome.

    Cross-checks the DFS result against NetworkX acyclicity.

    Args:
        graph: Simulation graph
        output_dir: Optional directory for the summary file

    Returns:
        Detected loops
    """
    logger = setup_graph_logger("loop_detection", output_dir)
    _, summary_file = prepare_output_files(output_dir, "loop_detection")

    loops = detect_feedback_loops(graph.nodes, graph.edges)
    is_dag = nx.is_directed_acyclic_graph(graph.to_networkx())

    if loops:
        logger.warning(f"Detected {len(loops)} feedback loops: {loops}")
    else:
        logger.info("No feedback loops detected")

    if is_dag == bool(loops):
        logger.error(f"Loop detection disagrees with acyclicity check (is_dag={is_dag}, loops={len(loops)})")

    log_summary(summary_file, {
        "module": "loop_detection",
        "is_dag": is_dag,
        "loops_detected": len(loops),
        "loops": loops
    })

    return loops
