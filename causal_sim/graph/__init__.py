"""
Simulation graph post-processing passes.

Each pass is deterministic, optional and independently invokable on a
built SimulationGraph:
- Probability propagation over multi-parent nodes
- Uncertainty bands
- Feedback loop detection
- Scenario variants
"""

from .logging_utils import setup_graph_logger, log_node_update, log_summary
from .propagation import propagate_probabilities, PROPAGATION_WEIGHTS
from .uncertainty import calculate_confidence_intervals, UNCERTAINTY_WEIGHTS
from .loop_detection import detect_feedback_loops, check_graph_loops
from .variants import generate_scenario_variants

__all__ = [
    'setup_graph_logger',
    'log_node_update',
    'log_summary',
    'propagate_probabilities',
    'PROPAGATION_WEIGHTS',
    'calculate_confidence_intervals',
    'UNCERTAINTY_WEIGHTS',
    'detect_feedback_loops',
    'check_graph_loops',
    'generate_scenario_variants',
]
