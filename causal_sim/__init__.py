"""
Causal Simulation Module

Simulates "what if outcome X of market M occurs?" for prediction markets
and predicts how related markets move.

Candidate relationships come from an external reasoning service and are
only trusted when historical price co-movement supports them. The
deterministic core (validation, impact, propagation, uncertainty) can be
run against fixture candidates and fixture price histories.

Pipeline steps:
1. Candidate Generation (reasoning service, opaque)
2. Candidate Validation (price alignment + Pearson correlation)
3. Impact Estimation
4. Layered Graph Construction (bounded BFS with fan-out limits)
5. Post-processing: propagation, uncertainty bands, variants, loop check
"""

from .models import (
    Market,
    PricePoint,
    CandidateRelationship,
    CorrelationResult,
    CausalEdge,
    SimulationNode,
    SimulationGraph,
    ConfidenceInterval,
    ScenarioVariants,
    ScenarioMetadata,
    SimulationScenario,
    Simulation,
)
from .correlation import pearson_correlation, analyze_correlation, CorrelationCache
from .alignment import align_price_series
from .impact import estimate_impact, calculate_impact_ratio
from .candidate_generator import (
    CandidateGenerator,
    LLMCandidateGenerator,
    StaticCandidateGenerator,
)
from .candidate_validator import CandidateValidator, PriceHistoryProvider
from .graph_builder import (
    GraphBuilder,
    InvalidOutcomeError,
    SimulationCancelledError,
    LAYER_FANOUT_LIMITS,
)
from .config import SimulationConfig, load_config
from .scenario import SimulationEngine, compute_metadata
from .storage import SimulationStorage

__all__ = [
    "Market",
    "PricePoint",
    "CandidateRelationship",
    "CorrelationResult",
    "CausalEdge",
    "SimulationNode",
    "SimulationGraph",
    "ConfidenceInterval",
    "ScenarioVariants",
    "ScenarioMetadata",
    "SimulationScenario",
    "Simulation",
    "pearson_correlation",
    "analyze_correlation",
    "CorrelationCache",
    "align_price_series",
    "estimate_impact",
    "calculate_impact_ratio",
    "CandidateGenerator",
    "LLMCandidateGenerator",
    "StaticCandidateGenerator",
    "CandidateValidator",
    "PriceHistoryProvider",
    "GraphBuilder",
    "InvalidOutcomeError",
    "SimulationCancelledError",
    "LAYER_FANOUT_LIMITS",
    "SimulationConfig",
    "load_config",
    "SimulationEngine",
    "compute_metadata",
    "SimulationStorage",
]
