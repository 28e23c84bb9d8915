"""
Data Models for Causal Simulation

Defines the core data structures for the market propagation engine:
- Market: Prediction market snapshot (read-only input)
- PricePoint: Single (timestamp, price) observation
- CandidateRelationship: Externally-suggested affected market
- CorrelationResult: Statistical relationship between two price series
- CausalEdge: Directed influence between two markets
- SimulationNode: Market with current and predicted probability
- SimulationGraph: Nodes + edges produced by one simulation run
- SimulationScenario / Simulation: Run output and its persisted record
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Optional

import networkx as nx

from utils.datetime_utils import parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)


# Type definitions
ConfidenceLevel = Literal["HIGH", "MEDIUM", "LOW"]
ImpactDirection = Literal["increase", "decrease"]
TimeLag = Literal["immediate", "hours", "days", "weeks"]
ImpactLevel = Literal["high", "medium", "low"]
SimulationStatus = Literal["pending", "running", "complete", "error"]

CONFIDENCE_LEVELS = ("HIGH", "MEDIUM", "LOW")
IMPACT_DIRECTIONS = ("increase", "decrease")
TIME_LAGS = ("immediate", "hours", "days", "weeks")
IMPACT_LEVELS = ("high", "medium", "low")
SIMULATION_STATUSES = ("pending", "running", "complete", "error")


@dataclass
class Market:
    """
    A prediction market as seen by the engine.

    outcome_prices is parallel to outcomes; the values need not sum to 1.
    """
    market_id: str
    question: str
    outcomes: List[str]
    outcome_prices: List[float]
    volume: float = 0.0
    liquidity: float = 0.0
    category: Optional[str] = None
    clob_token_ids: List[str] = field(default_factory=list)
    slug: Optional[str] = None
    end_date: Optional[str] = None
    active: bool = True
    closed: bool = False

    def __post_init__(self):
        if len(self.outcomes) != len(self.outcome_prices):
            raise ValueError(
                f"outcomes and outcome_prices must be parallel lists, got "
                f"{len(self.outcomes)} outcomes and {len(self.outcome_prices)} prices"
            )

    @property
    def price_token(self) -> Optional[str]:
        """Token used to look up price history (first outcome's CLOB token)."""
        return self.clob_token_ids[0] if self.clob_token_ids else None

    def outcome_probability(self, outcome: str) -> Optional[float]:
        """Current probability of the given outcome label, or None if absent."""
        if outcome not in self.outcomes:
            return None
        return self.outcome_prices[self.outcomes.index(outcome)]

    @property
    def primary_probability(self) -> float:
        """Probability of the first listed outcome (0.5 when unknown)."""
        if self.outcome_prices and self.outcome_prices[0]:
            return self.outcome_prices[0]
        return 0.5

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "market_id": self.market_id,
            "question": self.question,
            "outcomes": list(self.outcomes),
            "outcome_prices": [round(p, 4) for p in self.outcome_prices],
            "volume": round(self.volume, 2),
            "liquidity": round(self.liquidity, 2),
            "category": self.category,
            "clob_token_ids": list(self.clob_token_ids),
            "slug": self.slug,
            "end_date": self.end_date,
            "active": self.active,
            "closed": self.closed
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Market":
        """Create from dictionary."""
        return cls(
            market_id=str(data["market_id"]),
            question=data.get("question", ""),
            outcomes=list(data.get("outcomes", [])),
            outcome_prices=[float(p) for p in data.get("outcome_prices", [])],
            volume=float(data.get("volume", 0.0) or 0.0),
            liquidity=float(data.get("liquidity", 0.0) or 0.0),
            category=data.get("category"),
            clob_token_ids=list(data.get("clob_token_ids", [])),
            slug=data.get("slug"),
            end_date=data.get("end_date"),
            active=data.get("active", True),
            closed=data.get("closed", False)
        )


@dataclass(frozen=True)
class PricePoint:
    """Price observation: unix timestamp in seconds, price in [0, 1]."""
    timestamp: int
    price: float


@dataclass
class CandidateRelationship:
    """
    A candidate affected market claimed by the external reasoning service.

    The source market is implicit (the frontier market being expanded).
    Nothing here is statistically validated.
    """
    target_market_id: str
    reasoning: str
    time_lag: TimeLag
    strength: float
    impact_direction: ImpactDirection

    def __post_init__(self):
        """Validate fields after initialization."""
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"strength must be between 0.0 and 1.0, got {self.strength}")

        if self.time_lag not in TIME_LAGS:
            raise ValueError(f"time_lag must be one of {TIME_LAGS}, got {self.time_lag}")

        if self.impact_direction not in IMPACT_DIRECTIONS:
            raise ValueError(
                f"impact_direction must be one of {IMPACT_DIRECTIONS}, got {self.impact_direction}"
            )


@dataclass
class CorrelationResult:
    """Pearson correlation over aligned series, with Fisher-z confidence."""
    coefficient: float
    sample_size: int
    confidence: float
    lag: int = 0
    impact_ratio: Optional[float] = None

    def __post_init__(self):
        if not -1.0 <= self.coefficient <= 1.0:
            raise ValueError(f"coefficient must be between -1.0 and 1.0, got {self.coefficient}")

    @property
    def direction(self) -> str:
        return "positive" if self.coefficient > 0 else "negative"

    def to_dict(self) -> dict:
        return {
            "coefficient": round(self.coefficient, 4),
            "sample_size": self.sample_size,
            "confidence": round(self.confidence, 4),
            "lag": self.lag,
            "direction": self.direction,
            "impact_ratio": round(self.impact_ratio, 4) if self.impact_ratio is not None else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CorrelationResult":
        return cls(
            coefficient=data.get("coefficient", 0.0),
            sample_size=data.get("sample_size", 0),
            confidence=data.get("confidence", 0.0),
            lag=data.get("lag", 0),
            impact_ratio=data.get("impact_ratio")
        )


@dataclass
class CausalEdge:
    """
    Directed influence: source_market_id → target_market_id.

    has_historical_data is False when strength/direction come only from
    the external reasoning service.
    """
    source_market_id: str
    target_market_id: str
    strength: float
    direction: ImpactDirection
    time_lag: TimeLag
    confidence_level: ConfidenceLevel
    explanation: str
    correlation: Optional[CorrelationResult] = None
    has_historical_data: bool = False
    impact_ratio: Optional[float] = None

    def __post_init__(self):
        """Validate fields."""
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"strength must be between 0.0 and 1.0, got {self.strength}")

        if self.direction not in IMPACT_DIRECTIONS:
            raise ValueError(f"direction must be one of {IMPACT_DIRECTIONS}")

        if self.time_lag not in TIME_LAGS:
            raise ValueError(f"time_lag must be one of {TIME_LAGS}")

        if self.confidence_level not in CONFIDENCE_LEVELS:
            raise ValueError(f"confidence_level must be one of {CONFIDENCE_LEVELS}")

    @property
    def edge_id(self) -> str:
        return f"{self.source_market_id}->{self.target_market_id}"

    @property
    def sign(self) -> int:
        return 1 if self.direction == "increase" else -1

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "source_market_id": self.source_market_id,
            "target_market_id": self.target_market_id,
            "strength": round(self.strength, 4),
            "direction": self.direction,
            "time_lag": self.time_lag,
            "confidence_level": self.confidence_level,
            "explanation": self.explanation,
            "correlation": self.correlation.to_dict() if self.correlation else None,
            "has_historical_data": self.has_historical_data,
            "impact_ratio": round(self.impact_ratio, 4) if self.impact_ratio is not None else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CausalEdge":
        """Create from dictionary."""
        correlation = None
        if data.get("correlation"):
            correlation = CorrelationResult.from_dict(data["correlation"])

        return cls(
            source_market_id=data["source_market_id"],
            target_market_id=data["target_market_id"],
            strength=data.get("strength", 0.0),
            direction=data.get("direction", "increase"),
            time_lag=data.get("time_lag", "days"),
            confidence_level=data.get("confidence_level", "LOW"),
            explanation=data.get("explanation", ""),
            correlation=correlation,
            has_historical_data=data.get("has_historical_data", False),
            impact_ratio=data.get("impact_ratio")
        )


@dataclass
class SimulationNode:
    """
    A market inside a simulation graph.

    layer 0 is the trigger. incoming_edges / outgoing_edges mirror the
    graph's edge list for convenience.
    """
    market: Market
    current_probability: float
    predicted_probability: float
    probability_change: float
    percent_change: float
    layer: int
    impact_level: ImpactLevel
    incoming_edges: List[CausalEdge] = field(default_factory=list)
    outgoing_edges: List[CausalEdge] = field(default_factory=list)

    def __post_init__(self):
        if self.layer < 0:
            raise ValueError(f"layer must be >= 0, got {self.layer}")

        if self.impact_level not in IMPACT_LEVELS:
            raise ValueError(f"impact_level must be one of {IMPACT_LEVELS}")

    @property
    def market_id(self) -> str:
        return self.market.market_id

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "market": self.market.to_dict(),
            "current_probability": round(self.current_probability, 4),
            "predicted_probability": round(self.predicted_probability, 4),
            "probability_change": round(self.probability_change, 4),
            "percent_change": round(self.percent_change, 2),
            "layer": self.layer,
            "impact_level": self.impact_level,
            "incoming_edges": [e.edge_id for e in self.incoming_edges],
            "outgoing_edges": [e.edge_id for e in self.outgoing_edges]
        }


@dataclass
class SimulationGraph:
    """
    Nodes (unique by market id) and edges of one simulation run.

    Invariants:
    - every edge endpoint has a node
    - the trigger node sits at layer 0
    """
    trigger_market_id: str
    trigger_outcome: str
    nodes: List[SimulationNode]
    edges: List[CausalEdge]
    max_depth: int = 3
    generated_at: datetime = field(default_factory=utc_now)

    def get_node(self, market_id: str) -> Optional[SimulationNode]:
        for node in self.nodes:
            if node.market_id == market_id:
                return node
        return None

    @property
    def trigger_node(self) -> SimulationNode:
        node = self.get_node(self.trigger_market_id)
        if node is None:
            raise ValueError(f"Trigger node missing from graph: {self.trigger_market_id}")
        return node

    def incoming_edges(self, market_id: str) -> List[CausalEdge]:
        return [e for e in self.edges if e.target_market_id == market_id]

    def with_nodes(self, nodes: List[SimulationNode]) -> "SimulationGraph":
        """Copy of this graph with a replacement node list."""
        return SimulationGraph(
            trigger_market_id=self.trigger_market_id,
            trigger_outcome=self.trigger_outcome,
            nodes=nodes,
            edges=list(self.edges),
            max_depth=self.max_depth,
            generated_at=self.generated_at
        )

    def validate(self) -> List[str]:
        """
        Check structural invariants.

        Returns:
            List of human-readable violations (empty when valid)
        """
        problems = []
        seen = set()
        for node in self.nodes:
            if node.market_id in seen:
                problems.append(f"duplicate node {node.market_id}")
            seen.add(node.market_id)

        for edge in self.edges:
            if edge.source_market_id not in seen:
                problems.append(f"edge {edge.edge_id} has no source node")
            if edge.target_market_id not in seen:
                problems.append(f"edge {edge.edge_id} has no target node")

        trigger = self.get_node(self.trigger_market_id)
        if trigger is None:
            problems.append("trigger node missing")
        elif trigger.layer != 0:
            problems.append(f"trigger node at layer {trigger.layer}")

        return problems

    def to_networkx(self) -> nx.DiGraph:
        """Export as a NetworkX directed graph keyed by market id."""
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(
                node.market_id,
                layer=node.layer,
                predicted_probability=node.predicted_probability
            )
        for edge in self.edges:
            graph.add_edge(
                edge.source_market_id,
                edge.target_market_id,
                strength=edge.strength,
                confidence_level=edge.confidence_level
            )
        return graph

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "trigger_market_id": self.trigger_market_id,
            "trigger_outcome": self.trigger_outcome,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "metadata": {
                "node_count": len(self.nodes),
                "edge_count": len(self.edges),
                "max_depth": self.max_depth,
                "generated_at": self.generated_at.isoformat() if self.generated_at else None
            }
        }


@dataclass
class ConfidenceInterval:
    """Uncertainty band around one node's predicted probability."""
    market_id: str
    lower: float
    upper: float
    uncertainty: float

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "lower": round(self.lower, 4),
            "upper": round(self.upper, 4),
            "uncertainty": round(self.uncertainty, 4)
        }


@dataclass
class ScenarioVariants:
    """Three parallel node sets derived from one graph."""
    conservative: List[SimulationNode]
    expected: List[SimulationNode]
    aggressive: List[SimulationNode]

    def to_dict(self) -> dict:
        return {
            "conservative": [n.to_dict() for n in self.conservative],
            "expected": [n.to_dict() for n in self.expected],
            "aggressive": [n.to_dict() for n in self.aggressive]
        }


@dataclass
class ScenarioMetadata:
    """Summary statistics over a simulation graph."""
    total_markets_affected: int
    avg_probability_shift: float
    max_probability_shift: float
    confidence_score: float
    time_horizon: TimeLag

    def to_dict(self) -> dict:
        return {
            "total_markets_affected": self.total_markets_affected,
            "avg_probability_shift": round(self.avg_probability_shift, 4),
            "max_probability_shift": round(self.max_probability_shift, 4),
            "confidence_score": round(self.confidence_score, 2),
            "time_horizon": self.time_horizon
        }


@dataclass
class SimulationScenario:
    """Complete output of one simulation run."""
    name: str
    description: str
    trigger_market: Market
    trigger_outcome: str
    trigger_probability: float
    graph: SimulationGraph
    metadata: ScenarioMetadata
    confidence_intervals: List[ConfidenceInterval] = field(default_factory=list)
    variants: Optional[ScenarioVariants] = None
    feedback_loops: List[List[str]] = field(default_factory=list)

    @property
    def nodes(self) -> List[SimulationNode]:
        return self.graph.nodes

    @property
    def edges(self) -> List[CausalEdge]:
        return self.graph.edges

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "trigger_market": self.trigger_market.to_dict(),
            "trigger_outcome": self.trigger_outcome,
            "trigger_probability": self.trigger_probability,
            "graph": self.graph.to_dict(),
            "metadata": self.metadata.to_dict(),
            "confidence_intervals": [ci.to_dict() for ci in self.confidence_intervals],
            "variants": self.variants.to_dict() if self.variants else None,
            "feedback_loops": self.feedback_loops
        }


@dataclass
class Simulation:
    """Persisted record of a simulation request and its scenarios."""
    simulation_id: str
    name: str
    trigger_market_id: str
    trigger_market_question: str
    trigger_outcome: str
    status: SimulationStatus = "pending"
    scenarios: List[dict] = field(default_factory=list)
    active_scenario_index: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.status not in SIMULATION_STATUSES:
            raise ValueError(f"status must be one of {SIMULATION_STATUSES}, got {self.status}")

    def add_scenario(self, scenario: SimulationScenario) -> None:
        self.scenarios.append(scenario.to_dict())

    def to_dict(self) -> dict:
        return {
            "simulation_id": self.simulation_id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "status": self.status,
            "trigger_market_id": self.trigger_market_id,
            "trigger_market_question": self.trigger_market_question,
            "trigger_outcome": self.trigger_outcome,
            "scenarios": self.scenarios,
            "active_scenario_index": self.active_scenario_index,
            "error": self.error
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Simulation":
        created_at = parse_iso_datetime(data.get("created_at")) or utc_now()

        return cls(
            simulation_id=data["simulation_id"],
            name=data.get("name", ""),
            trigger_market_id=data.get("trigger_market_id", ""),
            trigger_market_question=data.get("trigger_market_question", ""),
            trigger_outcome=data.get("trigger_outcome", ""),
            status=data.get("status", "pending"),
            scenarios=data.get("scenarios", []),
            active_scenario_index=data.get("active_scenario_index", 0),
            error=data.get("error"),
            created_at=created_at
        )
