"""
Tests for the graph post-processing passes: propagation, uncertainty,
scenario variants and feedback loop detection.
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from causal_sim.graph import (
    calculate_confidence_intervals,
    check_graph_loops,
    detect_feedback_loops,
    generate_scenario_variants,
    propagate_probabilities,
)
from causal_sim.impact import classify_impact_level, percent_change
from causal_sim.models import CausalEdge, SimulationGraph, SimulationNode


def _node(market, current, predicted, layer):
    change = percent_change(current, predicted)
    return SimulationNode(
        market=market,
        current_probability=current,
        predicted_probability=predicted,
        probability_change=predicted - current,
        percent_change=change,
        layer=layer,
        impact_level=classify_impact_level(change)
    )


def _edge(source, target, strength, confidence="HIGH", direction="increase"):
    return CausalEdge(
        source_market_id=source,
        target_market_id=target,
        strength=strength,
        direction=direction,
        time_lag="days",
        confidence_level=confidence,
        explanation=f"{source} drives {target}",
        has_historical_data=True
    )


@pytest.fixture
def diamond_graph(make_market):
    """
    T (0.2 → 1.0) feeds A and B; both feed C.

    Built values are deliberately stale for C so propagation has work to do.
    """
    nodes = [
        _node(make_market("T"), 0.2, 1.0, 0),
        _node(make_market("A"), 0.3, 0.5, 1),
        _node(make_market("B"), 0.4, 0.5, 1),
        _node(make_market("C"), 0.5, 0.55, 2),
    ]
    edges = [
        _edge("T", "A", 0.25, "HIGH"),
        _edge("T", "B", 0.125, "MEDIUM"),
        _edge("A", "C", 0.6, "HIGH"),
        _edge("B", "C", 0.5, "LOW", direction="decrease"),
    ]
    return SimulationGraph(trigger_market_id="T", trigger_outcome="Yes", nodes=nodes, edges=edges)


class TestPropagation:
    """Tests for causal_sim.graph.propagation.propagate_probabilities"""

    def test_multi_parent_weighted_average(self, diamond_graph):
        """C = 0.5 + (1.0·0.12 + 0.4·(−0.05)) / 1.4"""
        nodes, summary = propagate_probabilities(diamond_graph)
        by_id = {n.market_id: n for n in nodes}

        assert by_id["A"].predicted_probability == pytest.approx(0.5)
        assert by_id["B"].predicted_probability == pytest.approx(0.5)
        assert by_id["C"].predicted_probability == pytest.approx(0.5 + 0.10 / 1.4)
        assert by_id["C"].impact_level == "medium"
        assert summary["nodes_updated"] == 3

    def test_trigger_unchanged_and_input_not_mutated(self, diamond_graph):
        before = [n.predicted_probability for n in diamond_graph.nodes]
        nodes, _ = propagate_probabilities(diamond_graph)

        assert nodes[0].market_id == "T"
        assert nodes[0].predicted_probability == 1.0
        assert [n.predicted_probability for n in diamond_graph.nodes] == before

    def test_sorted_by_layer(self, diamond_graph):
        shuffled = diamond_graph.with_nodes(list(reversed(diamond_graph.nodes)))
        nodes, _ = propagate_probabilities(shuffled)
        assert [n.layer for n in nodes] == [0, 1, 1, 2]

    def test_orphan_left_unchanged(self, make_market):
        orphan = _node(make_market("X"), 0.3, 0.42, 1)
        graph = SimulationGraph(
            trigger_market_id="T",
            trigger_outcome="Yes",
            nodes=[_node(make_market("T"), 0.2, 1.0, 0), orphan],
            edges=[]
        )
        nodes, summary = propagate_probabilities(graph)
        assert nodes[1] == orphan
        assert summary["nodes_without_parents"] == 1

    def test_clamped(self, make_market):
        graph = SimulationGraph(
            trigger_market_id="T",
            trigger_outcome="Yes",
            nodes=[_node(make_market("T"), 0.1, 1.0, 0), _node(make_market("A"), 0.9, 0.9, 1)],
            edges=[_edge("T", "A", 1.0)]
        )
        nodes, _ = propagate_probabilities(graph)
        assert nodes[1].predicted_probability == 0.99

    def test_writes_logs(self, diamond_graph, tmp_path):
        propagate_probabilities(diamond_graph, output_dir=tmp_path)

        lines = (tmp_path / "propagation_updates.jsonl").read_text().strip().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[-1])["market_id"] == "C"

        summary = json.loads((tmp_path / "propagation_summary.json").read_text())
        assert summary["module"] == "propagation"


class TestUncertainty:
    """Tests for causal_sim.graph.uncertainty.calculate_confidence_intervals"""

    def test_band_widths(self, diamond_graph):
        intervals = calculate_confidence_intervals(diamond_graph.nodes, diamond_graph.edges)
        by_id = {ci.market_id: ci for ci in intervals}

        assert by_id["T"].uncertainty == 0.0
        assert by_id["T"].lower == by_id["T"].upper == 1.0

        # Layer 1, one HIGH edge: 0.05 + 0.1 × 0.15
        assert by_id["A"].uncertainty == pytest.approx(0.065)
        assert by_id["A"].lower == pytest.approx(0.435)
        assert by_id["A"].upper == pytest.approx(0.565)

        # Layer 2, HIGH + LOW: 0.10 + (1 − 0.7) × 0.15
        assert by_id["C"].uncertainty == pytest.approx(0.145)

    def test_bounds_clamped(self, make_market):
        nodes = [_node(make_market("T"), 0.2, 1.0, 0), _node(make_market("A"), 0.9, 0.98, 1)]
        intervals = calculate_confidence_intervals(nodes, [_edge("T", "A", 0.5, "LOW")])
        assert intervals[1].upper == 0.99
        assert 0.01 <= intervals[1].lower <= intervals[1].upper


class TestScenarioVariants:
    """Tests for causal_sim.graph.variants.generate_scenario_variants"""

    def test_ordering(self, diamond_graph):
        """conservative ≤ expected ≤ aggressive for every node."""
        variants = generate_scenario_variants(diamond_graph.nodes, diamond_graph.edges)

        for low, mid, high in zip(variants.conservative, variants.expected, variants.aggressive):
            assert low.market_id == mid.market_id == high.market_id
            assert low.predicted_probability <= mid.predicted_probability <= high.predicted_probability

    def test_trigger_identical(self, diamond_graph):
        variants = generate_scenario_variants(diamond_graph.nodes, diamond_graph.edges)
        assert variants.conservative[0] == variants.expected[0] == variants.aggressive[0]

    def test_derived_fields_recomputed(self, diamond_graph):
        variants = generate_scenario_variants(diamond_graph.nodes, diamond_graph.edges)
        low_a = variants.conservative[1]
        assert low_a.predicted_probability == pytest.approx(0.435)
        assert low_a.probability_change == pytest.approx(0.135)
        assert low_a.percent_change == pytest.approx(45.0)


class TestLoopDetection:
    """Tests for causal_sim.graph.loop_detection"""

    def test_acyclic(self, diamond_graph):
        assert detect_feedback_loops(diamond_graph.nodes, diamond_graph.edges) == []
        assert check_graph_loops(diamond_graph) == []

    def test_detects_cycle(self, make_market):
        nodes = [_node(make_market(m), 0.5, 0.5, i) for i, m in enumerate("ABC")]
        edges = [_edge("A", "B", 0.5), _edge("B", "C", 0.5), _edge("C", "A", 0.5)]
        loops = detect_feedback_loops(nodes, edges)
        assert loops == [["A", "B", "C"]]

    def test_self_loop(self, make_market):
        nodes = [_node(make_market("A"), 0.5, 0.5, 0)]
        assert detect_feedback_loops(nodes, [_edge("A", "A", 0.5)]) == [["A"]]

    def test_check_graph_loops_summary(self, make_market, tmp_path):
        nodes = [_node(make_market(m), 0.5, 0.5, i) for i, m in enumerate("AB")]
        graph = SimulationGraph(
            trigger_market_id="A",
            trigger_outcome="Yes",
            nodes=nodes,
            edges=[_edge("A", "B", 0.5), _edge("B", "A", 0.5)]
        )
        loops = check_graph_loops(graph, output_dir=tmp_path)
        assert loops == [["A", "B"]]

        summary = json.loads((tmp_path / "loop_detection_summary.json").read_text())
        assert summary["is_dag"] is False
        assert summary["loops_detected"] == 1
