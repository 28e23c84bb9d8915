#!/usr/bin/env python3
"""
Causal Simulation CLI

Simulates an outcome of a Polymarket market and reports how related
markets are predicted to move.

Usage:
    python -m cli.run_simulation 516710 Yes
    python -m cli.run_simulation 516710 No --max-depth 2 --conservative
    python -m cli.run_simulation 516710 Yes --json --save
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from causal_sim.candidate_generator import LLMCandidateGenerator
from causal_sim.config import SimulationConfig, load_config
from causal_sim.graph_builder import InvalidOutcomeError
from causal_sim.models import SimulationScenario
from causal_sim.scenario import SimulationEngine
from causal_sim.storage import SimulationStorage, simulation_from_scenario
from integrations.polymarket_client import get_polymarket_client
from utils.json_utils import dumps_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_MISSING_TRIGGER = 1
EXIT_INVALID_OUTCOME = 2


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr
    )

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def apply_overrides(config: SimulationConfig, args) -> SimulationConfig:
    """Command-line flags take precedence over the config file."""
    overrides = {}
    if args.max_depth is not None:
        overrides["max_depth"] = args.max_depth
    if args.conservative:
        overrides["conservative_mode"] = True
    if args.propagate or args.conservative:
        overrides["run_propagation"] = True
    if args.no_propagation:
        overrides["run_propagation"] = False
    return replace(config, **overrides) if overrides else config


def print_summary(scenario: SimulationScenario) -> None:
    meta = scenario.metadata

    print(f"\n{scenario.name}")
    print(f"{'─'*60}")
    print(f"  Trigger prior:     {scenario.graph.trigger_node.current_probability:.1%}")
    print(f"  Markets affected:  {meta.total_markets_affected}")
    print(f"  Avg shift:         {meta.avg_probability_shift:.1%}")
    print(f"  Max shift:         {meta.max_probability_shift:.1%}")
    print(f"  Confidence:        {meta.confidence_score:.0f}/100")
    print(f"  Time horizon:      {meta.time_horizon}")

    affected = [n for n in scenario.nodes if n.layer > 0]
    if not affected:
        print("\n  No data-backed related markets found.")
        return

    print("\n  Predicted moves:")
    for node in sorted(affected, key=lambda n: (n.layer, -abs(n.probability_change))):
        print(
            f"    L{node.layer} [{node.impact_level:6}] "
            f"{node.current_probability:6.1%} → {node.predicted_probability:6.1%} "
            f"({node.percent_change:+.1f}%)  {node.market.question[:70]}"
        )

    if scenario.feedback_loops:
        print(f"\n  Warning: {len(scenario.feedback_loops)} feedback loops detected")


def run(args) -> int:
    config = apply_overrides(load_config(args.config), args)

    client = get_polymarket_client(timeout=config.request_timeout)

    trigger = client.get_market(args.market_id)
    if trigger is None:
        print(f"Error: market not found: {args.market_id}", file=sys.stderr)
        return EXIT_MISSING_TRIGGER

    if args.outcome not in trigger.outcomes:
        print(
            f"Error: outcome '{args.outcome}' not in {trigger.outcomes}",
            file=sys.stderr
        )
        return EXIT_INVALID_OUTCOME

    markets = client.get_markets(active=True)
    logger.info(f"Loaded {len(markets)} active markets")

    generator = LLMCandidateGenerator(
        model=config.llm_model,
        api_key=os.environ.get("OPENAI_API_KEY"),
        base_url=os.environ.get("OPENAI_BASE_URL"),
        timeout=config.generator_timeout,
        min_volume=config.min_pool_volume,
        max_pool_size=config.max_pool_size
    )
    engine = SimulationEngine(generator=generator, provider=client, config=config)

    try:
        scenario = engine.run(trigger, args.outcome, markets)
    except InvalidOutcomeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_OUTCOME

    if args.json:
        print(dumps_json(scenario.to_dict()))
    else:
        print_summary(scenario)

    if args.save:
        storage = SimulationStorage(args.storage_dir)
        filepath = storage.save(simulation_from_scenario(scenario))
        if not args.json:
            print(f"\n  Saved to: {filepath}")

    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate a market outcome and propagate its effects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cli.run_simulation 516710 Yes
  python -m cli.run_simulation 516710 Yes --propagate
  python -m cli.run_simulation 516710 No --max-depth 2 --conservative
        """
    )
    parser.add_argument("market_id", help="Trigger market id")
    parser.add_argument("outcome", help="Outcome assumed to occur (e.g. Yes)")
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Maximum propagation depth (default: from config)"
    )
    parser.add_argument(
        "--conservative",
        action="store_true",
        help="Report lower-bound predictions (implies --propagate)"
    )
    propagation = parser.add_mutually_exclusive_group()
    propagation.add_argument(
        "--propagate",
        action="store_true",
        help="Run propagation, uncertainty and variant passes"
    )
    propagation.add_argument(
        "--no-propagation",
        action="store_true",
        help="Skip the passes even if the config enables them"
    )
    parser.add_argument("--config", help="Path to a simulation config JSON file")
    parser.add_argument("--save", action="store_true", help="Save the simulation")
    parser.add_argument("--storage-dir", help="Directory for saved simulations")
    parser.add_argument("--json", action="store_true", help="Print the scenario as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        return run(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Simulation failed: {e}")
        return EXIT_MISSING_TRIGGER


if __name__ == "__main__":
    sys.exit(main())
