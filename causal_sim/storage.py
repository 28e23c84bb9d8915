"""
Simulation Storage

Persistence layer for simulation records.
Stores simulations as JSON files in data/simulations/ directory.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from causal_sim.models import Simulation, SimulationScenario
from utils.datetime_utils import utc_now
from utils.json_utils import dump_json

logger = logging.getLogger(__name__)

project_root = Path(__file__).parent.parent


def new_simulation_id() -> str:
    return f"sim_{uuid.uuid4().hex[:12]}"


def simulation_from_scenario(
    scenario: SimulationScenario,
    simulation_id: Optional[str] = None
) -> Simulation:
    """Wrap a finished scenario in a completed Simulation record."""
    simulation = Simulation(
        simulation_id=simulation_id or new_simulation_id(),
        name=scenario.name,
        trigger_market_id=scenario.trigger_market.market_id,
        trigger_market_question=scenario.trigger_market.question,
        trigger_outcome=scenario.trigger_outcome,
        status="complete"
    )
    simulation.add_scenario(scenario)
    return simulation


class SimulationStorage:
    """
    Storage manager for simulations.

    One JSON file per simulation, with a small in-memory cache.
    """

    def __init__(self, storage_dir: Optional[str] = None, cache_max_size: int = 10):
        """
        Initialize storage.

        Args:
            storage_dir: Directory for simulation files
            cache_max_size: Number of simulations kept in memory
        """
        if storage_dir is None:
            storage_dir = project_root / "data" / "simulations"

        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self._cache: Dict[str, Simulation] = {}
        self._cache_max_size = cache_max_size

        logger.info(f"SimulationStorage initialized at {self.storage_dir}")

    def _get_filepath(self, simulation_id: str) -> Path:
        safe_id = simulation_id.replace("/", "_").replace("\\", "_")
        return self.storage_dir / f"{safe_id}.json"

    def save(self, simulation: Simulation, overwrite: bool = True) -> Path:
        """
        Save a simulation.

        Args:
            simulation: Simulation to save
            overwrite: Whether to overwrite an existing file

        Returns:
            Path to saved file
        """
        filepath = self._get_filepath(simulation.simulation_id)

        if filepath.exists() and not overwrite:
            raise FileExistsError(f"Simulation already exists: {filepath}")

        data = simulation.to_dict()
        data["_storage"] = {
            "saved_at": utc_now().isoformat(),
            "version": "1.0"
        }

        with open(filepath, 'w', encoding='utf-8') as f:
            dump_json(data, f)

        self._cache[simulation.simulation_id] = simulation
        self._trim_cache()

        logger.info(f"Saved simulation {simulation.simulation_id} to {filepath}")
        return filepath

    def load(self, simulation_id: str) -> Optional[Simulation]:
        """
        Load a simulation.

        Returns:
            Simulation or None if not found or unreadable
        """
        if simulation_id in self._cache:
            return self._cache[simulation_id]

        filepath = self._get_filepath(simulation_id)
        if not filepath.exists():
            logger.debug(f"Simulation not found: {filepath}")
            return None

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
            data.pop("_storage", None)
            simulation = Simulation.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error loading simulation {simulation_id}: {e}")
            return None

        self._cache[simulation_id] = simulation
        self._trim_cache()
        return simulation

    def delete(self, simulation_id: str) -> bool:
        """Delete a simulation; True if a file was removed."""
        self._cache.pop(simulation_id, None)

        filepath = self._get_filepath(simulation_id)
        if filepath.exists():
            filepath.unlink()
            logger.info(f"Deleted simulation {simulation_id}")
            return True
        return False

    def list_simulations(self) -> List[Dict]:
        """
        List stored simulations, newest first.

        Returns:
            List of summary dictionaries
        """
        simulations = []

        for filepath in self.storage_dir.glob("*.json"):
            try:
                with open(filepath, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Error reading simulation {filepath}: {e}")
                continue

            simulations.append({
                "simulation_id": data.get("simulation_id", ""),
                "name": data.get("name", ""),
                "status": data.get("status", ""),
                "trigger_market_id": data.get("trigger_market_id", ""),
                "trigger_outcome": data.get("trigger_outcome", ""),
                "scenario_count": len(data.get("scenarios", [])),
                "created_at": data.get("created_at", ""),
                "filepath": str(filepath)
            })

        simulations.sort(key=lambda x: x.get("created_at") or "", reverse=True)
        return simulations

    def _trim_cache(self) -> None:
        if len(self._cache) > self._cache_max_size:
            keys = list(self._cache.keys())
            for key in keys[:len(keys) - self._cache_max_size]:
                del self._cache[key]
