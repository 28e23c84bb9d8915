"""
Simulation Configuration

Loads engine settings from config/simulation.json (relative to the
project root) with environment-variable overrides.
"""

import json
import logging
import math
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

project_root = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = project_root / "config" / "simulation.json"

# Environment variable → (field name, type)
ENV_OVERRIDES = {
    "CAUSAL_SIM_MAX_DEPTH": ("max_depth", int),
    "CAUSAL_SIM_MAX_WORKERS": ("max_workers", int),
    "CAUSAL_SIM_LOG_DIR": ("log_dir", str),
}


@dataclass
class SimulationConfig:
    """Settings for one simulation engine."""
    max_depth: int = 3
    conservative_mode: bool = False
    run_propagation: bool = False
    max_workers: int = 4
    price_interval: str = "1w"
    price_fidelity: int = 60
    alignment_tolerance: int = 3600
    request_timeout: float = 10.0
    generator_timeout: float = 30.0
    min_pool_volume: float = 100_000.0
    max_pool_size: int = 100
    llm_model: str = "gpt-4o-mini"
    correlation_cache_ttl: float = 3600.0
    correlation_cache_size: int = 1024
    log_dir: Optional[str] = None

    def __post_init__(self):
        """Validate fields after initialization."""
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {self.max_depth}")

        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

        for name in ("request_timeout", "generator_timeout"):
            value = getattr(self, name)
            if not (value > 0 and math.isfinite(value)):
                raise ValueError(f"{name} must be finite and positive, got {value}")

    @property
    def log_path(self) -> Optional[Path]:
        return Path(self.log_dir) if self.log_dir else None

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(path: Optional[str] = None) -> SimulationConfig:
    """
    Load configuration.

    Args:
        path: JSON config file. If None, uses config/simulation.json when present.

    Returns:
        SimulationConfig

    Raises:
        FileNotFoundError: an explicit path does not exist
        ValueError: a value is out of range or an override is not numeric
    """
    values = {}

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Simulation configuration not found: {config_path}")
    else:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        logger.debug(f"Loading simulation config from: {config_path}")
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        known = {f.name for f in fields(SimulationConfig)}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown config key: {key}")

    for env_key, (field_name, cast) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = cast(raw)
        except ValueError:
            raise ValueError(f"{env_key} must be {cast.__name__}, got {raw!r}")

    return SimulationConfig(**values)
