"""
Logging utilities for simulation post-processing passes.

Passes log to the console through the standard logging hierarchy and,
when given an output directory, write per-node JSONL update records and
a JSON summary alongside a plain-text log file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.datetime_utils import utc_now

GRAPH_LOGGER_PREFIX = "causal_sim.passes"

_FORMATTER = logging.Formatter(
    '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def setup_graph_logger(
    pass_name: str,
    output_dir: Optional[Path] = None,
    level: int = logging.INFO
) -> logging.Logger:
    """
    Get the logger for a post-processing pass.

    Console output is left to the application's logging configuration.
    When output_dir is given, a <pass_name>.log file handler is attached
    (replacing any handler from a previous run).

    Args:
        pass_name: Name of the pass (e.g., 'propagation')
        output_dir: Optional directory for the pass's log file
        level: Logging level

    Returns:
        Logger instance
    """
    logger = logging.getLogger(f"{GRAPH_LOGGER_PREFIX}.{pass_name}")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    if output_dir:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(output_dir / f"{pass_name}.log", mode='w')
        file_handler.setLevel(level)
        file_handler.setFormatter(_FORMATTER)
        logger.addHandler(file_handler)

    return logger


def log_node_update(
    output_file: Optional[Path],
    record: Dict[str, Any]
) -> None:
    """
    Append a node/edge update record to a JSONL file.

    No-op when output_file is None.
    """
    if output_file is None:
        return

    output_file.parent.mkdir(parents=True, exist_ok=True)
    record['timestamp'] = utc_now().isoformat()

    with open(output_file, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record) + '\n')


def log_summary(
    output_file: Optional[Path],
    summary_data: Dict[str, Any]
) -> None:
    """Write a pass summary to a JSON file; no-op when output_file is None."""
    if output_file is None:
        return

    output_file.parent.mkdir(parents=True, exist_ok=True)
    summary_data['timestamp'] = utc_now().isoformat()

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(summary_data, f, indent=2)


def prepare_output_files(output_dir: Optional[Path], pass_name: str):
    """
    Resolve (updates.jsonl, summary.json) paths for a pass.

    Clears a previous run's updates file. Returns (None, None) without
    an output directory.
    """
    if output_dir is None:
        return None, None

    output_dir = Path(output_dir)
    updates_file = output_dir / f"{pass_name}_updates.jsonl"
    summary_file = output_dir / f"{pass_name}_summary.json"

    if updates_file.exists():
        updates_file.unlink()

    return updates_file, summary_file


def read_jsonl(file_path: Path) -> List[dict]:
    """
    Read a JSONL file and return list of records.

    Args:
        file_path: Path to JSONL file

    Returns:
        List of dictionaries
    """
    if not file_path.exists():
        return []

    records = []
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))

    return records


def read_json(file_path: Path) -> Dict:
    """Read a JSON file ({} if missing)."""
    if not file_path.exists():
        return {}

    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)
