"""
Shared utilities for the causal simulation engine.
"""

from .datetime_utils import utc_now, parse_iso_datetime
from .json_utils import NumpyJSONEncoder, dump_json, dumps_json

__all__ = [
    "utc_now",
    "parse_iso_datetime",
    "NumpyJSONEncoder",
    "dump_json",
    "dumps_json",
]
