"""
JSON utilities for numpy values, datetimes and model objects.
"""

import json
from datetime import datetime
from typing import Any

import numpy as np


class NumpyJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy scalars/arrays, datetimes and objects with to_dict()."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()

        if isinstance(obj, datetime):
            return obj.isoformat()

        to_dict = getattr(obj, "to_dict", None)
        if callable(to_dict):
            return to_dict()

        return super().default(obj)


def dump_json(obj: Any, fp, **kwargs) -> None:
    """json.dump with NumpyJSONEncoder and indentation by default."""
    kwargs.setdefault('cls', NumpyJSONEncoder)
    kwargs.setdefault('indent', 2)
    kwargs.setdefault('ensure_ascii', False)
    json.dump(obj, fp, **kwargs)


def dumps_json(obj: Any, **kwargs) -> str:
    """json.dumps counterpart of dump_json."""
    kwargs.setdefault('cls', NumpyJSONEncoder)
    kwargs.setdefault('indent', 2)
    kwargs.setdefault('ensure_ascii', False)
    return json.dumps(obj, **kwargs)
