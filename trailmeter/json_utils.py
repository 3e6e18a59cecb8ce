"""JSON export helpers for analysis results.

Results are frozen dataclasses holding numpy scalars, enums and possibly
non-finite floats; :func:`to_jsonable` flattens them into plain Python so the
output is always valid for ``json.dumps(allow_nan=False)``.
"""

from __future__ import annotations

import dataclasses
import json
import math
from enum import Enum
from typing import Any

__all__ = [
    "safe_json_dumps",
    "sanitize_for_json",
    "to_jsonable",
]


def sanitize_for_json(obj: Any) -> tuple[Any, bool]:
    """Recursively convert *obj* to plain Python, replacing NaN/Inf with ``None``.

    Returns the cleaned object and whether any non-finite value was found.
    """
    found_non_finite = False

    def _walk(v: Any) -> Any:
        nonlocal found_non_finite
        if dataclasses.is_dataclass(v) and not isinstance(v, type):
            return {f.name: _walk(getattr(v, f.name)) for f in dataclasses.fields(v)}
        if isinstance(v, Enum):
            return v.value
        if hasattr(v, "tolist") and hasattr(v, "ndim"):
            v = v.tolist()
        elif hasattr(v, "item"):
            v = v.item()
        if isinstance(v, float):
            if math.isfinite(v):
                return v
            found_non_finite = True
            return None
        if isinstance(v, dict):
            return {str(k): _walk(val) for k, val in v.items()}
        if isinstance(v, (list, tuple)):
            return [_walk(item) for item in v]
        return v

    cleaned = _walk(obj)
    return cleaned, found_non_finite


def to_jsonable(value: Any) -> Any:
    cleaned, _ = sanitize_for_json(value)
    return cleaned


def safe_json_dumps(value: Any, *, indent: int | None = None) -> str:
    return json.dumps(to_jsonable(value), ensure_ascii=False, allow_nan=False, indent=indent)
