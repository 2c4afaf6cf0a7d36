# extpack/core/jsonutils.py
from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = ["safeJsonDumps", "prettyJsonDumps"]



def _jsonDefault(obj: Any) -> Any:
    """Fallback for values log records and reports commonly carry."""
    if isinstance(obj, Path):
        return obj.as_posix()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=repr)
    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj)}
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    # Never raise while logging
    return repr(obj)



def safeJsonDumps(obj: object) -> str:
    """
    Compact one-line JSON with deterministic separators. UTF-8 is kept as-is.
    Values json cannot encode natively go through `_jsonDefault`. A payload
    that still fails (NaN, infinity, cycles) is written as its repr.
    """
    try:
        return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"), default=_jsonDefault)
    except (ValueError, RecursionError):
        return json.dumps(repr(obj), ensure_ascii=False)



def prettyJsonDumps(obj: object) -> str:
    """
    Stable, human-readable JSON used for files written into packages.
    Key order is the insertion order of `obj`; output ends with a newline.
    """
    return json.dumps(obj, ensure_ascii=False, allow_nan=False, indent=2) + "\n"
