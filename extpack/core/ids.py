# extpack/core/ids.py
from __future__ import annotations

import re
import uuid6

__all__ = ["uuidv7", "safeDirName"]

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")



def uuidv7(*, prefix: str = "") -> str:
    """Returns a UUIDv7 string (time-ordered), optionally prefixed."""
    return prefix + str(uuid6.uuid7())



def safeDirName(text: str) -> str:
    """Collapses characters that are awkward in directory names into '_'."""
    cleaned = _UNSAFE_RE.sub("_", str(text)).strip("._")
    return cleaned or "_"
