# extpack/app/settings.py
from __future__ import annotations
import json5, os
from pathlib import Path
from typing import Any, cast
from functools import lru_cache

from extpack.core.dictpath import getByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS_DEFAULTS", "SETTINGS_ENV_VAR", "SETTINGS_FILE_NAME",
    "loadUserSettings", "loadSettings", "deepMerge",
    "settings", "settingsBool", "settingsInt", "settingsFloat",
]


SETTINGS_ENV_VAR = "EXTPACK_SETTINGS"
SETTINGS_FILE_NAME = "extpack.json5"

SETTINGS_DEFAULTS: dict[str, Any] = {
    "__source": "EXTPACK_DEFAULTS",
    "registry": {"path": "extensions.toml", "baselineRef": "origin/main"},
    "build": {"root": "build", "maxWorkers": 1, "keepScratch": False, "allowSymlinks": False},
    "output": {"dir": "dist"},
    "vcs": {"gitBinary": "git", "timeoutSeconds": 120},
    "publish": {"indexUrl": None, "token": None, "timeoutMs": 30_000, "retries": 2},
    "logging": {"devMode": True, "file": None},
}



def _settingsPath(explicit: str | os.PathLike[str] | None = None) -> Path:
    if explicit:
        return Path(explicit)
    fromEnv = os.environ.get(SETTINGS_ENV_VAR)
    if fromEnv:
        return Path(fromEnv)
    return Path.cwd() / SETTINGS_FILE_NAME



def loadUserSettings(path: str | os.PathLike[str] | None = None) -> dict[str, Any]:
    filePath = _settingsPath(path)
    if filePath.exists():
        try:
            data = json5.loads(filePath.read_text(encoding="utf-8"))
        except Exception as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
            return {}
        if not isinstance(data, dict):
            logger.error("Settings file '%s' must contain an object, got %s", filePath, type(data).__name__)
            return {}
        return data
    return {}



@lru_cache(maxsize=4)
def loadSettings(path: str | None = None) -> dict[str, Any]:
    return cast(dict[str, Any], deepMerge(SETTINGS_DEFAULTS, loadUserSettings(path)))



def deepMerge(first: Any, second: Any) -> Any:
    """
    Returns a new value where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types (lists, strings, numbers, booleans, null),
    the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, Any] = {}
        for key, value in first.items():
            out[key] = value
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], value)
            else:
                out[key] = value
        return out

    return second

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None, *, source: str | None = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    val = getByPath(loadSettings(source), path)
    return default if val is None else val



def settingsBool(path: str, default: bool = False, *, source: str | None = None) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = getByPath(loadSettings(source), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true", "yes", "on")
    return bool(val)



def settingsInt(path: str, default: int = 0, *, source: str | None = None) -> int:
    val = getByPath(loadSettings(source), path)
    try:
        return int(val) if val is not None else default
    except (TypeError, ValueError):
        logger.warning("Setting '%s' is not an integer (%r); using %d", path, val, default)
        return default



def settingsFloat(path: str, default: float = 0.0, *, source: str | None = None) -> float:
    val = getByPath(loadSettings(source), path)
    try:
        return float(val) if val is not None else default
    except (TypeError, ValueError):
        logger.warning("Setting '%s' is not a number (%r); using %g", path, val, default)
        return default
