from __future__ import annotations

from .context import getLogContext, logContext
from .setup import configureLogging

__all__ = [
    "configureLogging",
    "logContext",
    "getLogContext",
]
