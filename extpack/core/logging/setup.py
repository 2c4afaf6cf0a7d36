# extpack/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers

from extpack.app.settings import settings, settingsBool
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
]



# Disable propagation from chatty libraries
NO_PROPAGATE = [
    "asyncio", "concurrent.futures",
    "httpcore.connection", "httpcore.http11",
    "httpx",
]



def configureLogging(*, devMode: bool | None = None, verbose: bool = False, logFile: str | None = None) -> None:
    """
    Initiate the global logging configuration.

    Dev:
      - Console pretty logs (DEBUG when verbose, else INFO)
    CI / non-dev:
      - Console one-line JSON (INFO)
    Both:
      - Optional rotating JSON file log when `logging.file` (or `logFile`) is set
      - Token scrubbing on every handler
    """
    if devMode is None:
        devMode = settingsBool("logging.devMode", True)
    rootLevel = logging.DEBUG if verbose else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    # Formatters
    devFmt = RedactingFormatter(DevFormatter())
    jsonFmt = RedactingFormatter(JsonFormatter())

    # Handlers
    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(devFmt if devMode else jsonFmt)
    root.addHandler(consoleHandler)

    filePath = logFile or settings("logging.file")
    if filePath:
        fileHandler = logging.handlers.RotatingFileHandler(
            str(filePath),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(logging.DEBUG)
        fileHandler.setFormatter(jsonFmt)
        root.addHandler(fileHandler)

    # Per-logger tweaks (reduce noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
