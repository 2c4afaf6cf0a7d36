# extpack/manifest/loader.py
from __future__ import annotations
import logging
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import json5
from pydantic import ValidationError

from extpack.core.errors import ManifestMalformedError, ManifestNotFoundError
from .manifest import ExtensionManifest, ManifestFormat

logger = logging.getLogger(__name__)

__all__ = [
    "STRUCTURED_MANIFEST_NAME",
    "LEGACY_MANIFEST_NAME",
    "MANIFEST_CANDIDATES",
    "loadManifest",
    "parseManifest",
    "readRelaxedJson",
]


STRUCTURED_MANIFEST_NAME = "extension.toml"
LEGACY_MANIFEST_NAME = "extension.json"

# Lookup order: the first file that exists wins.
MANIFEST_CANDIDATES: tuple[tuple[str, ManifestFormat], ...] = (
    (STRUCTURED_MANIFEST_NAME, ManifestFormat.STRUCTURED),
    (LEGACY_MANIFEST_NAME, ManifestFormat.LEGACY_JSON),
)



def readRelaxedJson(text: str) -> Any:
    """JSON with comments and trailing commas tolerated."""
    return json5.loads(text)



_PARSERS: dict[ManifestFormat, Callable[[str], Any]] = {
    ManifestFormat.STRUCTURED: tomllib.loads,
    ManifestFormat.LEGACY_JSON: readRelaxedJson,
}



def parseManifest(text: str, fmt: ManifestFormat, *, source: str | Path = "<memory>") -> ExtensionManifest:
    try:
        raw = _PARSERS[fmt](text)
    except (tomllib.TOMLDecodeError, ValueError, RecursionError) as err:
        raise ManifestMalformedError(source, fmt, str(err)) from err
    if not isinstance(raw, Mapping):
        raise ManifestMalformedError(source, fmt, f"top level must be an object, got {type(raw).__name__}")
    try:
        return ExtensionManifest.model_validate(dict(raw))
    except ValidationError as err:
        raise ManifestMalformedError(source, fmt, str(err)) from err



def loadManifest(extensionDir: str | Path) -> tuple[ExtensionManifest, ManifestFormat]:
    """
    Loads the manifest of the extension rooted at `extensionDir`.

    `extension.toml` is tried first; only when it does not exist is
    `extension.json` tried. A file that exists but cannot be read or parsed is
    a ManifestMalformedError and never falls through to the other format.
    """
    extensionDir = Path(extensionDir)
    for fileName, fmt in MANIFEST_CANDIDATES:
        manifestPath = extensionDir / fileName
        try:
            text = manifestPath.read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        except (OSError, UnicodeDecodeError) as err:
            raise ManifestMalformedError(manifestPath, fmt, str(err)) from err

        manifest = parseManifest(text, fmt, source=manifestPath)
        logger.debug("Loaded %s manifest '%s' (%s %s)", fmt.value, manifestPath, manifest.name, manifest.version)
        return manifest, fmt

    raise ManifestNotFoundError(extensionDir, [name for name, _ in MANIFEST_CANDIDATES])
