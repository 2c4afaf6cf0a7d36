# extpack/manifest/__init__.py
from .manifest import (
    ExtensionManifest,
    GrammarEntry,
    LanguageServerEntry,
    LibEntry,
    ManifestFormat,
)
from .loader import loadManifest, parseManifest

__all__ = [
    "ExtensionManifest",
    "GrammarEntry",
    "LanguageServerEntry",
    "LibEntry",
    "ManifestFormat",
    "loadManifest",
    "parseManifest",
]
