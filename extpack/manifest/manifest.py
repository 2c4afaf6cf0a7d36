# extpack/manifest/manifest.py
from __future__ import annotations
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

__all__ = [
    "ManifestFormat",
    "LibEntry",
    "GrammarEntry",
    "LanguageServerEntry",
    "ExtensionManifest",
]



class ManifestFormat(str, Enum):
    """Which on-disk form an extension declared its manifest in."""
    STRUCTURED = "toml"
    LEGACY_JSON = "json"



class LibEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str



class GrammarEntry(BaseModel):
    """Where a tree-sitter grammar is fetched from. Legacy manifests spell `rev` as `commit`."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    repository: str
    rev: str = Field(validation_alias=AliasChoices("rev", "commit"))



class LanguageServerEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    language: str



class ExtensionManifest(BaseModel):
    """
    Canonical extension metadata, independent of the file it was parsed from.

    Unknown keys are ignored so newer manifests still load. `grammars` and
    `language_servers` keep declaration order (plain dicts preserve it).
    """
    model_config = ConfigDict(extra="ignore")

    name: str
    version: str
    description: str | None = None
    repository: str | None = None
    authors: list[str] = Field(default_factory=list)
    lib: LibEntry | None = None
    themes: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    grammars: dict[str, GrammarEntry] = Field(default_factory=dict)
    language_servers: dict[str, LanguageServerEntry] = Field(default_factory=dict)

    def packagedCopy(self) -> "ExtensionManifest":
        """
        Output manifest seed: descriptive fields copied verbatim, asset
        collections empty so the asset walk can fill them with package paths.
        """
        return ExtensionManifest(
            name=self.name,
            version=self.version,
            description=self.description,
            repository=self.repository,
            authors=list(self.authors),
        )

    def toDocument(self) -> dict[str, Any]:
        """Plain, ordered dict in the on-disk key spelling (None fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)
