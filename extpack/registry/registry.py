# extpack/registry/registry.py
from __future__ import annotations
import logging
import tomllib
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from semantic_version import Version

from extpack.core.errors import ParseError

logger = logging.getLogger(__name__)

__all__ = ["ExtensionId", "RegistryEntry", "Registry"]



# Opaque, hashable, orderable identifier. Immutable because `str` is.
ExtensionId = NewType("ExtensionId", str)



class RegistryEntry(BaseModel):
    """One `[<id>]` table of the registry file."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    path: Path
    version: str
    # When both are set, the source is materialized from this commit and `path`
    # is relative to the checkout.
    repository: str | None = None
    rev: str | None = None

    @field_validator("version")
    @classmethod
    def _checkSemver(cls, value: str) -> str:
        value = value.strip()
        try:
            Version(value)
        except ValueError as err:
            raise ValueError(f"'{value}' is not a semantic version") from err
        return value

    @model_validator(mode="after")
    def _checkRemote(self) -> "RegistryEntry":
        if (self.repository is None) != (self.rev is None):
            raise ValueError("'repository' and 'rev' must be given together")
        return self

    @property
    def isRemote(self) -> bool:
        return self.repository is not None and self.rev is not None



class Registry(Mapping[ExtensionId, RegistryEntry]):
    """
    Ordered ExtensionId -> RegistryEntry mapping, read-only after load.

    Order is the order of tables in the source document and is kept in an
    explicit key list next to the hash index, so iteration order never depends
    on how the document was parsed.
    """

    def __init__(
        self,
        entries: Iterable[tuple[ExtensionId, RegistryEntry]] = (),
        *,
        source: str = "<memory>",
        root: Path | None = None,
    ):
        self._ids: list[ExtensionId] = []
        self._index: dict[ExtensionId, RegistryEntry] = {}
        self.source = source
        # Directory relative entry paths are resolved against (the registry file's directory)
        self.root = root
        for extensionId, entry in entries:
            if extensionId in self._index:
                raise ParseError(source, f"duplicate extension id '{extensionId}'")
            self._ids.append(extensionId)
            self._index[extensionId] = entry

    # ----- Loading -----

    @classmethod
    def load(cls, path: str | Path) -> "Registry":
        """Reads and validates the registry file. Either everything loads or ParseError is raised."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as err:
            raise ParseError(path, "file does not exist") from err
        except (OSError, UnicodeDecodeError) as err:
            raise ParseError(path, str(err)) from err
        registry = cls.fromToml(text, source=str(path))
        registry.root = path.parent
        return registry

    @classmethod
    def fromToml(cls, text: str | bytes, *, source: str = "<memory>") -> "Registry":
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as err:
                raise ParseError(source, str(err)) from err
        try:
            raw = tomllib.loads(text)
        except (tomllib.TOMLDecodeError, RecursionError) as err:
            raise ParseError(source, str(err)) from err
        return cls.fromMapping(raw, source=source)

    @classmethod
    def fromMapping(cls, raw: Mapping[str, Any], *, source: str = "<memory>") -> "Registry":
        entries: list[tuple[ExtensionId, RegistryEntry]] = []
        for key, value in raw.items():
            if not isinstance(value, Mapping):
                raise ParseError(source, f"entry '{key}' must be a table, got {type(value).__name__}")
            try:
                entry = RegistryEntry.model_validate(dict(value))
            except ValidationError as err:
                raise ParseError(source, f"entry '{key}': {_formatValidationError(err)}") from err
            entries.append((ExtensionId(str(key)), entry))
        registry = cls(entries, source=source)
        logger.debug("Loaded %d registry entries from '%s'", len(registry), source)
        return registry

    # ----- Lookup -----

    def lookup(self, extensionId: str) -> RegistryEntry | None:
        return self._index.get(ExtensionId(extensionId))

    def ids(self) -> list[ExtensionId]:
        return list(self._ids)

    def __getitem__(self, extensionId: ExtensionId) -> RegistryEntry:
        return self._index[extensionId]

    def __contains__(self, extensionId: object) -> bool:
        return extensionId in self._index

    def __iter__(self) -> Iterator[ExtensionId]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"Registry(source={self.source!r}, ids={self._ids!r})"



def _formatValidationError(err: ValidationError) -> str:
    parts = []
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", ())) or "<entry>"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)
