# extpack/core/errors.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from extpack.manifest.manifest import ManifestFormat

__all__ = [
    "ExtPackError",
    "ParseError",
    "NotFoundError",
    "ManifestError",
    "ManifestNotFoundError",
    "ManifestMalformedError",
    "ThemeDiagnostic",
    "ThemeValidationError",
    "PackageError",
    "VersionMismatchError",
    "InvalidThemeError",
    "AssetError",
    "BuildCancelledError",
    "VcsError",
    "VcsTimeoutError",
    "PublishedIndexError",
]



class ExtPackError(Exception):
    """Root of every error raised by the packaging pipeline."""
    pass



class ParseError(ExtPackError):
    """A registry, manifest or theme document is unreadable or malformed."""
    def __init__(self, source: str | Path, detail: str):
        super().__init__(f"Failed to parse '{source}': {detail}")
        self.source = str(source)
        self.detail = detail



class NotFoundError(ExtPackError):
    """An expected file is absent. Kept apart from ParseError so format fallback can key off it."""
    def __init__(self, path: str | Path, message: str | None = None):
        super().__init__(message or f"'{path}' not found")
        self.path = str(path)



class ManifestError(ExtPackError):
    pass



class ManifestNotFoundError(ManifestError, NotFoundError):
    def __init__(self, extensionDir: str | Path, candidates: Sequence[str]):
        NotFoundError.__init__(
            self,
            extensionDir,
            f"No extension manifest in '{extensionDir}' (looked for {', '.join(candidates)})",
        )
        self.candidates = tuple(candidates)



class ManifestMalformedError(ManifestError, ParseError):
    def __init__(self, manifestPath: str | Path, fmt: ManifestFormat, detail: str):
        ParseError.__init__(self, manifestPath, detail)
        self.format = fmt



# ----- Theme validation -----

@dataclass(frozen=True)
class ThemeDiagnostic:
    """One schema violation. `path` is a JSON-pointer-ish location inside the document."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"



class ThemeValidationError(ExtPackError):
    def __init__(self, errors: Sequence[ThemeDiagnostic]):
        self.errors: tuple[ThemeDiagnostic, ...] = tuple(errors)
        lines = "\n".join(f"  - {diag}" for diag in self.errors)
        super().__init__(f"Theme failed schema validation with {len(self.errors)} error(s):\n{lines}")



# ----- Per-extension build failures -----

class PackageError(ExtPackError):
    """Failure confined to a single extension build. The run moves on to the next extension."""
    def __init__(self, extensionId: str, message: str):
        super().__init__(f"[{extensionId}] {message}")
        self.extensionId = extensionId



class VersionMismatchError(PackageError):
    def __init__(self, extensionId: str, name: str, expected: str, actual: str):
        super().__init__(
            extensionId,
            f"Version mismatch for extension '{name}': registry declares '{expected}', "
            f"manifest declares '{actual}'",
        )
        self.name = name
        self.expected = expected
        self.actual = actual



class InvalidThemeError(PackageError):
    def __init__(self, extensionId: str, file: str | Path, errors: Sequence[ThemeDiagnostic | str]):
        self.file = str(file)
        self.errors = tuple(errors)
        lines = "\n".join(f"  - {err}" for err in self.errors)
        super().__init__(extensionId, f"Invalid theme '{self.file}':\n{lines}")



class AssetError(PackageError):
    def __init__(self, extensionId: str, path: str | Path, detail: str):
        super().__init__(extensionId, f"Asset operation failed for '{path}': {detail}")
        self.path = str(path)
        self.detail = detail



class BuildCancelledError(PackageError):
    def __init__(self, extensionId: str):
        super().__init__(extensionId, "Build cancelled")



# ----- External collaborators -----

class VcsError(ExtPackError):
    def __init__(self, command: Sequence[str], returncode: int | None, stderr: str = ""):
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()[:500]
        super().__init__(f"'{' '.join(self.command)}' exited with {returncode}" + (f": {detail}" if detail else ""))



class VcsTimeoutError(VcsError):
    def __init__(self, command: Sequence[str], timeoutSeconds: float):
        super().__init__(command, None, f"timed out after {timeoutSeconds:g}s")
        self.timeoutSeconds = timeoutSeconds



class PublishedIndexError(ExtPackError):
    def __init__(self, url: str, detail: str):
        super().__init__(f"Published versions index '{url}' unusable: {detail}")
        self.url = url
        self.detail = detail
