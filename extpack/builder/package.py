# extpack/builder/package.py
from __future__ import annotations
import logging
import shutil
import threading
import tomllib
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from extpack.core.errors import (
    AssetError,
    BuildCancelledError,
    InvalidThemeError,
    ManifestError,
    PackageError,
    ThemeValidationError,
    VersionMismatchError,
)
from extpack.core.jsonutils import prettyJsonDumps
from extpack.manifest.loader import LEGACY_MANIFEST_NAME, readRelaxedJson, loadManifest
from extpack.manifest.manifest import ExtensionManifest, GrammarEntry, ManifestFormat
from extpack.themes.validator import validateTheme
from .archive import createTarGz

logger = logging.getLogger(__name__)

__all__ = [
    "PACKAGE_DIR_NAME",
    "PACKAGED_MANIFEST_NAME",
    "THEMES_DIR",
    "LANGUAGES_DIR",
    "GRAMMARS_DIR",
    "BuildResult",
    "PackageBuilder",
    "archiveName",
    "buildPackage",
]


PACKAGE_DIR_NAME = "package"
# The packaged manifest uses the JSON spelling so an unpacked archive is itself a loadable extension.
PACKAGED_MANIFEST_NAME = LEGACY_MANIFEST_NAME

THEMES_DIR = "themes"
LANGUAGES_DIR = "languages"
GRAMMARS_DIR = "grammars"

_THEME_SUFFIX = ".json"
_GRAMMAR_SUFFIXES = (".toml", ".json")



def archiveName(extensionId: str, version: str) -> str:
    return f"{extensionId}-{version}.tar.gz"



@dataclass(frozen=True, slots=True)
class BuildResult:
    extensionId: str
    archive: Path
    packageDir: Path
    manifest: ExtensionManifest
    sourceFormat: ManifestFormat



class PackageBuilder:
    """
    Turns one extension source directory into one archive.

    The builder only reads under `sourceDir` and only writes under the scratch
    directory it is given. Allocating and removing that directory is up to the
    caller. `cancelEvent` is polled between steps so a cancelled run stops
    before touching the next asset.
    """

    def __init__(self, *, allowSymlinks: bool = False, cancelEvent: threading.Event | None = None) -> None:
        self.allowSymlinks = allowSymlinks
        self.cancelEvent = cancelEvent

    # ----- Entry point -----

    def build(self, extensionId: str, sourceDir: str | Path, declaredVersion: str, scratchDir: str | Path) -> BuildResult:
        sourceDir = Path(sourceDir)
        scratchDir = Path(scratchDir)

        try:
            manifest, sourceFormat = loadManifest(sourceDir)
        except ManifestError as err:
            raise PackageError(extensionId, str(err)) from err

        if manifest.version != declaredVersion:
            raise VersionMismatchError(extensionId, manifest.name, expected=declaredVersion, actual=manifest.version)

        output = manifest.packagedCopy()
        packageDir = scratchDir / PACKAGE_DIR_NAME
        packageDir.mkdir(parents=True, exist_ok=False)
        archivePath = scratchDir / archiveName(extensionId, manifest.version)

        self._checkCancelled(extensionId)
        self._packageThemes(extensionId, sourceDir, packageDir, output)
        self._checkCancelled(extensionId)
        self._packageLanguages(extensionId, sourceDir, packageDir, output)
        self._checkCancelled(extensionId)
        self._packageGrammars(extensionId, sourceDir, packageDir, manifest, output)
        output.language_servers = dict(manifest.language_servers)

        self._checkCancelled(extensionId)
        try:
            (packageDir / PACKAGED_MANIFEST_NAME).write_text(prettyJsonDumps(output.toDocument()), encoding="utf-8")
            createTarGz(packageDir, archivePath)
        except OSError as err:
            raise AssetError(extensionId, archivePath, str(err)) from err

        logger.info(
            "Packaged '%s' %s: %d theme(s), %d language(s), %d grammar(s) -> '%s'",
            extensionId, manifest.version, len(output.themes), len(output.languages), len(output.grammars), archivePath.name,
        )
        return BuildResult(
            extensionId=extensionId,
            archive=archivePath,
            packageDir=packageDir,
            manifest=output,
            sourceFormat=sourceFormat,
        )

    # ----- Asset kinds -----

    def _packageThemes(self, extensionId: str, sourceDir: Path, packageDir: Path, output: ExtensionManifest) -> None:
        themesDir = sourceDir / THEMES_DIR
        if not themesDir.is_dir():
            return
        targetDir = packageDir / THEMES_DIR
        targetDir.mkdir()

        for entry in sorted(themesDir.iterdir(), key=lambda path: path.name):
            if not entry.is_file() or entry.suffix != _THEME_SUFFIX:
                logger.debug("Ignoring '%s' in themes directory", entry.name)
                continue
            self._checkSymlink(extensionId, entry)
            relative = f"{THEMES_DIR}/{entry.name}"

            try:
                document = readRelaxedJson(entry.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValueError, RecursionError) as err:
                raise InvalidThemeError(extensionId, relative, [f"not a valid JSON document: {err}"]) from err
            try:
                validateTheme(document)
            except ThemeValidationError as err:
                raise InvalidThemeError(extensionId, relative, err.errors) from err

            self._copyFile(extensionId, entry, targetDir / entry.name)
            output.themes.append(relative)

    def _packageLanguages(self, extensionId: str, sourceDir: Path, packageDir: Path, output: ExtensionManifest) -> None:
        languagesDir = sourceDir / LANGUAGES_DIR
        if not languagesDir.is_dir():
            return
        targetDir = packageDir / LANGUAGES_DIR
        targetDir.mkdir()

        for entry in sorted(languagesDir.iterdir(), key=lambda path: path.name):
            if not entry.is_dir():
                logger.warning("Ignoring '%s': languages must be directories", entry.relative_to(sourceDir).as_posix())
                continue
            self._checkSymlink(extensionId, entry)
            if not self.allowSymlinks:
                for nested in entry.rglob("*"):
                    self._checkSymlink(extensionId, nested)
            try:
                shutil.copytree(entry, targetDir / entry.name)
            except (OSError, shutil.Error) as err:
                raise AssetError(extensionId, entry, str(err)) from err
            output.languages.append(f"{LANGUAGES_DIR}/{entry.name}")

    def _packageGrammars(
        self,
        extensionId: str,
        sourceDir: Path,
        packageDir: Path,
        manifest: ExtensionManifest,
        output: ExtensionManifest,
    ) -> None:
        # Declared grammars keep their order; sources are fetched elsewhere, only the pointers travel.
        output.grammars = {name: entry.model_copy() for name, entry in manifest.grammars.items()}

        grammarsDir = sourceDir / GRAMMARS_DIR
        if not grammarsDir.is_dir():
            return
        (packageDir / GRAMMARS_DIR).mkdir()

        for entry in sorted(grammarsDir.iterdir(), key=lambda path: path.name):
            if not entry.is_file() or entry.suffix not in _GRAMMAR_SUFFIXES:
                continue
            name = entry.stem
            if name in output.grammars:
                logger.debug("Grammar '%s' already declared in manifest; ignoring '%s'", name, entry.name)
                continue
            output.grammars[name] = self._readGrammarFile(extensionId, entry)

    def _readGrammarFile(self, extensionId: str, path: Path) -> GrammarEntry:
        try:
            text = path.read_text(encoding="utf-8")
            raw = tomllib.loads(text) if path.suffix == ".toml" else readRelaxedJson(text)
            return GrammarEntry.model_validate(raw)
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, ValueError, RecursionError, ValidationError) as err:
            raise AssetError(extensionId, path, f"invalid grammar declaration: {err}") from err

    # ----- Helpers -----

    def _copyFile(self, extensionId: str, source: Path, target: Path) -> None:
        try:
            shutil.copyfile(source, target)
        except OSError as err:
            raise AssetError(extensionId, source, str(err)) from err

    def _checkSymlink(self, extensionId: str, path: Path) -> None:
        if not self.allowSymlinks and path.is_symlink():
            raise AssetError(extensionId, path, "symlinked assets are not allowed")

    def _checkCancelled(self, extensionId: str) -> None:
        if self.cancelEvent is not None and self.cancelEvent.is_set():
            raise BuildCancelledError(extensionId)



def buildPackage(extensionId: str, sourceDir: str | Path, declaredVersion: str, scratchDir: str | Path) -> Path:
    """Builds with default options and returns the archive path inside `scratchDir`."""
    return PackageBuilder().build(extensionId, sourceDir, declaredVersion, scratchDir).archive
