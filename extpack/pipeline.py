# extpack/pipeline.py
from __future__ import annotations
import asyncio
import logging
import os
import shutil
import threading
from collections.abc import Awaitable, Callable, Mapping, Collection
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from extpack.app.settings import settings, settingsBool, settingsFloat, settingsInt
from extpack.builder.package import PackageBuilder
from extpack.builder.scratch import ScratchRoot
from extpack.core.errors import ExtPackError
from extpack.core.logging import logContext
from extpack.diff.diff import changedSince, unpublished
from extpack.publish.index import fetchPublishedVersions
from extpack.registry.registry import ExtensionId, Registry, RegistryEntry
from extpack.vcs.git import GitCli, VersionControl, loadBaselineRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "SelectionMode",
    "PipelineOptions",
    "BuildOutcome",
    "RunReport",
    "PublishedSource",
    "selectExtensionIds",
    "packageExtension",
    "runPipeline",
]

T = TypeVar("T")

PublishedSource = Callable[[], Awaitable[Mapping[ExtensionId, Collection[str]]]]



class SelectionMode(str, Enum):
    CHANGED = "changed"
    UNPUBLISHED = "unpublished"



@dataclass(slots=True)
class PipelineOptions:
    registryPath: Path = Path("extensions.toml")
    mode: SelectionMode = SelectionMode.CHANGED
    baselineRef: str = "origin/main"
    buildRoot: Path = Path("build")
    outputDir: Path = Path("dist")
    maxWorkers: int = 1
    keepScratch: bool = False
    allowSymlinks: bool = False
    gitBinary: str = "git"
    vcsTimeoutSeconds: float = 120.0
    publishIndexUrl: str | None = None
    publishToken: str | None = None
    publishTimeoutMs: int = 30_000
    publishRetries: int = 2

    @classmethod
    def fromSettings(cls, *, source: str | None = None, **overrides: Any) -> "PipelineOptions":
        """Options from merged settings; explicit keyword overrides win when not None."""
        values: dict[str, Any] = {
            "registryPath": Path(settings("registry.path", "extensions.toml", source=source)),
            "baselineRef": str(settings("registry.baselineRef", "origin/main", source=source)),
            "buildRoot": Path(settings("build.root", "build", source=source)),
            "outputDir": Path(settings("output.dir", "dist", source=source)),
            "maxWorkers": settingsInt("build.maxWorkers", 1, source=source),
            "keepScratch": settingsBool("build.keepScratch", False, source=source),
            "allowSymlinks": settingsBool("build.allowSymlinks", False, source=source),
            "gitBinary": str(settings("vcs.gitBinary", "git", source=source)),
            "vcsTimeoutSeconds": settingsFloat("vcs.timeoutSeconds", 120.0, source=source),
            "publishIndexUrl": settings("publish.indexUrl", None, source=source),
            "publishToken": settings("publish.token", None, source=source),
            "publishTimeoutMs": settingsInt("publish.timeoutMs", 30_000, source=source),
            "publishRetries": settingsInt("publish.retries", 2, source=source),
        }
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        values["mode"] = SelectionMode(values.get("mode", SelectionMode.CHANGED))
        values["maxWorkers"] = max(1, int(values["maxWorkers"]))
        return cls(**values)



@dataclass(slots=True)
class BuildOutcome:
    extensionId: ExtensionId
    version: str | None = None
    archive: Path | None = None
    error: Exception | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped



@dataclass(slots=True)
class RunReport:
    selected: list[ExtensionId] = field(default_factory=list)
    outcomes: list[BuildOutcome] = field(default_factory=list)

    @property
    def packaged(self) -> list[BuildOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> list[BuildOutcome]:
        return [outcome for outcome in self.outcomes if outcome.error is not None]

    @property
    def skipped(self) -> list[BuildOutcome]:
        return [outcome for outcome in self.outcomes if outcome.skipped]

    @property
    def ok(self) -> bool:
        return not self.failed



# ----- Selection -----

async def selectExtensionIds(
    registry: Registry,
    options: PipelineOptions,
    *,
    vcs: VersionControl,
    publishedSource: PublishedSource | None = None,
) -> list[ExtensionId]:
    """Runs the configured diff mode. Any failure here is fatal to the run."""
    if options.mode is SelectionMode.UNPUBLISHED:
        source = publishedSource or _defaultPublishedSource(options)
        return unpublished(registry, await source())

    baseline = await loadBaselineRegistry(vcs, options.baselineRef, options.registryPath)
    return changedSince(registry, baseline)



def _defaultPublishedSource(options: PipelineOptions) -> PublishedSource:
    url = options.publishIndexUrl
    if not url:
        raise ExtPackError("Unpublished mode needs 'publish.indexUrl' to be configured")

    async def fetch() -> Mapping[ExtensionId, Collection[str]]:
        return await fetchPublishedVersions(
            url,
            token=options.publishToken,
            timeoutMs=options.publishTimeoutMs,
            retries=options.publishRetries,
        )
    return fetch



# ----- Building -----

async def _runBlocking(cancelEvent: threading.Event, func: Callable[..., T], *args: Any) -> T:
    """
    Runs blocking work in a thread. On cancellation the thread is told to stop
    and awaited, so callers can safely remove directories it writes into.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        cancelEvent.set()
        try:
            await task
        except Exception as err:
            logger.debug("Blocking work ended after cancellation: %s", err)
        raise



def _copyToOutput(archive: Path, outputDir: Path) -> Path:
    outputDir.mkdir(parents=True, exist_ok=True)
    target = outputDir / archive.name
    partial = outputDir / f".{archive.name}.partial"
    try:
        shutil.copyfile(archive, partial)
        os.replace(partial, target)
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    return target



def _resolveSourceDir(registry: Registry, entry: RegistryEntry) -> Path:
    if entry.path.is_absolute():
        return entry.path
    return (registry.root or Path.cwd()) / entry.path



async def packageExtension(
    extensionId: ExtensionId,
    entry: RegistryEntry,
    *,
    registry: Registry,
    scratch: ScratchRoot,
    builder: PackageBuilder,
    vcs: VersionControl,
    outputDir: Path,
    cancelEvent: threading.Event,
) -> Path:
    """Builds one extension inside its own scratch directory and copies the archive to `outputDir`."""
    with scratch.allocate(extensionId) as scratchDir:
        if entry.isRemote:
            checkout = await vcs.checkoutCommit(str(entry.repository), str(entry.rev), scratchDir / "source")
            sourceDir = checkout / entry.path
        else:
            sourceDir = _resolveSourceDir(registry, entry)

        result = await _runBlocking(cancelEvent, builder.build, extensionId, sourceDir, entry.version, scratchDir / "work")
        return await _runBlocking(cancelEvent, _copyToOutput, result.archive, outputDir)



async def runPipeline(
    options: PipelineOptions,
    *,
    registry: Registry | None = None,
    vcs: VersionControl | None = None,
    publishedSource: PublishedSource | None = None,
) -> RunReport:
    """
    Loads the registry, selects extensions and packages each of them.

    Registry and selection failures propagate. Per-extension failures are
    recorded in the report and the run continues. Outcomes follow selection
    order regardless of which build finishes first.
    """
    if registry is None:
        registry = Registry.load(options.registryPath)
    if vcs is None:
        vcs = GitCli(gitBinary=options.gitBinary, timeoutSeconds=options.vcsTimeoutSeconds)

    selected = await selectExtensionIds(registry, options, vcs=vcs, publishedSource=publishedSource)
    report = RunReport(selected=list(selected))

    cancelEvent = threading.Event()
    scratch = ScratchRoot(options.buildRoot, keep=options.keepScratch)
    builder = PackageBuilder(allowSymlinks=options.allowSymlinks, cancelEvent=cancelEvent)
    semaphore = asyncio.Semaphore(max(1, options.maxWorkers))

    async def one(extensionId: ExtensionId) -> BuildOutcome:
        entry = registry.lookup(extensionId)
        if entry is None:
            logger.warning("No extension info found for '%s'; skipping", extensionId)
            return BuildOutcome(extensionId=extensionId, skipped=True)

        async with semaphore:
            with logContext(extensionId=extensionId, version=entry.version):
                logger.info("Packaging '%s'. Version: %s", extensionId, entry.version)
                try:
                    archive = await packageExtension(
                        extensionId,
                        entry,
                        registry=registry,
                        scratch=scratch,
                        builder=builder,
                        vcs=vcs,
                        outputDir=options.outputDir,
                        cancelEvent=cancelEvent,
                    )
                except (ExtPackError, OSError) as err:
                    logger.error("Failed to package '%s': %s", extensionId, err)
                    return BuildOutcome(extensionId=extensionId, version=entry.version, error=err)
                except Exception as err:
                    # Anything unexpected still fails only this extension; siblings keep building
                    logger.exception("Unexpected error while packaging '%s'", extensionId)
                    return BuildOutcome(extensionId=extensionId, version=entry.version, error=err)

                logger.info("Wrote '%s'", archive)
        return BuildOutcome(extensionId=extensionId, version=entry.version, archive=archive)

    try:
        report.outcomes = list(await asyncio.gather(*(one(extensionId) for extensionId in selected)))
    except asyncio.CancelledError:
        cancelEvent.set()
        logger.warning("Run cancelled; archives already written to '%s' are kept", options.outputDir)
        raise
    finally:
        scratch.release()

    logger.info(
        "Done: %d packaged, %d failed, %d skipped",
        len(report.packaged), len(report.failed), len(report.skipped),
    )
    return report
