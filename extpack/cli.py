# extpack/cli.py
from __future__ import annotations
import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from extpack.app.settings import loadSettings, settings
from extpack.core.errors import ExtPackError
from extpack.core.logging import configureLogging
from extpack.pipeline import PipelineOptions, RunReport, SelectionMode, runPipeline

logger = logging.getLogger(__name__)

__all__ = ["EXIT_OK", "EXIT_EXTENSION_FAILED", "EXIT_RUN_FAILED", "EXIT_INTERRUPTED", "buildParser", "main"]


EXIT_OK = 0
EXIT_EXTENSION_FAILED = 1
EXIT_RUN_FAILED = 2
EXIT_INTERRUPTED = 130



def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="extpack",
        description="Validate and package changed or unpublished extensions from an extension registry.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SelectionMode],
        default=SelectionMode.CHANGED.value,
        help="Select extensions changed since the baseline revision, or not yet published (default: changed)",
    )
    parser.add_argument("--registry", type=Path, default=None, help="Registry file (default: registry.path setting)")
    parser.add_argument("--baseline", default=None, help="Baseline revision for --mode changed (default: registry.baselineRef)")
    parser.add_argument("--settings", default=None, help="JSON5 settings file (default: $EXTPACK_SETTINGS or ./extpack.json5)")
    parser.add_argument("--output", type=Path, default=None, help="Directory finished archives are copied to")
    parser.add_argument("--build-root", type=Path, default=None, help="Scratch root for per-extension builds")
    parser.add_argument("--workers", type=int, default=None, help="Extensions built concurrently")
    parser.add_argument("--keep-scratch", action="store_true", default=None, help="Do not remove scratch directories")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser



def _printSummary(report: RunReport) -> None:
    for outcome in report.outcomes:
        if outcome.skipped:
            logger.warning("%s: skipped (no registry entry)", outcome.extensionId)
        elif outcome.error is not None:
            logger.error("%s: FAILED\n%s", outcome.extensionId, outcome.error)
        else:
            logger.info("%s: %s", outcome.extensionId, outcome.archive)



def main(argv: Sequence[str] | None = None) -> int:
    args = buildParser().parse_args(argv)

    loadSettings.cache_clear()
    configureLogging(
        devMode=bool(settings("logging.devMode", True, source=args.settings)),
        verbose=args.verbose,
        logFile=settings("logging.file", None, source=args.settings),
    )

    options = PipelineOptions.fromSettings(
        source=args.settings,
        mode=args.mode,
        registryPath=args.registry,
        baselineRef=args.baseline,
        outputDir=args.output,
        buildRoot=args.build_root,
        maxWorkers=args.workers,
        keepScratch=args.keep_scratch,
    )

    try:
        report = asyncio.run(runPipeline(options))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED
    except ExtPackError as err:
        logger.error("Run failed: %s", err)
        return EXIT_RUN_FAILED

    _printSummary(report)
    return EXIT_OK if report.ok else EXIT_EXTENSION_FAILED
