# extpack/diff/diff.py
from __future__ import annotations
import logging
from collections.abc import Collection, Mapping

from extpack.registry.registry import ExtensionId, Registry

logger = logging.getLogger(__name__)

__all__ = ["changedSince", "unpublished", "PublishedVersions"]


PublishedVersions = Mapping[ExtensionId, Collection[str]]



def changedSince(current: Registry, baseline: Registry) -> list[ExtensionId]:
    """
    IDs whose version differs from `baseline`, in `current` order.
    An ID missing from `baseline` counts as changed.
    """
    changed: list[ExtensionId] = []
    for extensionId, entry in current.items():
        baselineEntry = baseline.lookup(extensionId)
        if baselineEntry is not None and baselineEntry.version == entry.version:
            continue
        changed.append(extensionId)

    logger.info("Extensions changed from baseline: %s", ", ".join(changed) or "<none>")
    return changed



def unpublished(current: Registry, published: PublishedVersions) -> list[ExtensionId]:
    """
    IDs whose current version is not yet known to the publishing service, in
    `current` order. An ID with no publish history at all is unpublished too.
    """
    pending: list[ExtensionId] = []
    for extensionId, entry in current.items():
        versions = published.get(extensionId)
        if versions is not None and entry.version in versions:
            continue
        pending.append(extensionId)

    logger.info("Extensions needing to be published: %s", ", ".join(pending) or "<none>")
    return pending
