# extpack/publish/index.py
from __future__ import annotations
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from extpack.core.errors import PublishedIndexError
from extpack.registry.registry import ExtensionId
from .http import HTTPError, getJson

logger = logging.getLogger(__name__)

__all__ = ["fetchPublishedVersions", "parsePublishedVersions"]



def parsePublishedVersions(payload: Any, *, url: str = "<memory>") -> dict[ExtensionId, set[str]]:
    """
    Accepts the shapes publishing services commonly return:
      • {"data": [{"id": ..., "version": ...}, ...]}
      • [{"id": ..., "version": ...}, ...]
      • {"<id>": ["1.0.0", "1.1.0"], ...}
    """
    if isinstance(payload, Mapping) and "data" in payload:
        payload = payload["data"]

    out: dict[ExtensionId, set[str]] = {}
    if isinstance(payload, list):
        for item in payload:
            if not isinstance(item, Mapping):
                raise PublishedIndexError(url, f"expected objects in list, got {type(item).__name__}")
            extensionId = item.get("id")
            version = item.get("version")
            if not isinstance(extensionId, str) or not isinstance(version, str):
                raise PublishedIndexError(url, f"entry missing string 'id'/'version': {dict(item)!r}")
            out.setdefault(ExtensionId(extensionId), set()).add(version)
        return out

    if isinstance(payload, Mapping):
        for extensionId, versions in payload.items():
            if isinstance(versions, str) or not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
                raise PublishedIndexError(url, f"versions of '{extensionId}' must be a list of strings")
            out[ExtensionId(str(extensionId))] = set(versions)
        return out

    raise PublishedIndexError(url, f"unsupported payload type {type(payload).__name__}")



async def fetchPublishedVersions(
    url: str,
    *,
    token: str | None = None,
    timeoutMs: int = 30_000,
    retries: int = 2,
) -> dict[ExtensionId, set[str]]:
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        payload = await getJson(url, headers=headers, timeoutMs=timeoutMs, retries=retries)
    except (HTTPError, httpx.HTTPError, ValueError) as err:
        raise PublishedIndexError(url, str(err)) from err

    published = parsePublishedVersions(payload, url=url)
    logger.info("Published index lists %d extension(s)", len(published))
    return published
