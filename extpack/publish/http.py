# extpack/publish/http.py
from __future__ import annotations
import asyncio
import logging
import random
from typing import Any
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

logger = logging.getLogger(__name__)

__all__ = ["HTTPError", "getJson"]



class HTTPError(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body



def _parseRetryAfter(value: str | None) -> float | None:
    """Return seconds suggested by Retry-After header, if parsable."""
    if not value:
        return None
    # Retry-After: seconds
    try:
        secondsF = float(value)
        if secondsF >= 0:
            return secondsF
        return None
    except ValueError:
        pass
    # Retry-After: HTTP-date
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc).timestamp()
        return max(0.0, dt.timestamp() - now)
    except (TypeError, ValueError):
        return None



def _shouldRetry(status: int) -> bool:
    # Typical transient HTTP errors upon which retry makes sense
    return status in (408, 429, 500, 502, 503, 504)



def _backoffSeconds(attempt: int, backoffBaseMs: int, backoffMaxMs: int) -> float:
    # Exponential backoff with +-25% jitter
    base = min(backoffMaxMs, backoffBaseMs * (2 ** attempt))
    jitter = base * 0.25
    return max(0.0, base + random.uniform(-jitter, jitter)) / 1000.0



async def getJson(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    timeoutMs: int = 30_000,
    retries: int = 2,
    backoffBaseMs: int = 250,
    backoffMaxMs: int = 1_000,
) -> Any:
    """
    GET `url` and decode the JSON body, retrying 408/429/5xx and transport errors.

    - Honors Retry-After (seconds or HTTP-date) on retryable statuses.
    - Raises HTTPError for any non-2xx status once retries are exhausted
      (non-retryable statuses raise immediately).
    - Raises httpx.HTTPError for transport failures after the last retry.
    - Raises ValueError when the body is not JSON.
    """
    if timeoutMs <= 0:
        timeoutMs = 1
    timeout = httpx.Timeout(timeoutMs / 1_000)
    retries = max(0, retries)
    attempt = 0

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as cli:
        while True:
            try:
                resp = await cli.get(url, headers=headers, params=params)
            except httpx.HTTPError as err:
                # Transport-level error. Retry with backoff.
                if attempt >= retries:
                    raise
                delay = _backoffSeconds(attempt, backoffBaseMs, backoffMaxMs)
                logger.warning("GET %s failed (%s); retrying in %.2fs", url, err, delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue

            status = resp.status_code
            if _shouldRetry(status) and attempt < retries:
                retryAfter = _parseRetryAfter(resp.headers.get("Retry-After"))
                delay = retryAfter if retryAfter is not None else _backoffSeconds(attempt, backoffBaseMs, backoffMaxMs)
                logger.warning("GET %s returned %d; retrying in %.2fs", url, status, delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue

            if status < 200 or status >= 300:
                raise HTTPError(status, resp.text)

            return resp.json()
