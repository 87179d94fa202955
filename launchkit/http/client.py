# launchkit/http/client.py
from __future__ import annotations
import asyncio
import json as jsonlib
import logging
import random
from typing import Any
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from launchkit.app.settings import settings
from launchkit.core.errors import LauncherError

logger = logging.getLogger(__name__)

__all__ = [
    "HTTPError", "request", "getJson", "getBytes",
    "parseRetryAfter", "shouldRetry", "backoffDelayMs", "USER_AGENT",
]

USER_AGENT = "launchkit/0.4 (+https://github.com/launchkit/launchkit)"

_TRANSIENT_STATUSES = frozenset({408, 429, 500, 502, 503, 504})



class HTTPError(LauncherError):
    def __init__(self, status: int, body: str, *, url: str | None = None):
        super().__init__(f"HTTP {status}: {body[:200]}", status=status, url=url)
        self.status = status
        self.body = body
        self.url = url



def parseRetryAfter(value: str | None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if seconds >= 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, when.timestamp() - datetime.now(timezone.utc).timestamp())



def shouldRetry(status: int) -> bool:
    """Statuses a mirror or CDN may answer with while still healthy."""
    return status in _TRANSIENT_STATUSES



def backoffDelayMs(attempt: int, baseMs: int, maxMs: int) -> float:
    """Exponential backoff with +-25% jitter; attempt is 0-based."""
    base = min(maxMs, baseMs * (2 ** attempt))
    jitter = base * 0.25
    return max(0.0, base + random.uniform(-jitter, jitter))



def _payload(resp: httpx.Response) -> dict[str, Any]:
    out: dict[str, Any] = {
        "status": resp.status_code,
        "headers": dict(resp.headers),
        "text": resp.text,
        "content": resp.content,
    }
    if "json" in resp.headers.get("Content-Type", "").lower():
        try:
            out["json"] = resp.json()
        except ValueError:
            logger.debug("Response from %s claims JSON but does not parse", resp.request.url)
    return out



async def request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    timeoutMs: int | None = None,
    retries: int | None = None,
    backoffBaseMs: int | None = None,
    backoffMaxMs: int | None = None,
    followRedirects: bool = True
) -> dict[str, Any]:
    """
    One metadata request with timeout and retries.

    Returns {"status", "headers", "text", "content"} plus "json" when the
    response is labelled JSON and parses.

    - 408/429/5xx are retried (Retry-After wins over backoff), then raise HTTPError.
    - Other 4xx are returned as-is; getJson/getBytes turn them into HTTPError.
    - Transport errors are retried, then re-raised as httpx.HTTPError.
    Unset knobs fall back to the `http.*` settings.
    """
    timeoutMs = max(1, int(timeoutMs if timeoutMs is not None else settings("http.timeoutMs", 30_000)))
    retries = max(0, int(retries if retries is not None else settings("http.retry", 2)))
    backoffBaseMs = int(backoffBaseMs if backoffBaseMs is not None else settings("http.backoff.baseMs", 250))
    backoffMaxMs = int(backoffMaxMs if backoffMaxMs is not None else settings("http.backoff.maxMs", 1000))
    method = method.upper()
    sendHeaders = {"User-Agent": USER_AGENT, **(headers or {})}

    async with httpx.AsyncClient(timeout=httpx.Timeout(timeoutMs / 1000), http2=True) as cli:
        for attempt in range(retries + 1):
            lastAttempt = attempt == retries
            try:
                resp = await cli.request(method, url, headers=sendHeaders, params=params, follow_redirects=followRedirects)
            except httpx.HTTPError as err:
                if lastAttempt:
                    logger.warning("%s %s failed after %d attempts: %s", method, url, attempt + 1, err)
                    raise
                delayMs = backoffDelayMs(attempt, backoffBaseMs, backoffMaxMs)
                logger.debug("%s %s: %s, retrying in %.0fms", method, url, err, delayMs)
                await asyncio.sleep(delayMs / 1000.0)
                continue

            if not shouldRetry(resp.status_code):
                logger.debug("%s %s -> %d (%d bytes)", method, url, resp.status_code, len(resp.content))
                return _payload(resp)
            if lastAttempt:
                raise HTTPError(resp.status_code, resp.text, url=url)

            retryAfter = parseRetryAfter(resp.headers.get("Retry-After"))
            delayMs = retryAfter * 1000.0 if retryAfter is not None else backoffDelayMs(attempt, backoffBaseMs, backoffMaxMs)
            logger.debug("%s %s -> %d, retrying in %.0fms", method, url, resp.status_code, delayMs)
            await asyncio.sleep(delayMs / 1000.0)
    raise AssertionError("unreachable")



async def getJson(url: str, **kwargs: Any) -> Any:
    """GET a JSON document; any status >= 400 raises HTTPError."""
    out = await request("GET", url, **kwargs)
    if out["status"] >= 400:
        raise HTTPError(out["status"], out["text"], url=url)
    if "json" in out:
        return out["json"]
    # Some mirrors serve JSON as text/plain
    return jsonlib.loads(out["text"])



async def getBytes(url: str, **kwargs: Any) -> bytes:
    out = await request("GET", url, **kwargs)
    if out["status"] >= 400:
        raise HTTPError(out["status"], out["text"], url=url)
    return out["content"]
