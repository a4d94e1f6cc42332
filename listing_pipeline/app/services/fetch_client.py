from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from listing_pipeline.app.core.settings import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}
GONE_STATUS = {404, 410}


class FetchError(Exception):
    """Page could not be fetched and retrying will not help."""


class FetchRetryableError(FetchError):
    """Transient failure (rate limit, upstream 5xx, network error)."""


@dataclass
class FetchedPage:
    url: str
    content: str
    status_code: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> FetchedPage: ...

    async def aclose(self) -> None: ...


class AsyncTransport(Protocol):
    async def post(
        self,
        path: str,
        json: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> httpx.Response: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """httpx-based transport with connection pooling."""

    def __init__(self, base_url: str):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=None)

    async def post(
        self,
        path: str,
        json: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        return await self._client.post(path, json=json, headers=headers, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()


def _scrape_payload(url: str) -> Dict[str, Any]:
    return {
        "url": url,
        "formats": ["rawHtml", "html"],
        "onlyMainContent": False,
        "removeBase64Images": True,
        "blockAds": True,
        "maxAge": 3600000,
    }


class FirecrawlClient:
    """Fetches marketplace pages through the Firecrawl scrape endpoint.

    Listing extractors read HTML structure, so the raw HTML is preferred over
    the cleaned variant.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 25.0,
        max_attempts: int = 2,
        backoff_base: float = 0.5,
        transport: Optional[AsyncTransport] = None,
    ):
        self.api_key = api_key or settings.firecrawl_api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self._transport = transport or HttpxTransport(self.base_url)
        self._owns_transport = transport is None
        self._headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def fetch(self, url: str) -> FetchedPage:
        body = await self._post("/v2/scrape", _scrape_payload(url))
        if not body.get("success"):
            raise FetchError(body.get("error") or f"scrape failed for {url}")
        data = body.get("data") or {}
        metadata = {k: v for k, v in (data.get("metadata") or {}).items() if v is not None}

        status_code = metadata.get("statusCode")
        if status_code in GONE_STATUS:
            raise FetchError(f"{url} returned {status_code}")
        if status_code in RETRYABLE_STATUS:
            raise FetchRetryableError(f"{url} returned {status_code}")

        content = data.get("rawHtml") or data.get("raw_html") or data.get("html") or data.get("markdown") or ""
        return FetchedPage(url=url, content=content, status_code=status_code, metadata=metadata)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        last_error: Optional[FetchError] = None
        for attempt in range(self.max_attempts):
            try:
                response = await self._transport.post(path, json=payload, headers=self._headers, timeout=self.timeout)
            except httpx.RequestError as exc:
                last_error = FetchRetryableError(f"request to {path} failed: {exc}")
                await self._maybe_wait(attempt)
                continue

            if response.status_code in RETRYABLE_STATUS:
                last_error = FetchRetryableError(f"Firecrawl returned {response.status_code} for {path}")
                await self._maybe_wait(attempt)
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise FetchError(str(exc)) from exc

            try:
                return response.json()
            except ValueError as exc:
                raise FetchError("Invalid JSON from Firecrawl") from exc

        logger.debug("Giving up on %s after %d attempts", path, self.max_attempts)
        raise last_error or FetchError("Firecrawl request failed")

    async def _maybe_wait(self, attempt: int) -> None:
        if attempt >= self.max_attempts - 1:
            return
        delay = self.backoff_base * (2 ** attempt)
        await asyncio.sleep(delay + random.uniform(0, 0.3))
