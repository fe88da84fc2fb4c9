"""
Competitor page retrieval.

A single GET per URL with desktop-browser headers and a hard timeout. There
are no retries: one failed attempt fails the page, and the caller decides
whether to skip it.

Example:
    >>> async with PageFetcher() as fetcher:
    ...     html = await fetcher.fetch("https://example.com", timeout_ms=5000)
    ...     pages = await fetcher.fetch_many(["https://a.com", "https://b.com"])
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

import httpx

from serp_intel.config.settings import Settings, get_settings
from serp_intel.extractors.content_extractor import ContentExtractor
from serp_intel.models.schemas import ScrapedData
from serp_intel.utils.errors import AppError, PageFetchError, PageTimeoutError
from serp_intel.utils.logger import get_logger
from serp_intel.utils.throttle import FixedDelayPolicy

logger = get_logger(__name__)


BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


class PageFetcher:
    """
    Fetches raw page markup and optionally parses it.

    The HTTP client is created lazily; pass ``client`` to share one (or to
    inject an ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        extractor: Optional[ContentExtractor] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.extractor = extractor or ContentExtractor()
        self._client = client
        self._owns_client = client is None

    @property
    def headers(self) -> dict[str, str]:
        return {"User-Agent": self.settings.user_agent, **BROWSER_HEADERS}

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            # The per-request deadline is enforced with asyncio.wait_for
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(None),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "PageFetcher":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch(self, url: str, timeout_ms: Optional[int] = None) -> str:
        """
        Retrieve one page.

        Args:
            url: Page URL.
            timeout_ms: Hard deadline for the whole request, including the body.

        Returns:
            Response body as text.

        Raises:
            PageTimeoutError: Deadline exceeded.
            PageFetchError: Non-2xx status or transport failure.
        """
        timeout_ms = timeout_ms or self.settings.fetch_timeout_ms
        if self._client is None:
            await self.connect()

        try:
            response = await asyncio.wait_for(
                self._client.get(url, headers=self.headers),
                timeout=timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise PageTimeoutError(url, timeout_ms) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise PageFetchError(f"Request failed: {e}", url=url) from e

        if not response.is_success:
            raise PageFetchError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )

        logger.debug(
            "Fetched page",
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response.text

    async def scrape_page(self, url: str, timeout_ms: Optional[int] = None) -> ScrapedData:
        """Fetch ``url`` and parse it into :class:`ScrapedData`."""
        markup = await self.fetch(url, timeout_ms)
        try:
            return self.extractor.parse(markup, url)
        except Exception as e:
            raise PageFetchError(f"Failed to parse {url}: {e}", url=url) from e

    async def fetch_many(
        self,
        urls: Iterable[str],
        delay_ms: Optional[int] = None,
    ) -> dict[str, ScrapedData]:
        """
        Scrape URLs one after another.

        Sleeps ``delay_ms`` between requests. A URL that fails is logged and
        left out of the result; the batch always runs to the end.
        """
        if delay_ms is None:
            delay_ms = self.settings.fetch_batch_delay_ms
        throttle = FixedDelayPolicy.from_milliseconds(delay_ms)

        urls = list(urls)
        results: dict[str, ScrapedData] = {}
        for index, url in enumerate(urls):
            if index > 0:
                await throttle.wait()
            try:
                results[url] = await self.scrape_page(url)
            except AppError as e:
                logger.warning("Skipping page", url=url, error=e.message)

        logger.info("Batch fetch complete", requested=len(urls), fetched=len(results))
        return results
