"""
External search and language-analysis provider.

The pipeline talks to a single provider through the :class:`AnalysisProvider`
interface: organic web search for the keyword, plus optional entity and
sentiment extraction for each competitor page. :class:`GoogleApisProvider`
implements it on top of the Google Custom Search JSON API and the Cloud
Natural Language API.

Credentials are passed per call so that one provider instance can serve
analyses submitted with different keys.

Example:
    >>> async with GoogleApisProvider() as provider:
    ...     results = await provider.search("best coffee makers", api_key, cse_id)
    ...     entities = await provider.analyze_entities(page_text, api_key)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from serp_intel.config.settings import Settings, get_settings
from serp_intel.models.schemas import EntityData, SearchResultItem, SentimentData
from serp_intel.utils.errors import ExtractionError, SearchProviderError
from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Abstract Provider
# =============================================================================

class AnalysisProvider(ABC):
    """
    Abstract base class for search + NLP providers.

    ``search`` failures are fatal to an analysis and raise
    :class:`SearchProviderError`. The NLP calls raise
    :class:`ExtractionError`, which the pipeline downgrades to empty data.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""

    @abstractmethod
    async def search(
        self,
        query: str,
        api_key: str,
        cse_id: str,
        country: str = "US",
        language: str = "en",
    ) -> list[SearchResultItem]:
        """Return up to ten organic results in rank order."""

    @abstractmethod
    async def analyze_entities(self, text: str, api_key: str) -> list[EntityData]:
        """Extract named entities from plain text."""

    @abstractmethod
    async def analyze_sentiment(self, text: str, api_key: str) -> SentimentData:
        """Score the overall sentiment of plain text."""

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "AnalysisProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# =============================================================================
# Google APIs Provider
# =============================================================================

class GoogleApisProvider(AnalysisProvider):
    """
    Google Custom Search + Cloud Natural Language provider.

    Search uses the Custom Search JSON API restricted to the fields the
    pipeline reads. Both NLP endpoints receive the text as a ``PLAIN_TEXT``
    document truncated to ``settings.nlp_max_chars``.
    """

    SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
    NLP_BASE_URL = "https://language.googleapis.com/v1"
    SEARCH_FIELDS = "items(title,link,snippet,displayLink)"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None
        self._request_count = 0
        self._error_count = 0

    @property
    def name(self) -> str:
        return "google"

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.provider_timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "GoogleApisProvider":
        await self.connect()
        return self

    # =========================================================================
    # Search
    # =========================================================================

    async def search(
        self,
        query: str,
        api_key: str,
        cse_id: str,
        country: str = "US",
        language: str = "en",
    ) -> list[SearchResultItem]:
        """
        Run an organic web search.

        Args:
            query: Search keyword.
            api_key: Google API key.
            cse_id: Custom Search Engine id.
            country: ISO alpha-2 country restriction.
            language: Interface language.

        Returns:
            Results in rank order, at most ``settings.max_search_results``.

        Raises:
            SearchProviderError: Transport failure or an API error payload.
        """
        if self._client is None:
            await self.connect()

        params = {
            "key": api_key,
            "cx": cse_id,
            "q": query,
            "cr": f"country{country}",
            "hl": language,
            "num": "10",
            "safe": "off",
            "fields": self.SEARCH_FIELDS,
        }

        self._request_count += 1
        try:
            response = await self._client.get(self.SEARCH_URL, params=params)
            data = self._decode(response)
        except (httpx.HTTPError, ValueError) as e:
            self._error_count += 1
            logger.error("Search request failed", provider=self.name, error=str(e))
            raise SearchProviderError(f"Failed to fetch search results: {e}") from e

        error_message = self._api_error(data)
        if error_message:
            self._error_count += 1
            logger.error("Search API returned an error", provider=self.name, error=error_message)
            raise SearchProviderError(f"Google Search API Error: {error_message}")
        if not response.is_success:
            self._error_count += 1
            raise SearchProviderError(
                f"Failed to fetch search results: HTTP {response.status_code}: {response.reason_phrase}"
            )

        items = self._parse_search_items(data.get("items") or [])
        items = items[: self.settings.max_search_results]

        logger.info(
            "Search completed",
            provider=self.name,
            query=query,
            country=country,
            results_count=len(items),
        )
        return items

    @staticmethod
    def _parse_search_items(raw_items: list[dict]) -> list[SearchResultItem]:
        items = []
        for raw in raw_items:
            try:
                items.append(SearchResultItem.model_validate(raw))
            except ValidationError as e:
                logger.warning("Dropping malformed search result", error=str(e))
        return items

    # =========================================================================
    # Natural Language
    # =========================================================================

    async def analyze_entities(self, text: str, api_key: str) -> list[EntityData]:
        """Extract entities; ``mentions`` is the number of mention spans returned."""
        data = await self._analyze_document("analyzeEntities", text, api_key)

        entities = []
        for raw in data.get("entities") or []:
            metadata = raw.get("metadata") or {}
            entities.append(
                EntityData(
                    name=raw.get("name", ""),
                    type=raw.get("type") or "UNKNOWN",
                    salience=raw.get("salience") or 0.0,
                    mentions=len(raw.get("mentions") or []),
                    knowledge_graph_id=metadata.get("mid"),
                )
            )

        logger.debug("Entities extracted", provider=self.name, count=len(entities))
        return entities

    async def analyze_sentiment(self, text: str, api_key: str) -> SentimentData:
        """Document-level sentiment; the label is derived from the score."""
        data = await self._analyze_document("analyzeSentiment", text, api_key)

        sentiment = data.get("documentSentiment")
        if not sentiment:
            raise ExtractionError("No sentiment data returned from API")

        try:
            result = SentimentData(
                score=sentiment.get("score") or 0.0,
                magnitude=sentiment.get("magnitude") or 0.0,
            )
        except ValidationError as e:
            raise ExtractionError(f"Failed to analyze sentiment: {e}") from e

        logger.debug("Sentiment scored", provider=self.name, score=result.score, label=result.label)
        return result

    async def _analyze_document(self, method: str, text: str, api_key: str) -> dict[str, Any]:
        if self._client is None:
            await self.connect()

        body = {
            "document": {
                "type": "PLAIN_TEXT",
                "content": text[: self.settings.nlp_max_chars],
            },
            "encodingType": "UTF8",
        }

        self._request_count += 1
        try:
            response = await self._client.post(
                f"{self.NLP_BASE_URL}/documents:{method}",
                params={"key": api_key},
                json=body,
            )
            data = self._decode(response)
        except (httpx.HTTPError, ValueError) as e:
            self._error_count += 1
            raise ExtractionError(f"Natural Language request failed: {e}", details={"method": method}) from e

        error_message = self._api_error(data)
        if error_message:
            self._error_count += 1
            raise ExtractionError(
                f"Google Natural Language API Error: {error_message}",
                details={"method": method},
            )
        if not response.is_success:
            self._error_count += 1
            raise ExtractionError(
                f"Natural Language request failed: HTTP {response.status_code}: {response.reason_phrase}",
                details={"method": method},
            )
        return data

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response body: {type(data).__name__}")
        return data

    @staticmethod
    def _api_error(data: dict[str, Any]) -> Optional[str]:
        error = data.get("error")
        if not error:
            return None
        if isinstance(error, dict):
            return error.get("message") or f"code {error.get('code')}"
        return str(error)

    def get_stats(self) -> dict[str, Any]:
        """Get provider statistics."""
        return {
            "name": self.name,
            "request_count": self._request_count,
            "error_count": self._error_count,
        }


def create_analysis_provider(settings: Optional[Settings] = None) -> AnalysisProvider:
    """Build the provider selected by the current settings."""
    settings = settings or get_settings()
    provider = settings.get_search_provider()
    if provider == "none":
        logger.warning("Google credentials not configured; analyses must supply their own keys")
    return GoogleApisProvider(settings)
