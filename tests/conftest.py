import json
from typing import Optional
from unittest.mock import patch

import httpx
import pytest

from serp_intel.config.settings import Settings
from serp_intel.models.schemas import (
    EntityData,
    NewCompetitorResult,
    SearchResultItem,
    SentimentData,
    StructuredDataBlock,
)
from serp_intel.services.analysis_provider import AnalysisProvider
from serp_intel.storage.result_store import InMemoryResultStore
from serp_intel.utils.errors import ExtractionError, SearchProviderError


@pytest.fixture
def test_settings(tmp_path):
    """Real settings with test credentials and no throttling."""
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY="test-api-key",
        GOOGLE_CSE_ID="test-cse-id",
        APP_ENV="test",
        LOG_JSON=False,
        FETCH_TIMEOUT_MS=2000,
        FETCH_BATCH_DELAY_MS=0,
        COMPETITOR_DELAY_MS=0,
        OUTPUT_DIR=str(tmp_path / "reports"),
    )


@pytest.fixture(autouse=True)
def patch_get_settings(test_settings):
    """Globally patch get_settings to return test_settings."""
    with patch("serp_intel.config.settings.get_settings", return_value=test_settings):
        with patch("serp_intel.pipeline.orchestrator.get_settings", return_value=test_settings):
            with patch("serp_intel.services.page_fetcher.get_settings", return_value=test_settings):
                with patch("serp_intel.services.analysis_provider.get_settings", return_value=test_settings):
                    with patch("serp_intel.utils.formatters.get_settings", return_value=test_settings):
                        yield test_settings


@pytest.fixture
def store():
    return InMemoryResultStore()


# =============================================================================
# Pages
# =============================================================================

def make_page(
    title: str = "Best Coffee Makers of the Year",
    words: int = 120,
    structured: bool = True,
    description: str = "Our picks for the best coffee makers.",
) -> str:
    """Build a small but realistic article page."""
    body = " ".join(["coffee"] * words)
    json_ld = ""
    if structured:
        json_ld = (
            '<script type="application/ld+json">'
            + json.dumps({"@context": "https://schema.org", "@type": "Article", "headline": title})
            + "</script>"
        )
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
  <meta name="description" content="{description}">
  {json_ld}
</head>
<body>
  <header><nav><a href="/">Home</a></nav></header>
  <main>
    <h1>{title}</h1>
    <p>{body}</p>
  </main>
  <footer>Copyright</footer>
</body>
</html>"""


@pytest.fixture
def sample_html():
    return """<!DOCTYPE html>
<html>
<head>
  <title>  Best Coffee Makers
  2024 </title>
  <meta name="description" content="We tested 40 coffee makers.">
  <meta property="og:description" content="OG description">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "Article", "headline": "Best Coffee Makers"}</script>
  <script type="application/ld+json">{ not valid json </script>
  <script>var tracking = "do not count me";</script>
  <style>.hidden { display: none; }</style>
</head>
<body>
  <header><h1>Site Header</h1><a href="https://www.example.com/about">About</a></header>
  <nav><a href="/menu">Menu</a></nav>
  <div class="sidebar">Sidebar words that should vanish</div>
  <main>
    <h1>The Best Coffee Makers</h1>
    <p>We brewed <em>hundreds</em> of pots with <strong>every machine</strong> on the market.</p>
    <h2>Top   Picks</h2>
    <p>Our <i>favorite</i> drip machine <i class="fa fa-star"></i> is fast.</p>
    <h3></h3>
    <img src="/img/drip.jpg" alt="Drip machine">
    <img data-src="/img/lazy.jpg">
    <img alt="no source">
    <a href="/reviews/drip">Review</a>
    <a href="#comments">Comments</a>
    <a href="https://www.example.com/guide">Guide</a>
    <a href="https://blog.other.com/post">Other</a>
    <a href="mailto:team@example.com">Mail</a>
  </main>
  <footer><a href="https://twitter.com/example">Twitter</a></footer>
</body>
</html>"""


def mock_transport_client(pages: dict[str, str], failures: Optional[dict[str, int]] = None) -> httpx.AsyncClient:
    """
    An AsyncClient answering from ``pages``.

    ``failures`` maps URLs to an HTTP status to return instead; any other
    unknown URL raises a connection error.
    """
    failures = failures or {}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in failures:
            return httpx.Response(failures[url], text="error")
        if url in pages:
            return httpx.Response(200, text=pages[url], headers={"Content-Type": "text/html"})
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Provider
# =============================================================================

class FakeProvider(AnalysisProvider):
    """In-memory provider with per-URL-content NLP answers."""

    def __init__(
        self,
        results: Optional[list[SearchResultItem]] = None,
        entities: Optional[list[EntityData]] = None,
        sentiment_score: Optional[float] = 0.4,
        search_error: Optional[Exception] = None,
        entity_error: Optional[Exception] = None,
        sentiment_error: Optional[Exception] = None,
    ):
        self.results = results or []
        self.entities = entities if entities is not None else [
            EntityData(name="Coffee", type="CONSUMER_GOOD", salience=0.6, mentions=4),
        ]
        self.sentiment_score = sentiment_score
        self.search_error = search_error
        self.entity_error = entity_error
        self.sentiment_error = sentiment_error
        self.search_calls: list[tuple] = []
        self.entity_calls = 0
        self.sentiment_calls = 0
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def search(self, query, api_key, cse_id, country="US", language="en"):
        self.search_calls.append((query, api_key, cse_id, country, language))
        if self.search_error:
            raise self.search_error
        return list(self.results)

    async def analyze_entities(self, text, api_key):
        self.entity_calls += 1
        if self.entity_error:
            raise self.entity_error
        return list(self.entities)

    async def analyze_sentiment(self, text, api_key):
        self.sentiment_calls += 1
        if self.sentiment_error:
            raise self.sentiment_error
        return SentimentData(score=self.sentiment_score, magnitude=1.0)

    async def close(self):
        self.closed = True


def search_results(count: int, host: str = "site{n}.com") -> list[SearchResultItem]:
    return [
        SearchResultItem(
            title=f"Result {n}",
            link=f"https://www.{host.format(n=n)}/coffee",
            snippet=f"Snippet {n}",
            display_link=host.format(n=n),
        )
        for n in range(1, count + 1)
    ]


@pytest.fixture
def fake_provider():
    return FakeProvider(results=search_results(3))


@pytest.fixture
def failing_search_provider():
    return FakeProvider(search_error=SearchProviderError("Google Search API Error: quota exceeded"))


@pytest.fixture
def failing_nlp_provider():
    return FakeProvider(
        results=search_results(3),
        entity_error=ExtractionError("entities down"),
        sentiment_error=ExtractionError("sentiment down"),
    )


# =============================================================================
# Competitor records
# =============================================================================

def competitor(
    rank: int = 1,
    word_count: int = 100,
    title: Optional[str] = "A title",
    sentiment: Optional[float] = None,
    entities: Optional[list[EntityData]] = None,
    structured: bool = False,
    analysis_id: int = 1,
) -> NewCompetitorResult:
    return NewCompetitorResult(
        analysis_id=analysis_id,
        rank=rank,
        url=f"https://site{rank}.com/",
        domain=f"site{rank}.com",
        title=title,
        word_count=word_count,
        sentiment=sentiment,
        entities=entities or [],
        structured_data=[StructuredDataBlock.from_json_ld({"@type": "Article"})] if structured else [],
    )
