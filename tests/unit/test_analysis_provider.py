import json

import httpx
import pytest

from serp_intel.services.analysis_provider import GoogleApisProvider, create_analysis_provider
from serp_intel.utils.errors import ExtractionError, SearchProviderError


def provider_with(handler, settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleApisProvider(settings, client=client), client


SEARCH_PAYLOAD = {
    "items": [
        {
            "title": "Best Coffee Makers 2024",
            "link": "https://www.example.com/coffee",
            "snippet": "We tested 40 machines",
            "displayLink": "www.example.com",
        },
        {"title": "No link here"},
        {
            "title": "Another",
            "link": "https://other.com/coffee",
            "snippet": "",
            "displayLink": "other.com",
        },
    ]
}


class TestSearch:

    @pytest.mark.asyncio
    async def test_sends_expected_query_parameters(self, test_settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = request.url
            return httpx.Response(200, json=SEARCH_PAYLOAD)

        provider, client = provider_with(handler, test_settings)
        await provider.search("best coffee makers", "k-123", "cx-456", country="GB", language="fr")

        params = captured["url"].params
        assert captured["url"].host == "www.googleapis.com"
        assert captured["url"].path == "/customsearch/v1"
        assert params["key"] == "k-123"
        assert params["cx"] == "cx-456"
        assert params["q"] == "best coffee makers"
        assert params["cr"] == "countryGB"
        assert params["hl"] == "fr"
        assert params["num"] == "10"
        assert params["safe"] == "off"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_maps_items_and_drops_malformed(self, test_settings):
        provider, client = provider_with(
            lambda request: httpx.Response(200, json=SEARCH_PAYLOAD), test_settings
        )

        results = await provider.search("coffee", "k", "cx")

        assert [r.link for r in results] == [
            "https://www.example.com/coffee",
            "https://other.com/coffee",
        ]
        assert results[0].display_link == "www.example.com"
        assert results[0].snippet == "We tested 40 machines"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_no_items_returns_empty_list(self, test_settings):
        provider, client = provider_with(lambda request: httpx.Response(200, json={}), test_settings)
        assert await provider.search("obscure", "k", "cx") == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_truncates_to_max_results(self, test_settings):
        test_settings.max_search_results = 2
        payload = {
            "items": [{"title": f"R{i}", "link": f"https://r{i}.com/"} for i in range(5)]
        }
        provider, client = provider_with(lambda request: httpx.Response(200, json=payload), test_settings)

        results = await provider.search("coffee", "k", "cx")

        assert [r.title for r in results] == ["R0", "R1"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_error_payload_raises(self, test_settings):
        payload = {"error": {"code": 403, "message": "Daily Limit Exceeded"}}
        provider, client = provider_with(lambda request: httpx.Response(403, json=payload), test_settings)

        with pytest.raises(SearchProviderError) as exc_info:
            await provider.search("coffee", "k", "cx")

        assert exc_info.value.message == "Google Search API Error: Daily Limit Exceeded"
        assert provider.get_stats()["error_count"] == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self, test_settings):
        def handler(request):
            raise httpx.ConnectError("dns failure", request=request)

        provider, client = provider_with(handler, test_settings)

        with pytest.raises(SearchProviderError, match="Failed to fetch search results"):
            await provider.search("coffee", "k", "cx")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self, test_settings):
        provider, client = provider_with(
            lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"), test_settings
        )

        with pytest.raises(SearchProviderError):
            await provider.search("coffee", "k", "cx")
        await client.aclose()


class TestNaturalLanguage:

    @pytest.mark.asyncio
    async def test_entities_request_and_mapping(self, test_settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["key"] = request.url.params["key"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "entities": [
                    {
                        "name": "Breville",
                        "type": "ORGANIZATION",
                        "salience": 0.42,
                        "mentions": [{"text": {}}, {"text": {}}, {"text": {}}],
                        "metadata": {"mid": "/m/0abc"},
                    },
                    {"name": "kitchen", "type": "LOCATION"},
                ]
            })

        provider, client = provider_with(handler, test_settings)
        entities = await provider.analyze_entities("Breville makes coffee machines", "k-1")

        assert captured["path"] == "/v1/documents:analyzeEntities"
        assert captured["key"] == "k-1"
        assert captured["body"]["document"] == {
            "type": "PLAIN_TEXT",
            "content": "Breville makes coffee machines",
        }
        assert captured["body"]["encodingType"] == "UTF8"

        assert entities[0].name == "Breville"
        assert entities[0].mentions == 3
        assert entities[0].salience == 0.42
        assert entities[0].knowledge_graph_id == "/m/0abc"
        assert entities[1].mentions == 0
        assert entities[1].salience == 0.0
        assert entities[1].knowledge_graph_id is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_document_is_truncated(self, test_settings):
        test_settings.nlp_max_chars = 5
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"entities": []})

        provider, client = provider_with(handler, test_settings)
        await provider.analyze_entities("abcdefghij", "k")

        assert captured["body"]["document"]["content"] == "abcde"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_sentiment_label_derived_from_score(self, test_settings):
        def handler(request):
            assert request.url.path == "/v1/documents:analyzeSentiment"
            return httpx.Response(200, json={"documentSentiment": {"score": -0.6, "magnitude": 2.5}})

        provider, client = provider_with(handler, test_settings)
        sentiment = await provider.analyze_sentiment("This machine is awful", "k")

        assert sentiment.score == -0.6
        assert sentiment.magnitude == 2.5
        assert sentiment.label == "negative"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_zero_sentiment_is_neutral(self, test_settings):
        provider, client = provider_with(
            lambda request: httpx.Response(200, json={"documentSentiment": {"magnitude": 0.1}}),
            test_settings,
        )
        sentiment = await provider.analyze_sentiment("plain text", "k")
        assert sentiment.score == 0.0
        assert sentiment.label == "neutral"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_sentiment_raises(self, test_settings):
        provider, client = provider_with(lambda request: httpx.Response(200, json={}), test_settings)

        with pytest.raises(ExtractionError, match="No sentiment data returned from API"):
            await provider.analyze_sentiment("text", "k")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_nlp_error_payload_is_extraction_error(self, test_settings):
        payload = {"error": {"code": 400, "message": "The language ru is not supported"}}
        provider, client = provider_with(lambda request: httpx.Response(400, json=payload), test_settings)

        with pytest.raises(ExtractionError) as exc_info:
            await provider.analyze_entities("текст", "k")

        assert "not supported" in exc_info.value.message
        assert exc_info.value.details == {"method": "analyzeEntities"}
        assert exc_info.value.recoverable
        await client.aclose()


def test_factory_returns_google_provider(test_settings):
    provider = create_analysis_provider(test_settings)
    assert isinstance(provider, GoogleApisProvider)
    assert provider.name == "google"
