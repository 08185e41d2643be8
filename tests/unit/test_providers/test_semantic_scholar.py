import json

import pytest
from unittest.mock import AsyncMock, patch

from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.semantic_scholar import (
    SemanticScholarProvider,
)
from reference_discovery.utils.exceptions import ParsingError, RateLimitedError


def _response(status=200, text=""):
    resp = AsyncMock()
    resp.status = status
    resp.headers = {}
    resp.text.return_value = text
    return resp


@pytest.fixture
def provider():
    return SemanticScholarProvider(api_key="test_key")


@pytest.fixture
def api_payload():
    return {
        "total": 2,
        "data": [
            {
                "paperId": "123",
                "title": "Deep Learning in Healthcare",
                "authors": [{"name": "Jane Doe"}, {"name": "John Roe"}],
                "venue": "Nature Medicine",
                "year": 2021,
                "abstract": "A review of deep learning.",
                "citationCount": 150,
                "url": "https://www.semanticscholar.org/paper/123",
                "externalIds": {"DOI": "10.1038/s41591-021-0001"},
            },
            {
                "paperId": "456",
                "title": "Untitled authorless record",
                "authors": [],
            },
        ],
    }


@pytest.mark.asyncio
async def test_search_success(provider, api_payload):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(
            text=json.dumps(api_payload)
        )
        results = await provider.execute("deep learning", SearchOptions())

        headers = mock_get.call_args.kwargs["headers"]
        assert headers == {"x-api-key": "test_key"}

    assert len(results) == 1
    paper = results[0]
    assert paper.provider == "semantic_scholar"
    assert paper.title == "Deep Learning in Healthcare"
    assert paper.authors == ["Jane Doe", "John Roe"]
    assert paper.journal == "Nature Medicine"
    assert paper.citations == 150
    assert paper.doi == "10.1038/s41591-021-0001"
    assert paper.confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_search_without_key_sends_no_header():
    provider = SemanticScholarProvider()
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(text='{"data": []}')
        results = await provider.execute("anything", SearchOptions())

        assert mock_get.call_args.kwargs["headers"] is None
    assert results == []


@pytest.mark.asyncio
async def test_search_rate_limit(provider):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(status=429)

        with pytest.raises(RateLimitedError):
            await provider.execute("deep learning", SearchOptions())


def test_build_query_params(provider):
    options = SearchOptions(max_results=5, year_start=2019, year_end=2023)
    params = provider._build_query_params("test query", options)

    assert params["query"] == "test query"
    assert params["limit"] == 5
    assert params["year"] == "2019-2023"
    assert "externalIds" in params["fields"]


def test_build_query_params_open_range(provider):
    params = provider._build_query_params("q", SearchOptions(year_start=2020))
    assert params["year"] == "2020-"

    params = provider._build_query_params("q", SearchOptions())
    assert "year" not in params


def test_journal_name_fallback(provider):
    results = provider._parse_response(
        {
            "data": [
                {
                    "title": "Paper",
                    "authors": [{"name": "A"}],
                    "venue": "",
                    "journal": {"name": "Journal of Tests"},
                }
            ]
        }
    )
    assert results[0].journal == "Journal of Tests"


def test_malformed_item_skipped(provider):
    results = provider._parse_response(
        {
            "data": [
                {"title": "Bad", "authors": [{"name": None}], "externalIds": "x"},
                {"title": "Good", "authors": [{"name": "A"}]},
            ]
        }
    )
    assert [r.title for r in results] == ["Good"]


def test_unexpected_shape(provider):
    with pytest.raises(ParsingError):
        provider._parse_response(["not", "a", "dict"])
