import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from reference_discovery.models.search import SearchOptions
from reference_discovery.services.providers.arxiv import ArxivProvider
from reference_discovery.utils.exceptions import ParsingError

ATOM_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <title>ArXiv Query</title>
  <entry>
    <id>http://arxiv.org/abs/2101.00001v1</id>
    <published>2021-01-04T18:00:00Z</published>
    <title>Attention Mechanisms
      for Clinical Text</title>
    <summary>  We study attention mechanisms for clinical notes.  </summary>
    <author><name>Ada Lovelace</name></author>
    <author><name>Alan Turing</name></author>
    <arxiv:doi>10.1234/abcd.5678</arxiv:doi>
    <arxiv:journal_ref>Journal of Clinical AI 3 (2021)</arxiv:journal_ref>
    <link href="http://arxiv.org/abs/2101.00001v1" rel="alternate" type="text/html"/>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/2102.00002v1</id>
    <published>2020-02-01T00:00:00Z</published>
    <title>A Preprint Without Journal</title>
    <summary>Short.</summary>
    <author><name>Grace Hopper</name></author>
    <link href="http://arxiv.org/abs/2102.00002v1" rel="alternate" type="text/html"/>
  </entry>
</feed>
"""


def _response(status=200, text=""):
    resp = AsyncMock()
    resp.status = status
    resp.headers = {}
    resp.text.return_value = text
    return resp


@pytest.fixture
def provider():
    return ArxivProvider()


def test_name(provider):
    assert provider.name == "arxiv"


def test_build_query_params(provider):
    options = SearchOptions(max_results=7, year_start=2020, year_end=2022)
    params = provider._build_query_params("attention", options)

    assert params["search_query"] == (
        "all:attention AND submittedDate:[202001010000 TO 202212312359]"
    )
    assert params["max_results"] == 7
    assert params["sortBy"] == "relevance"


def test_build_query_params_date_sort(provider):
    params = provider._build_query_params("q", SearchOptions(sort_by="date"))
    assert params["search_query"] == "all:q"
    assert params["sortBy"] == "submittedDate"
    assert params["sortOrder"] == "descending"


@pytest.mark.asyncio
async def test_search_parses_feed(provider):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(text=ATOM_FEED)
        results = await provider.execute("attention", SearchOptions())

    assert len(results) == 2
    first, second = results

    assert first.title == "Attention Mechanisms for Clinical Text"
    assert first.authors == ["Ada Lovelace", "Alan Turing"]
    assert first.year == 2021
    assert first.doi == "10.1234/abcd.5678"
    assert first.journal == "Journal of Clinical AI 3 (2021)"
    assert first.url == "http://arxiv.org/abs/2101.00001v1"
    assert first.abstract == "We study attention mechanisms for clinical notes."
    assert first.keywords == ["cs.CL"]

    assert second.journal == "arXiv"
    assert second.doi is None
    assert second.year == 2020


@pytest.mark.asyncio
async def test_search_respects_max_results(provider):
    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(text=ATOM_FEED)
        results = await provider.execute("attention", SearchOptions(max_results=1))

    assert len(results) == 1


@pytest.mark.asyncio
async def test_unreadable_feed_is_parsing_error(provider):
    broken = MagicMock(bozo=True, entries=[])
    with patch("aiohttp.ClientSession.get") as mock_get, patch(
        "reference_discovery.services.providers.arxiv.feedparser.parse",
        return_value=broken,
    ):
        mock_get.return_value.__aenter__.return_value = _response(text="garbage")
        with pytest.raises(ParsingError):
            await provider.execute("attention", SearchOptions())
