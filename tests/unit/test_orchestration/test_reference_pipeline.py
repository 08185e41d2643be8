"""Unit tests for ReferencePipeline stage composition."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from reference_discovery.models.config import PipelineConfig
from reference_discovery.models.content import ContentSummary
from reference_discovery.models.query import QueryGenerationOptions
from reference_discovery.models.reference import RawResult
from reference_discovery.models.scoring import ScoringWeights
from reference_discovery.models.search import SearchContext, SearchOutcome
from reference_discovery.observability.context import get_correlation_id
from reference_discovery.orchestration import ReferencePipeline
from reference_discovery.services.search_client import (
    DEGRADED_PROVIDER,
    degraded_result,
)
from reference_discovery.utils.exceptions import InvalidInputError

CURRENT_YEAR = 2024


@pytest.fixture
def summary():
    return ContentSummary(
        title="Clinical ML",
        content="Machine learning models support clinical diagnosis.",
        keywords=["machine learning", "diagnosis"],
        topics=["medicine"],
    )


@pytest.fixture
def other_summary():
    return ContentSummary(
        content="Deep learning for radiology imaging.",
        keywords=["deep learning", "radiology"],
        topics=["imaging"],
    )


@pytest.fixture
def client():
    mock = MagicMock()
    mock.search = AsyncMock()
    return mock


def _pipeline(client) -> ReferencePipeline:
    return ReferencePipeline(PipelineConfig(), client=client, current_year=CURRENT_YEAR)


def _raw(provider, title, doi=None, citations=None):
    return RawResult(
        provider=provider,
        title=title,
        authors=["Jane Doe"],
        year=2021,
        doi=doi,
        citations=citations,
    )


def _outcome(*results, errors=None, degraded=False):
    return SearchOutcome(
        results=list(results),
        providers_used=list(dict.fromkeys(r.provider for r in results))
        if not degraded
        else [],
        provider_errors=errors or {},
        degraded=degraded,
    )


class TestRun:
    @pytest.mark.asyncio
    async def test_single_summary(self, client, summary):
        client.search.return_value = _outcome(
            _raw("crossref", "Machine learning for diagnosis", doi="10.1/a"),
            _raw("arxiv", "Deep nets in clinics"),
        )

        result = await _pipeline(client).run([summary])

        assert result.success is True
        assert result.degraded is False
        assert len(result.queries) == 1
        client.search.assert_awaited_once()
        assert client.search.await_args.args[0] == result.queries[0].query
        assert result.raw_result_count == 2
        assert result.merged_result_count == 2
        assert result.providers_used == ["crossref", "arxiv"]
        assert [r.rank for r in result.results] == [1, 2]

    @pytest.mark.asyncio
    async def test_every_query_searched(self, client, summary, other_summary):
        client.search.side_effect = [
            _outcome(_raw("crossref", "Combined hit", doi="10.1/shared")),
            _outcome(
                _raw("arxiv", "Combined hit", doi="10.1/SHARED", citations=9),
                errors={"scholar": "Access blocked"},
            ),
            _outcome(_raw("semantic_scholar", "Radiology review")),
        ]

        result = await _pipeline(client).run(
            [summary, other_summary],
            options=QueryGenerationOptions(include_alternatives=True),
        )

        assert [q.query_type for q in result.queries] == ["combined", "basic", "basic"]
        assert client.search.await_count == 3
        assert result.providers_used == ["crossref", "arxiv", "semantic_scholar"]
        assert result.provider_errors == {"scholar": "Access blocked"}
        # The same DOI found by two queries collapses into one record
        assert result.raw_result_count == 3
        assert result.merged_result_count == 2
        merged = next(r for r in result.results if r.doi)
        assert merged.providers == ["crossref", "arxiv"]
        assert merged.citations == 9

    @pytest.mark.asyncio
    async def test_all_searches_degraded(self, client, summary, other_summary):
        client.search.side_effect = lambda query, *args: _outcome(
            degraded_result(query, CURRENT_YEAR),
            errors={"crossref": "Network error"},
            degraded=True,
        )

        result = await _pipeline(client).run(
            [summary, other_summary],
            options=QueryGenerationOptions(include_alternatives=True),
        )

        assert result.degraded is True
        assert result.success is True
        assert result.raw_result_count == 1
        assert len(result.results) == 1
        assert result.results[0].provider == DEGRADED_PROVIDER
        assert result.queries[0].query in result.results[0].title

    @pytest.mark.asyncio
    async def test_placeholder_dropped_when_real_results_exist(
        self, client, summary, other_summary
    ):
        client.search.side_effect = [
            _outcome(degraded_result("combined"), degraded=True),
            _outcome(_raw("crossref", "Real paper")),
            _outcome(),
        ]

        result = await _pipeline(client).run(
            [summary, other_summary],
            options=QueryGenerationOptions(include_alternatives=True),
        )

        assert result.degraded is False
        assert [r.title for r in result.results] == ["Real paper"]

    @pytest.mark.asyncio
    async def test_invalid_input_propagates(self, client):
        with pytest.raises(InvalidInputError):
            await _pipeline(client).run([])

        client.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_request_id_used_as_correlation_id(self, client, summary):
        before = get_correlation_id()
        seen = []

        async def search(query, options, context):
            seen.append(get_correlation_id())
            return _outcome()

        client.search.side_effect = search

        await _pipeline(client).run(
            [summary], context=SearchContext(request_id="req-9")
        )

        assert seen == ["req-9"]
        assert get_correlation_id() == before

    @pytest.mark.asyncio
    async def test_no_results(self, client, summary):
        client.search.return_value = _outcome()

        result = await _pipeline(client).run([summary])

        assert result.results == []
        assert result.to_dict()["merged_result_count"] == 0


class TestStages:
    def test_generate_queries_uses_config_options(self, client, summary):
        config = PipelineConfig(query={"optimize_for_academic": False})
        pipeline = ReferencePipeline(config, client=client)

        queries = pipeline.generate_queries([summary])

        assert "research OR study" not in queries[0].query

    def test_deduplicate_and_rank(self, client, summary):
        pipeline = _pipeline(client)
        merged = pipeline.deduplicate(
            [
                _raw("crossref", "Machine learning diagnosis", doi="10.1/x"),
                _raw("arxiv", "Machine learning diagnosis", doi="10.1/X"),
            ]
        )

        ranked = pipeline.score_and_rank(
            merged, [summary], ScoringWeights(relevance=1, quality=0, confidence=0)
        )

        assert len(ranked) == 1
        assert ranked[0].overall_score == pytest.approx(ranked[0].relevance_score)


class TestConfiguredJournals:
    def test_top_journals_path_from_config(self, client, tmp_path):
        journals = tmp_path / "journals.yaml"
        journals.write_text(
            "journals:\n  - Journal of Niche Studies\n", encoding="utf-8"
        )
        config = PipelineConfig.model_validate(
            {"scoring": {"top_journals_path": str(journals)}}
        )

        pipeline = ReferencePipeline(config, client=client)

        assert pipeline.scorer.top_journals == frozenset({"journal of niche studies"})
