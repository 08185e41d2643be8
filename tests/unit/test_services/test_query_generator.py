"""Unit tests for query generation from content summaries"""

import pytest

from reference_discovery.models.content import ContentSummary
from reference_discovery.models.query import QueryGenerationOptions
from reference_discovery.services.query_generator import QueryGenerationEngine
from reference_discovery.services.query_refiner import QueryRefiner
from reference_discovery.utils.exceptions import InvalidInputError

EXPECTED_QUERY = (
    '"machine learning" AND "healthcare" AND "diagnosis" AND '
    '("artificial intelligence" OR "medicine") AND (research OR study OR analysis)'
)


@pytest.fixture
def engine():
    return QueryGenerationEngine()


@pytest.fixture
def summary():
    return ContentSummary(
        title="ML in clinics",
        content="How machine learning supports diagnosis in hospitals.",
        keywords=["machine learning", "healthcare", "diagnosis"],
        topics=["artificial intelligence", "medicine"],
        confidence=0.7,
    )


@pytest.fixture
def other_summary():
    return ContentSummary(
        keywords=["healthcare", "patient outcomes"],
        topics=["medicine", "public health"],
        confidence=0.5,
    )


class TestGenerateQueries:
    """Tests for the public generation entry point."""

    def test_single_summary(self, engine, summary):
        queries = engine.generate_queries([summary])

        assert len(queries) == 1
        query = queries[0]
        assert query.query == EXPECTED_QUERY
        assert query.query_type == "basic"
        assert query.keywords == ["machine learning", "healthcare", "diagnosis"]
        assert query.topics == ["artificial intelligence", "medicine"]
        assert query.confidence == pytest.approx(0.9)
        assert query.original_content == [summary]
        assert query.id.startswith("query_")

    def test_no_summaries(self, engine):
        with pytest.raises(InvalidInputError):
            engine.generate_queries([])

    def test_only_stop_words(self, engine):
        empty = ContentSummary(keywords=["the", "and"], topics=["of"])
        with pytest.raises(InvalidInputError, match="stop-word"):
            engine.generate_queries([empty])

    def test_multiple_summaries_combined(self, engine, summary, other_summary):
        queries = engine.generate_queries([summary, other_summary])

        assert len(queries) == 1
        combined = queries[0]
        assert combined.query_type == "combined"
        assert combined.keywords[0] == "healthcare"
        assert combined.confidence == pytest.approx(0.6)
        assert len(combined.original_content) == 2

    def test_include_alternatives(self, engine, summary, other_summary):
        options = QueryGenerationOptions(include_alternatives=True)
        queries = engine.generate_queries([summary, other_summary], options)

        assert [q.query_type for q in queries] == ["combined", "basic", "basic"]
        assert queries[1].id.endswith("-alt-0")
        assert queries[2].id.endswith("-alt-1")

    def test_alternative_skipped_when_empty(self, engine, summary):
        empty = ContentSummary(keywords=["the"])
        options = QueryGenerationOptions(include_alternatives=True)
        queries = engine.generate_queries([summary, empty], options)

        assert [q.query_type for q in queries] == ["combined", "basic"]

    def test_keyword_limit(self, engine):
        many = ContentSummary(keywords=[f"keyword{i}" for i in range(20)])
        queries = engine.generate_queries(
            [many], QueryGenerationOptions(max_keywords=4)
        )
        assert len(queries[0].keywords) == 4


class TestCombineTerms:
    """Tests for cross-summary term combination."""

    @pytest.fixture
    def summaries(self):
        return [
            ContentSummary(keywords=["alpha", "beta"], confidence=0.9),
            ContentSummary(keywords=["beta", "gamma"], confidence=0.5),
        ]

    def test_union_by_frequency(self, engine, summaries):
        assert engine._combine_terms(summaries, "keywords", "union") == [
            "beta",
            "alpha",
            "gamma",
        ]

    def test_intersection(self, engine, summaries):
        assert engine._combine_terms(summaries, "keywords", "intersection") == ["beta"]

    def test_intersection_falls_back_to_weighted(self, engine):
        disjoint = [
            ContentSummary(keywords=["alpha"], confidence=0.4),
            ContentSummary(keywords=["gamma"], confidence=0.8),
        ]
        assert engine._combine_terms(disjoint, "keywords", "intersection") == [
            "gamma",
            "alpha",
        ]

    def test_weighted(self, engine, summaries):
        assert engine._combine_terms(summaries, "keywords", "weighted") == [
            "beta",
            "alpha",
            "gamma",
        ]

    def test_combine_queries(self, engine, summary, other_summary):
        first = engine.generate_queries([summary])[0]
        second = engine.generate_queries([other_summary])[0]
        combined = engine.combine_queries([first, second])

        assert combined.query_type == "combined"
        assert combined.keywords[0] == "healthcare"
        assert combined.confidence == pytest.approx(
            (first.confidence + second.confidence) / 2
        )

    def test_combine_single_query_returned_unchanged(self, engine, summary):
        query = engine.generate_queries([summary])[0]
        assert engine.combine_queries([query]) is query

    def test_combine_nothing(self, engine):
        with pytest.raises(InvalidInputError):
            engine.combine_queries([])


class TestRenderQuery:
    """Tests for boolean rendering and the length cap."""

    KEYWORDS = ["machine learning", "healthcare", "diagnosis"]
    TOPICS = ["artificial intelligence", "medicine"]

    def test_render_full(self, engine):
        assert engine.render_query(self.KEYWORDS, self.TOPICS) == EXPECTED_QUERY

    def test_optional_keywords_group(self, engine):
        keywords = [*self.KEYWORDS, "imaging", "radiology"]
        query = engine.render_query(keywords, [])
        assert query == (
            '"machine learning" AND "healthcare" AND "diagnosis" AND '
            '("imaging" OR "radiology") AND (research OR study OR analysis)'
        )

    def test_academic_clause_skipped_when_present(self, engine):
        query = engine.render_query(["research design"], ["ethics"])
        assert query == '"research design" AND "ethics"'

    def test_topics_only(self, engine):
        options = QueryGenerationOptions(optimize_for_academic=False)
        assert engine.render_query([], ["ecology", "soil"], options) == (
            '"ecology" AND "soil"'
        )

    def test_cap_drops_optional_clauses_first(self, engine):
        options = QueryGenerationOptions(max_query_length=60)
        query = engine.render_query(self.KEYWORDS, self.TOPICS, options)
        assert query == '"machine learning" AND "healthcare" AND "diagnosis"'

    def test_cap_drops_trailing_required_terms(self, engine):
        options = QueryGenerationOptions(max_query_length=20)
        query = engine.render_query(self.KEYWORDS, self.TOPICS, options)
        assert query == '"machine learning"'

    def test_cap_truncates_single_long_term(self, engine):
        options = QueryGenerationOptions(max_query_length=20)
        query = engine.render_query(["very long keyword phrase here"], [], options)
        assert len(query) <= 20
        assert query == '"very long keyword"'


class TestOptimizeQuery:
    """Tests for the optimization report."""

    def test_breadth_matches_refiner(self, engine, summary):
        query = engine.generate_queries([summary])[0]
        breadth = QueryRefiner().analyze_breadth(query.query, [summary])

        assert query.optimization.breadth_score == breadth.breadth_score
        assert query.optimization.breadth_classification == breadth.classification

    def test_report_bounds(self, engine, summary):
        optimization = engine.generate_queries([summary])[0].optimization

        assert optimization.specificity_score == pytest.approx(1.0)
        assert 0.0 <= optimization.academic_relevance <= 1.0
        assert len(optimization.alternative_queries) <= 3
        assert optimization.suggestions

    def test_unquoted_query_low_specificity(self, engine):
        optimization = engine.optimize_query("ecology", ["ecology"], [])
        assert optimization.specificity_score == pytest.approx(0.3)
        assert any("specific" in s for s in optimization.suggestions)
