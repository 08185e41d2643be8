"""Unit tests for query breadth analysis and refinement"""

import pytest

from reference_discovery.models.content import ContentSummary
from reference_discovery.services.query_refiner import QueryRefiner


@pytest.fixture
def refiner():
    return QueryRefiner()


class TestAnalyzeBreadth:
    """Tests for breadth scoring and classification."""

    def test_single_character_terms_not_optimal(self, refiner):
        analysis = refiner.analyze_breadth("a b c d e f g h i j k")

        assert analysis.term_count == 0
        assert analysis.classification == "too_narrow"
        assert analysis.breadth_score == pytest.approx(0.1)
        assert analysis.suggestions
        assert analysis.suggestions[0].priority == "high"

    def test_many_or_terms_too_broad(self, refiner):
        query = (
            "neural OR network OR graph OR vision OR speech OR robotics "
            "OR genomics OR climate OR finance"
        )
        analysis = refiner.analyze_breadth(query)

        assert analysis.term_count == 9
        assert analysis.breadth_score == pytest.approx(0.9)
        assert analysis.classification == "too_broad"
        assert analysis.specificity_level == "very_broad"
        assert analysis.suggestions[0].suggestion.startswith("Focus on the 3-5")

    def test_balanced_query_optimal(self, refiner):
        analysis = refiner.analyze_breadth("machine learning healthcare diagnosis")

        assert analysis.breadth_score == pytest.approx(0.5)
        assert analysis.classification == "optimal"
        assert analysis.specificity_level == "moderate"
        assert [s.type for s in analysis.suggestions] == ["refocus"]

    def test_quotes_and_and_operators_narrow(self, refiner):
        analysis = refiner.analyze_breadth(
            '"machine learning" AND "healthcare" AND (diagnosis OR imaging)'
        )
        assert analysis.breadth_score == pytest.approx(0.2)
        assert analysis.classification == "too_narrow"

    def test_alternatives_bounded_and_distinct(self, refiner):
        query = "research method"
        analysis = refiner.analyze_breadth(query)

        assert 1 <= len(analysis.alternative_queries) <= 3
        assert query not in analysis.alternative_queries
        assert len(set(analysis.alternative_queries)) == len(
            analysis.alternative_queries
        )


class TestAlternativeTerms:
    """Tests for alternative term generation."""

    def test_dictionary_lookups(self, refiner):
        terms = refiner.generate_alternative_terms("research method")

        synonyms = [s.term for s in terms.synonyms]
        assert "investigation" in synonyms
        assert "technique" in synonyms
        assert synonyms.count("examination") == 1
        assert [a.term for a in terms.academic_variants] == [
            "methodology",
            "approach",
            "technique",
        ]
        assert len(terms.narrower_terms) == 6

    def test_related_terms_from_content(self, refiner):
        summary = ContentSummary(keywords=["graph theory"], topics=["networks"])
        terms = refiner.generate_alternative_terms("spectral methods", [summary])

        assert [r.term for r in terms.related_terms] == ["graph theory", "networks"]
        assert all(r.type == "related" for r in terms.related_terms)


class TestValidateQuery:
    """Tests for query validation."""

    def test_short_query_invalid(self, refiner):
        validation = refiner.validate_query("ai")

        assert validation.is_valid is False
        assert "Query is too short to be specific" in validation.issues
        assert validation.confidence == pytest.approx(0.5)

    def test_long_query_invalid(self, refiner):
        validation = refiner.validate_query('"research" AND ' + "x" * 200)
        assert validation.is_valid is False
        assert any("too long" in issue for issue in validation.issues)

    def test_well_formed_query(self, refiner):
        validation = refiner.validate_query('"deep learning" AND research')

        assert validation.is_valid is True
        assert validation.suggestions == []
        assert validation.confidence == 1.0


class TestRefineQuery:
    """Tests for the full refinement report."""

    def test_narrow_query_refinement(self, refiner):
        query = '"machine learning"'
        refinement = refiner.refine_query(query)

        assert refinement.original_query == query
        assert refinement.breadth_analysis.classification == "too_narrow"

        recommendation_types = [r.type for r in refinement.recommendations]
        assert recommendation_types[0] == "add_term"
        assert "add_operator" in recommendation_types

        refined_types = [r.refinement_type for r in refinement.refined_queries]
        assert refined_types == ["academic_enhanced", "operator_optimized"]
        assert all(r.query != query for r in refinement.refined_queries)

    def test_refined_queries_capped(self, refiner):
        refinement = refiner.refine_query("research method analysis framework")
        assert len(refinement.refined_queries) <= 3

    def test_long_query_restructure(self, refiner):
        query = " AND ".join(f'"term{i} research"' for i in range(12))
        refinement = refiner.refine_query(query)

        assert "restructure" in [r.type for r in refinement.recommendations]
