"""
Query generation from content summaries.

Turns one or more ContentSummary objects into provider-agnostic boolean
search queries:
1. Extract and rank keywords/topics per summary
2. Combine term sets across summaries (union, intersection, weighted)
3. Render clauses by priority and enforce the length cap
4. Attach an optimization report (breadth, specificity, academic relevance)
"""

import uuid
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from reference_discovery.models.content import ContentSummary
from reference_discovery.models.query import (
    QueryGenerationOptions,
    QueryOptimization,
    SearchQuery,
)
from reference_discovery.observability.metrics import QUERIES_GENERATED
from reference_discovery.services.query_refiner import QueryRefiner
from reference_discovery.utils.exceptions import InvalidInputError
from reference_discovery.utils.text import clean_term, is_academic_term, is_stop_word

logger = structlog.get_logger()

SINGLE_DEFAULTS = (8, 5)
COMBINED_DEFAULTS = (10, 6)
ACADEMIC_CLAUSE = "(research OR study OR analysis)"


def _quote(term: str) -> str:
    return f'"{term}"'


def _has_academic_vocabulary(terms: Sequence[str]) -> bool:
    return any(is_academic_term(word) for term in terms for word in term.split())


def _filter_terms(terms: Sequence[str]) -> List[str]:
    """Clean, drop stop words and empties, dedupe keeping first occurrence."""
    seen = set()
    kept = []
    for raw in terms:
        if not raw:
            continue
        term = clean_term(raw)
        if not term or is_stop_word(term) or term in seen:
            continue
        seen.add(term)
        kept.append(term)
    return kept


def _filter_terms_all(terms: Sequence[str]) -> List[str]:
    """Clean and filter terms but keep repeats so they can be counted."""
    cleaned = (clean_term(t) for t in terms if t)
    return [t for t in cleaned if t and not is_stop_word(t)]


class QueryGenerationEngine:
    """Generate optimized search queries from content summaries."""

    def __init__(self, refiner: Optional[QueryRefiner] = None):
        self.refiner = refiner or QueryRefiner()

    def generate_queries(
        self,
        summaries: Sequence[ContentSummary],
        options: Optional[QueryGenerationOptions] = None,
    ) -> List[SearchQuery]:
        """Generate search queries for the given summaries.

        Args:
            summaries: One or more content summaries
            options: Generation options; defaults apply when None

        Returns:
            One basic query for a single summary, or one combined query
            (plus one basic query per summary when include_alternatives)

        Raises:
            InvalidInputError: No summaries, or no term survives filtering
        """
        if not summaries:
            raise InvalidInputError(
                "No content summaries provided for query generation"
            )

        options = options or QueryGenerationOptions()
        query_id = f"query_{uuid.uuid4().hex[:12]}"

        if len(summaries) == 1:
            queries = [self._single_source_query(summaries[0], query_id, options)]
        else:
            queries = [self._combined_query(summaries, query_id, options)]
            if options.include_alternatives:
                for index, summary in enumerate(summaries):
                    try:
                        queries.append(
                            self._single_source_query(
                                summary, f"{query_id}-alt-{index}", options
                            )
                        )
                    except InvalidInputError:
                        logger.debug("alternative_query_skipped", index=index)

        for query in queries:
            QUERIES_GENERATED.labels(query_type=query.query_type).inc()

        logger.info(
            "queries_generated",
            count=len(queries),
            summaries=len(summaries),
            primary_query=queries[0].query,
        )
        return queries

    def combine_queries(
        self,
        queries: Sequence[SearchQuery],
        options: Optional[QueryGenerationOptions] = None,
    ) -> SearchQuery:
        """Merge several generated queries into one combined query."""
        if not queries:
            raise InvalidInputError("No queries to combine")
        if len(queries) == 1:
            return queries[0]

        options = options or QueryGenerationOptions()
        max_keywords, max_topics = self._limits(options, combined=True)
        keywords = self._rank_by_frequency(
            [k for q in queries for k in q.keywords]
        )[:max_keywords]
        topics = self._rank_by_frequency([t for q in queries for t in q.topics])[
            :max_topics
        ]
        confidence = sum(q.confidence for q in queries) / len(queries)
        summaries = [s for q in queries for s in q.original_content]

        return self._build_query(
            f"query_{uuid.uuid4().hex[:12]}",
            keywords,
            topics,
            summaries,
            confidence,
            "combined",
            options,
        )

    # ------------------------------------------------------------------
    # Term extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _limits(options: QueryGenerationOptions, combined: bool) -> Tuple[int, int]:
        default_keywords, default_topics = (
            COMBINED_DEFAULTS if combined else SINGLE_DEFAULTS
        )
        max_keywords = options.max_keywords or default_keywords
        max_topics = (
            options.max_topics if options.max_topics is not None else default_topics
        )
        return max_keywords, max_topics

    @staticmethod
    def term_relevance(term: str, summary: ContentSummary) -> float:
        """Heuristic relevance of a term within its summary."""
        keywords = {clean_term(k) for k in summary.keywords}
        topics = {clean_term(t) for t in summary.topics}
        score = 0.0
        if is_academic_term(term):
            score += 0.3
        if len(term) > 6:
            score += 0.2
        if term in keywords:
            score += 0.4
        if term in topics:
            score += 0.3
        return score

    def extract_keywords(self, summary: ContentSummary, max_keywords: int) -> List[str]:
        terms = _filter_terms([*summary.keywords, *summary.key_phrases])
        # sorted() is stable, so equal scores keep their input order
        ranked = sorted(
            terms, key=lambda t: self.term_relevance(t, summary), reverse=True
        )
        return ranked[:max_keywords]

    def extract_topics(self, summary: ContentSummary, max_topics: int) -> List[str]:
        terms = _filter_terms(summary.topics)
        ranked = sorted(
            terms, key=lambda t: self.term_relevance(t, summary), reverse=True
        )
        return ranked[:max_topics]

    @staticmethod
    def _rank_by_frequency(terms: Sequence[str]) -> List[str]:
        counts = Counter(_filter_terms_all(terms))
        return [term for term, _ in counts.most_common()]

    def _combine_terms(
        self,
        summaries: Sequence[ContentSummary],
        field: str,
        strategy: str,
    ) -> List[str]:
        per_summary = [_filter_terms(getattr(s, field)) for s in summaries]

        if strategy == "union":
            return self._rank_by_frequency([t for terms in per_summary for t in terms])

        if strategy == "intersection":
            common = [
                t
                for t in per_summary[0]
                if all(t in other for other in per_summary[1:])
            ]
            if common:
                return common
            logger.debug("intersection_empty_fallback", field=field)

        weights: Dict[str, float] = {}
        for summary, terms in zip(summaries, per_summary):
            weight = summary.confidence if summary.confidence else 0.5
            for term in terms:
                weights[term] = weights.get(term, 0.0) + weight
        ranked = sorted(weights.items(), key=lambda kv: kv[1], reverse=True)
        return [t for t, _ in ranked]

    # ------------------------------------------------------------------
    # Query assembly
    # ------------------------------------------------------------------

    def _single_source_query(
        self,
        summary: ContentSummary,
        query_id: str,
        options: QueryGenerationOptions,
    ) -> SearchQuery:
        max_keywords, max_topics = self._limits(options, combined=False)
        keywords = self.extract_keywords(summary, max_keywords)
        topics = self.extract_topics(summary, max_topics)

        confidence = summary.confidence
        if len(keywords) >= 3:
            confidence += 0.1
        if len(topics) >= 2:
            confidence += 0.1
        if _has_academic_vocabulary([*keywords, *topics]):
            confidence += 0.1

        return self._build_query(
            query_id,
            keywords,
            topics,
            [summary],
            min(1.0, confidence),
            "basic",
            options,
        )

    def _combined_query(
        self,
        summaries: Sequence[ContentSummary],
        query_id: str,
        options: QueryGenerationOptions,
    ) -> SearchQuery:
        max_keywords, max_topics = self._limits(options, combined=True)
        strategy = options.combine_strategy
        keywords = self._combine_terms(summaries, "keywords", strategy)[:max_keywords]
        topics = self._combine_terms(summaries, "topics", strategy)[:max_topics]
        confidence = sum(s.confidence for s in summaries) / len(summaries)

        return self._build_query(
            query_id,
            keywords,
            topics,
            list(summaries),
            confidence,
            "combined",
            options,
        )

    def _build_query(
        self,
        query_id: str,
        keywords: List[str],
        topics: List[str],
        summaries: List[ContentSummary],
        confidence: float,
        query_type: str,
        options: QueryGenerationOptions,
    ) -> SearchQuery:
        if not keywords and not topics:
            raise InvalidInputError(
                "No keywords or topics survived stop-word filtering"
            )

        query_string = self.render_query(keywords, topics, options)
        optimization = self.optimize_query(query_string, keywords, topics, summaries)

        return SearchQuery(
            id=query_id,
            query=query_string,
            original_content=summaries,
            confidence=round(max(0.0, min(1.0, confidence)), 4),
            keywords=keywords,
            topics=topics,
            query_type=query_type,
            optimization=optimization,
        )

    def render_query(
        self,
        keywords: Sequence[str],
        topics: Sequence[str],
        options: Optional[QueryGenerationOptions] = None,
    ) -> str:
        """Render terms as a boolean query within the length cap.

        Clauses, from highest to lowest priority: required quoted keywords,
        topic OR group, academic context, optional keyword OR group. When
        over the cap, the optional group goes first, then the academic
        context, then the topic group, then trailing required phrases.
        """
        options = options or QueryGenerationOptions()

        if keywords:
            required = [_quote(k) for k in keywords[:3]]
            topic_terms = [_quote(t) for t in topics[:2]]
        else:
            required = [_quote(t) for t in topics[:2]]
            topic_terms = []

        # Optional clauses by render position; trimming removes the highest
        # priority number first
        optional: Dict[int, str] = {}
        if len(topic_terms) > 1:
            optional[0] = f"({' OR '.join(topic_terms)})"
        elif topic_terms:
            optional[0] = topic_terms[0]
        extra_terms = [_quote(k) for k in keywords[3:6]]
        if extra_terms:
            optional[2] = f"({' OR '.join(extra_terms)})"
        if options.optimize_for_academic and not _has_academic_vocabulary(
            [*keywords, *topics]
        ):
            optional[1] = ACADEMIC_CLAUSE

        positions = {0: 0, 2: 1, 1: 2}
        cap = options.max_query_length

        def render() -> str:
            ordered = sorted(optional, key=positions.__getitem__)
            return " AND ".join([*required, *(optional[p] for p in ordered)])

        query = render()
        while len(query) > cap and optional:
            dropped = optional.pop(max(optional))
            logger.debug("query_clause_dropped", clause=dropped, length=len(query))
            query = render()
        while len(query) > cap and len(required) > 1:
            required.pop()
            query = render()

        if len(query) > cap:
            query = _quote(self._truncate_words(required[0].strip('"'), cap - 2))
        return query

    @staticmethod
    def _truncate_words(term: str, limit: int) -> str:
        if len(term) <= limit:
            return term
        cut = term[:limit]
        if " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        return cut.strip() or term[:limit]

    def optimize_query(
        self,
        query: str,
        keywords: Sequence[str],
        topics: Sequence[str],
        summaries: Sequence[ContentSummary] = (),
    ) -> QueryOptimization:
        """Score a rendered query and suggest improvements."""
        breadth = self.refiner.analyze_breadth(query, summaries)

        specificity = 0.3
        if '"' in query:
            specificity += 0.3
        if " AND " in query or " OR " in query:
            specificity += 0.2
        if len(query) > 50:
            specificity += 0.2
        specificity = min(1.0, specificity)

        term_count = len(keywords) + len(topics)
        academic_count = sum(
            1 for t in [*keywords, *topics] if _has_academic_vocabulary([t])
        )
        academic_relevance = min(1.0, academic_count / max(1, term_count) + 0.2)

        suggestions = [s.suggestion for s in breadth.suggestions]
        if specificity < 0.4:
            suggestions.append("Add more specific terminology or quoted phrases")
        if academic_relevance < 0.5:
            suggestions.append(
                'Add academic terms like "methodology", "framework" or "empirical"'
            )

        alternatives = list(breadth.alternative_queries)
        for candidate in self._keyword_alternatives(keywords, topics):
            if len(alternatives) >= 3:
                break
            if candidate not in alternatives and candidate != query:
                alternatives.append(candidate)

        return QueryOptimization(
            breadth_score=breadth.breadth_score,
            specificity_score=round(specificity, 4),
            academic_relevance=round(academic_relevance, 4),
            breadth_classification=breadth.classification,
            suggestions=suggestions,
            alternative_queries=alternatives[:3],
        )

    @staticmethod
    def _keyword_alternatives(
        keywords: Sequence[str], topics: Sequence[str]
    ) -> List[str]:
        alternatives = []
        if len(keywords) >= 2:
            alternatives.append(" OR ".join(_quote(k) for k in keywords[:4]))
            if topics:
                required = " AND ".join(_quote(k) for k in keywords[:3])
                alternatives.append(f"{required} AND {_quote(topics[0])}")
        if len(topics) >= 2:
            alternatives.append(" AND ".join(_quote(t) for t in topics[:2]))
        if keywords:
            alternatives.append(f"{_quote(keywords[0])} AND {ACADEMIC_CLAUSE}")
        return alternatives
