"""
Query breadth analysis and refinement.

Scores a rendered boolean query from 0 (too narrow) to 1 (too broad),
classifies it, and proposes alternative terms, validation feedback,
prioritized recommendations and refined query strings.
"""

import re
from typing import Dict, Iterable, List, Sequence

import structlog

from reference_discovery.models.content import ContentSummary
from reference_discovery.models.query import (
    AlternativeTerms,
    BreadthAnalysis,
    BreadthClassification,
    BreadthSuggestion,
    OptimizationRecommendation,
    QueryRefinement,
    QueryValidation,
    RefinedQuery,
    SpecificityLevel,
    TermSuggestion,
)
from reference_discovery.utils.text import (
    ACADEMIC_TERMS,
    STOP_WORDS,
    count_operators,
    extract_query_terms,
    is_academic_term,
)

logger = structlog.get_logger()

MAX_ALTERNATIVES = 3

SYNONYMS: Dict[str, List[str]] = {
    "research": ["study", "investigation", "inquiry", "examination"],
    "analysis": ["evaluation", "assessment", "review", "examination"],
    "method": ["approach", "technique", "procedure", "methodology"],
    "framework": ["model", "structure", "system", "architecture"],
    "development": ["creation", "construction", "building", "formation"],
    "implementation": ["execution", "deployment", "application", "realization"],
    "evaluation": ["assessment", "analysis", "appraisal", "review"],
    "system": ["framework", "structure", "platform", "architecture"],
}

BROADER_TERMS: Dict[str, List[str]] = {
    "algorithm": ["computation", "method", "approach"],
    "database": ["system", "technology", "storage"],
    "neural network": ["machine learning", "artificial intelligence", "computation"],
    "regression": ["statistics", "analysis", "modeling"],
    "optimization": ["improvement", "enhancement", "method"],
}

NARROWER_TERMS: Dict[str, List[str]] = {
    "machine learning": ["neural networks", "deep learning", "supervised learning"],
    "analysis": ["statistical analysis", "data analysis", "regression analysis"],
    "system": ["database system", "operating system", "information system"],
    "method": ["algorithm", "technique", "procedure"],
    "learning": [
        "supervised learning",
        "unsupervised learning",
        "reinforcement learning",
    ],
    "research": [
        "empirical research",
        "experimental research",
        "qualitative research",
    ],
    "study": ["case study", "longitudinal study", "cross-sectional study"],
}

ACADEMIC_VARIANTS: Dict[str, List[str]] = {
    "study": ["research", "investigation", "empirical study"],
    "method": ["methodology", "approach", "technique"],
    "result": ["findings", "outcomes", "conclusions"],
    "problem": ["challenge", "issue", "research question"],
    "solution": ["approach", "methodology", "framework"],
}


def _quote_all(terms: Iterable[str], operator: str) -> str:
    return f" {operator} ".join(f'"{t}"' for t in terms)


def _dedupe_suggestions(suggestions: List[TermSuggestion]) -> List[TermSuggestion]:
    seen = set()
    unique = []
    for suggestion in suggestions:
        key = suggestion.term.lower()
        if key not in seen:
            seen.add(key)
            unique.append(suggestion)
    return unique


class QueryRefiner:
    """Analyze and refine rendered search queries."""

    def analyze_breadth(
        self, query: str, summaries: Sequence[ContentSummary] = ()
    ) -> BreadthAnalysis:
        """Score and classify how broad a query is.

        Args:
            query: Rendered boolean query string
            summaries: Content the query was derived from; supplies
                related terms for the broadened alternative

        Returns:
            BreadthAnalysis with at least one suggestion and up to three
            alternative query strings
        """
        terms = extract_query_terms(query)
        term_count = len(terms)
        has_quotes = '"' in query
        and_count = count_operators(query, "AND")
        or_count = count_operators(query, "OR")

        score = 0.5
        if term_count <= 1:
            score -= 0.4
        elif term_count <= 2:
            score -= 0.2
        elif term_count >= 8:
            score += 0.3

        if and_count > or_count:
            score -= 0.1
        elif or_count > and_count:
            score += 0.1

        if has_quotes:
            score -= 0.2

        academic_count = sum(1 for t in terms if is_academic_term(t))
        if term_count and academic_count / term_count > 0.5:
            score -= 0.1

        score = round(max(0.0, min(1.0, score)), 4)
        classification = self._classify(score)

        reasoning = f"Query has {term_count} terms with breadth score of {score:.2f}. "
        if classification == "too_narrow":
            reasoning += "It may be too restrictive and miss relevant results."
        elif classification == "too_broad":
            reasoning += "It may return many irrelevant results."
        else:
            reasoning += "It balances specificity and breadth."

        alternative_terms = self.generate_alternative_terms(query, summaries)
        analysis = BreadthAnalysis(
            breadth_score=score,
            classification=classification,
            reasoning=reasoning,
            term_count=term_count,
            specificity_level=self._specificity_level(score),
            suggestions=self._breadth_suggestions(
                classification, term_count, has_quotes, and_count, or_count
            ),
            alternative_queries=self._breadth_alternatives(query, alternative_terms),
        )

        logger.debug(
            "breadth_analyzed",
            breadth_score=score,
            classification=classification,
            term_count=term_count,
        )
        return analysis

    @staticmethod
    def _classify(score: float) -> BreadthClassification:
        if score < 0.3:
            return "too_narrow"
        if score > 0.7:
            return "too_broad"
        return "optimal"

    @staticmethod
    def _specificity_level(score: float) -> SpecificityLevel:
        if score < 0.2:
            return "very_specific"
        if score < 0.4:
            return "specific"
        if score < 0.6:
            return "moderate"
        if score < 0.8:
            return "broad"
        return "very_broad"

    def _breadth_suggestions(
        self,
        classification: BreadthClassification,
        term_count: int,
        has_quotes: bool,
        and_count: int,
        or_count: int,
    ) -> List[BreadthSuggestion]:
        suggestions: List[BreadthSuggestion] = []

        if classification == "too_narrow":
            if term_count <= 2:
                suggestions.append(
                    BreadthSuggestion(
                        type="broaden",
                        suggestion="Add related terms or synonyms to widen the results",
                        reasoning="Very few meaningful terms make it restrictive",
                        priority="high",
                    )
                )
            if and_count > 2:
                suggestions.append(
                    BreadthSuggestion(
                        type="broaden",
                        suggestion="Replace some AND operators with OR",
                        reasoning="Many AND operators require every concept at once",
                        priority="medium",
                    )
                )
            if has_quotes:
                suggestions.append(
                    BreadthSuggestion(
                        type="broaden",
                        suggestion="Unquote some phrases to allow variations",
                        reasoning="Quoted phrases only match exact wording",
                        priority="medium",
                    )
                )
            if not suggestions:
                suggestions.append(
                    BreadthSuggestion(
                        type="broaden",
                        suggestion="Use more general terms for the core concept",
                        reasoning="The current terms are too specific to match much",
                        priority="medium",
                    )
                )
        elif classification == "too_broad":
            if term_count >= 8:
                suggestions.append(
                    BreadthSuggestion(
                        type="narrow",
                        suggestion="Focus on the 3-5 most important terms",
                        reasoning="Too many terms dilute the search focus",
                        priority="high",
                    )
                )
            if or_count > and_count:
                suggestions.append(
                    BreadthSuggestion(
                        type="narrow",
                        suggestion="Use AND to require several concepts together",
                        reasoning="OR groups admit results matching any single term",
                        priority="medium",
                    )
                )
            suggestions.append(
                BreadthSuggestion(
                    type="narrow",
                    suggestion="Add specific academic or methodological keywords",
                    reasoning="Specific terminology filters out unrelated results",
                    priority="medium",
                )
            )
        else:
            suggestions.append(
                BreadthSuggestion(
                    type="refocus",
                    suggestion="Adjust terms after reviewing the first results",
                    reasoning="Breadth is appropriate for academic search",
                    priority="low",
                )
            )
        return suggestions

    def generate_alternative_terms(
        self, query: str, summaries: Sequence[ContentSummary] = ()
    ) -> AlternativeTerms:
        """Collect synonyms, related, broader, narrower and academic terms."""
        terms = extract_query_terms(query)
        content_terms = [
            t
            for summary in summaries
            for t in [*summary.keywords, *summary.topics]
            if len(t) > 2 and t.lower() not in STOP_WORDS
        ]

        synonyms: List[TermSuggestion] = []
        related: List[TermSuggestion] = []
        broader: List[TermSuggestion] = []
        narrower: List[TermSuggestion] = []
        academic: List[TermSuggestion] = []

        for term in terms:
            synonyms += [
                TermSuggestion(
                    term=s,
                    type="synonym",
                    confidence=0.8,
                    reasoning=f'Synonym for "{term}"',
                )
                for s in SYNONYMS.get(term, [])
            ]
            related += [
                TermSuggestion(
                    term=r,
                    type="related",
                    confidence=0.7,
                    reasoning=f'Appears alongside "{term}" in the source content',
                )
                for r in [c for c in content_terms if c.lower() != term][:5]
            ]
            broader += [
                TermSuggestion(
                    term=b,
                    type="broader",
                    confidence=0.6,
                    reasoning=f'Broader concept encompassing "{term}"',
                )
                for b in BROADER_TERMS.get(term, [])
            ]
            narrower += [
                TermSuggestion(
                    term=n,
                    type="narrower",
                    confidence=0.7,
                    reasoning=f'More specific aspect of "{term}"',
                )
                for n in NARROWER_TERMS.get(term, [])
            ]
            academic += [
                TermSuggestion(
                    term=a,
                    type="academic_variant",
                    confidence=0.9,
                    reasoning=f'Academic terminology for "{term}"',
                )
                for a in ACADEMIC_VARIANTS.get(term, [])
            ]

        return AlternativeTerms(
            synonyms=_dedupe_suggestions(synonyms)[:10],
            related_terms=_dedupe_suggestions(related)[:10],
            broader_terms=_dedupe_suggestions(broader)[:8],
            narrower_terms=_dedupe_suggestions(narrower)[:8],
            academic_variants=_dedupe_suggestions(academic)[:6],
        )

    def validate_query(self, query: str) -> QueryValidation:
        """Check a query for length problems and missing academic cues."""
        issues: List[str] = []
        suggestions: List[str] = []
        confidence = 1.0

        if len(query) < 10:
            issues.append("Query is too short to be specific")
            suggestions.append("Add more specific terms or phrases")
            confidence -= 0.3
        if len(query) > 200:
            issues.append("Query is too long and may be overly restrictive")
            suggestions.append("Remove less important terms or use broader concepts")
            confidence -= 0.2

        lowered = query.lower()
        if not any(term in lowered for term in ACADEMIC_TERMS):
            suggestions.append(
                'Consider adding academic terms like "research", "study" or "analysis"'
            )
            confidence -= 0.1

        if "AND" not in query and "OR" not in query and '"' not in query:
            suggestions.append("Use AND/OR operators or quoted phrases for precision")
            confidence -= 0.1

        return QueryValidation(
            is_valid=not issues,
            issues=issues,
            suggestions=suggestions,
            confidence=round(max(0.0, confidence), 4),
        )

    def refine_query(
        self, query: str, summaries: Sequence[ContentSummary] = ()
    ) -> QueryRefinement:
        """Run every refinement analysis on one query."""
        breadth = self.analyze_breadth(query, summaries)
        alternative_terms = self.generate_alternative_terms(query, summaries)
        refinement = QueryRefinement(
            original_query=query,
            breadth_analysis=breadth,
            alternative_terms=alternative_terms,
            validation=self.validate_query(query),
            recommendations=self._recommendations(query, breadth),
            refined_queries=self._refined_queries(query, breadth, alternative_terms),
        )
        logger.info(
            "query_refined",
            classification=breadth.classification,
            recommendations=len(refinement.recommendations),
            refined_queries=len(refinement.refined_queries),
        )
        return refinement

    def _recommendations(
        self, query: str, breadth: BreadthAnalysis
    ) -> List[OptimizationRecommendation]:
        terms = extract_query_terms(query)
        recommendations: List[OptimizationRecommendation] = []

        if breadth.classification == "too_narrow":
            recommendations.append(
                OptimizationRecommendation(
                    type="add_term",
                    description="Add broader or alternative terms",
                    impact="high",
                    before=query,
                    after=f"{query} OR (related terms)",
                    reasoning="The query is too restrictive",
                )
            )
            if "AND" in query:
                recommendations.append(
                    OptimizationRecommendation(
                        type="replace_term",
                        description="Replace some AND operators with OR",
                        impact="medium",
                        before=query,
                        after=re.sub(r"\bAND\b", "OR", query),
                        reasoning="Multiple AND conditions over-restrict the search",
                    )
                )
        elif breadth.classification == "too_broad":
            recommendations.append(
                OptimizationRecommendation(
                    type="add_term",
                    description="Add specific academic or methodological terms",
                    impact="high",
                    before=query,
                    after=f"{query} AND (methodology OR framework)",
                    reasoning="The query needs more specificity",
                )
            )
            if len(terms) > 6:
                recommendations.append(
                    OptimizationRecommendation(
                        type="remove_term",
                        description="Remove less important terms",
                        impact="medium",
                        before=query,
                        after=_quote_all(terms[:4], "AND"),
                        reasoning="Too many terms dilute the search",
                    )
                )

        if not any(is_academic_term(t) for t in terms):
            recommendations.append(
                OptimizationRecommendation(
                    type="add_term",
                    description="Add academic context terms",
                    impact="medium",
                    before=query,
                    after=f"({query}) AND (research OR study OR analysis)",
                    reasoning="Academic terms improve scholarly relevance",
                )
            )

        if "AND" not in query and "OR" not in query and len(terms) > 1:
            recommendations.append(
                OptimizationRecommendation(
                    type="add_operator",
                    description="Add operators to clarify term relationships",
                    impact="medium",
                    before=query,
                    after=_quote_all(terms, "AND"),
                    reasoning="Operators give more control over matching",
                )
            )

        if len(query) > 150:
            recommendations.append(
                OptimizationRecommendation(
                    type="restructure",
                    description="Shorten the query for search engine compatibility",
                    impact="low",
                    before=query,
                    after=self._operator_optimized(query),
                    reasoning="Very long queries are often truncated by providers",
                )
            )
        return recommendations

    def _broadened(self, query: str, terms: AlternativeTerms) -> str:
        extra = [s.term for s in terms.synonyms[:3]] or [
            r.term for r in terms.related_terms[:3]
        ]
        if not extra:
            return query
        return f"({query}) OR ({_quote_all(extra, 'OR')})"

    def _narrowed(self, query: str, terms: AlternativeTerms) -> str:
        qualifiers = [a.term for a in terms.academic_variants[:2]]
        if qualifiers:
            return f"({query}) AND ({_quote_all(qualifiers, 'OR')})"
        return f"({query}) AND (methodology OR framework)"

    def _academic_enhanced(self, query: str, terms: AlternativeTerms) -> str:
        variants = [a.term for a in terms.academic_variants[:2]]

        def substitute(match: "re.Match[str]") -> str:
            word = match.group(0)
            if word in ("AND", "OR", "NOT"):
                return word
            for variant in variants:
                if word.lower() in variant.lower() and word.lower() != variant.lower():
                    return f'"{variant}"'
            return word

        enhanced = re.sub(r"\b\w+\b", substitute, query) if variants else query
        if enhanced == query:
            return f"({query}) AND (research OR study)"
        return enhanced

    @staticmethod
    def _operator_optimized(query: str) -> str:
        terms = extract_query_terms(query)
        if len(terms) <= 1:
            return query
        optimized = _quote_all(terms[:2], "AND")
        if terms[2:4]:
            optimized += f" AND ({_quote_all(terms[2:4], 'OR')})"
        return optimized

    def _breadth_alternatives(self, query: str, terms: AlternativeTerms) -> List[str]:
        candidates = [
            self._broadened(query, terms),
            self._narrowed(query, terms),
            self._academic_enhanced(query, terms),
        ]
        alternatives: List[str] = []
        for candidate in candidates:
            if candidate != query and candidate not in alternatives:
                alternatives.append(candidate)
        return alternatives[:MAX_ALTERNATIVES]

    def _refined_queries(
        self, query: str, breadth: BreadthAnalysis, terms: AlternativeTerms
    ) -> List[RefinedQuery]:
        classification = breadth.classification
        candidates: List[RefinedQuery] = []

        if classification in ("too_narrow", "optimal"):
            candidates.append(
                RefinedQuery(
                    query=self._broadened(query, terms),
                    refinement_type="broadened",
                    description="Broadened with synonyms and related terms",
                    expected_results="more",
                    confidence=0.8,
                )
            )
        if classification in ("too_broad", "optimal"):
            candidates.append(
                RefinedQuery(
                    query=self._narrowed(query, terms),
                    refinement_type="narrowed",
                    description="Narrowed with academic qualifiers",
                    expected_results="fewer",
                    confidence=0.9,
                )
            )
        candidates.append(
            RefinedQuery(
                query=self._academic_enhanced(query, terms),
                refinement_type="academic_enhanced",
                description="Enhanced with academic terminology",
                expected_results="similar",
                confidence=0.85,
            )
        )
        candidates.append(
            RefinedQuery(
                query=self._operator_optimized(query),
                refinement_type="operator_optimized",
                description="Rebalanced operators and structure",
                expected_results="similar",
                confidence=0.75,
            )
        )

        refined: List[RefinedQuery] = []
        seen = {query}
        for candidate in candidates:
            if candidate.query not in seen:
                seen.add(candidate.query)
                refined.append(candidate)
        return refined[:MAX_ALTERNATIVES]
