"""Query generation and refinement models.

This module defines the data structures for:
- Query generation options and the generated SearchQuery
- The optimization report attached to each query
- Breadth analysis and full query refinement results
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from reference_discovery.models.content import ContentSummary

CombineStrategy = Literal["union", "intersection", "weighted"]
BreadthClassification = Literal["too_narrow", "optimal", "too_broad"]
SpecificityLevel = Literal[
    "very_specific", "specific", "moderate", "broad", "very_broad"
]
Priority = Literal["high", "medium", "low"]


class QueryGenerationOptions(BaseModel):
    """Options for query generation

    max_keywords/max_topics default to 8/5 for single-summary queries and
    10/6 for combined queries when left unset.
    """

    max_keywords: Optional[int] = Field(default=None, ge=1, le=50)
    max_topics: Optional[int] = Field(default=None, ge=0, le=20)
    combine_strategy: CombineStrategy = "weighted"
    include_alternatives: bool = False
    optimize_for_academic: bool = True
    max_query_length: int = Field(default=150, ge=20, le=1000)


class BreadthSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["broaden", "narrow", "refocus"]
    suggestion: str
    reasoning: str
    priority: Priority = "medium"
    example: Optional[str] = None


class BreadthAnalysis(BaseModel):
    """How broad a rendered query is, with suggestions to fix it."""

    model_config = ConfigDict(frozen=True)

    breadth_score: float = Field(ge=0.0, le=1.0)
    classification: BreadthClassification
    reasoning: str
    term_count: int = Field(ge=0)
    specificity_level: SpecificityLevel
    suggestions: List[BreadthSuggestion] = Field(default_factory=list)
    alternative_queries: List[str] = Field(default_factory=list, max_length=3)


class QueryOptimization(BaseModel):
    """Optimization report attached to a generated query."""

    model_config = ConfigDict(frozen=True)

    breadth_score: float = Field(ge=0.0, le=1.0)
    specificity_score: float = Field(ge=0.0, le=1.0)
    academic_relevance: float = Field(ge=0.0, le=1.0)
    breadth_classification: BreadthClassification = "optimal"
    suggestions: List[str] = Field(default_factory=list)
    alternative_queries: List[str] = Field(default_factory=list, max_length=3)


class SearchQuery(BaseModel):
    """A rendered, provider-agnostic search query."""

    model_config = ConfigDict(frozen=True)

    id: str
    query: str = Field(min_length=1)
    original_content: List[ContentSummary] = Field(default_factory=list)
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    confidence: float = Field(ge=0.0, le=1.0)
    keywords: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    query_type: Literal["basic", "combined"] = "basic"
    optimization: QueryOptimization


class TermSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str
    type: Literal["synonym", "related", "broader", "narrower", "academic_variant"]
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str


class AlternativeTerms(BaseModel):
    model_config = ConfigDict(frozen=True)

    synonyms: List[TermSuggestion] = Field(default_factory=list)
    related_terms: List[TermSuggestion] = Field(default_factory=list)
    broader_terms: List[TermSuggestion] = Field(default_factory=list)
    narrower_terms: List[TermSuggestion] = Field(default_factory=list)
    academic_variants: List[TermSuggestion] = Field(default_factory=list)


class QueryValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class OptimizationRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[
        "add_term", "remove_term", "replace_term", "add_operator", "restructure"
    ]
    description: str
    impact: Priority
    before: str
    after: str
    reasoning: str


class RefinedQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    refinement_type: Literal[
        "broadened", "narrowed", "academic_enhanced", "operator_optimized", "refocused"
    ]
    description: str
    expected_results: Literal["more", "fewer", "similar"]
    confidence: float = Field(ge=0.0, le=1.0)


class QueryRefinement(BaseModel):
    """Full refinement report for one query string."""

    model_config = ConfigDict(frozen=True)

    original_query: str
    breadth_analysis: BreadthAnalysis
    alternative_terms: AlternativeTerms
    validation: QueryValidation
    recommendations: List[OptimizationRecommendation] = Field(default_factory=list)
    refined_queries: List[RefinedQuery] = Field(default_factory=list, max_length=3)
