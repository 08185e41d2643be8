"""Scoring models: weights, per-metric breakdown and the ranked output record."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reference_discovery.models.reference import MergedResult

_DEFAULT_WEIGHTS = {"relevance": 0.5, "quality": 0.3, "confidence": 0.2}


class ScoringWeights(BaseModel):
    """Weights of the three sub-scores in the overall score

    Weights summing to more than 1 are renormalized to sum to exactly 1.
    """

    model_config = ConfigDict(frozen=True)

    relevance: float = Field(default=0.5, ge=0.0)
    quality: float = Field(default=0.3, ge=0.0)
    confidence: float = Field(default=0.2, ge=0.0)

    @model_validator(mode="before")
    @classmethod
    def renormalize(cls, data):
        if not isinstance(data, dict):
            return data
        values = {
            key: float(data.get(key, default))
            for key, default in _DEFAULT_WEIGHTS.items()
        }
        total = sum(values.values())
        if total > 1.0:
            values = {key: value / total for key, value in values.items()}
        return {**data, **values}


class RelevanceBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    text_similarity: float = Field(ge=0.0, le=1.0)
    keyword_match: float = Field(ge=0.0, le=1.0)
    topic_overlap: float = Field(ge=0.0, le=1.0)
    semantic_similarity: float = Field(ge=0.0, le=1.0)


class QualityBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    citation_score: float = Field(ge=0.0, le=1.0)
    recency_score: float = Field(ge=0.0, le=1.0)
    author_authority: float = Field(ge=0.0, le=1.0)
    journal_quality: float = Field(ge=0.0, le=1.0)
    completeness_score: float = Field(ge=0.0, le=1.0)


class ConfidenceBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata_completeness: float = Field(ge=0.0, le=1.0)
    source_reliability: float = Field(ge=0.0, le=1.0)
    extraction_quality: float = Field(ge=0.0, le=1.0)


class ScoringBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    relevance: RelevanceBreakdown
    quality: QualityBreakdown
    confidence: ConfidenceBreakdown


class RankedResult(MergedResult):
    """A merged reference with its scores and 1-based rank."""

    relevance_score: float = Field(ge=0.0, le=1.0)
    quality_score: float = Field(ge=0.0, le=1.0)
    confidence_score: float = Field(ge=0.0, le=1.0)
    overall_score: float = Field(ge=0.0, le=1.0)
    breakdown: ScoringBreakdown
    rank: int = Field(ge=1)
