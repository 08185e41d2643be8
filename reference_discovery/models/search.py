"""Search request and outcome models."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reference_discovery.models.reference import RawResult


class SearchOptions(BaseModel):
    """Provider-agnostic search options."""

    model_config = ConfigDict(frozen=True)

    max_results: int = Field(default=20, ge=1, le=100)
    year_start: Optional[int] = Field(default=None, ge=1900, le=2100)
    year_end: Optional[int] = Field(default=None, ge=1900, le=2100)
    sort_by: Literal["relevance", "date"] = "relevance"
    language: str = Field(default="en", min_length=2, max_length=8)
    include_patents: bool = False

    @model_validator(mode="after")
    def validate_year_range(self) -> "SearchOptions":
        if (
            self.year_start is not None
            and self.year_end is not None
            and self.year_start > self.year_end
        ):
            raise ValueError("year_start must not be after year_end")
        return self


class SearchContext(BaseModel):
    """Identifiers used to correlate log entries of one search."""

    model_config = ConfigDict(frozen=True)

    request_id: Optional[str] = None
    conversation_id: Optional[str] = None
    session_id: Optional[str] = None


class SearchOutcome(BaseModel):
    """Unified result of a multi-provider search"""

    results: List[RawResult] = Field(default_factory=list)
    providers_used: List[str] = Field(default_factory=list)
    degraded: bool = False
    provider_errors: Dict[str, str] = Field(default_factory=dict)
    processing_time_seconds: float = 0.0
