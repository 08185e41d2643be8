"""Content summary input model.

A ContentSummary is produced outside the pipeline by the document analyzer
and is treated as an opaque, immutable input.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ContentSummary(BaseModel):
    """Structured summary of a user's document or notes."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    content: str = Field(default="", description="Free text of the summary")
    keywords: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    key_phrases: List[str] = Field(
        default_factory=list, description="Multi-word phrases from the analyzer"
    )
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
