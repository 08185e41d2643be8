"""Reference records produced by search and deduplication.

- RawResult: one provider hit, before deduplication
- DuplicateGroup: transient grouping used while merging
- MergedResult: one distinct paper after deduplication, with provenance
"""

import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MatchStrategy = Literal["doi", "url", "title_author", "fuzzy"]


def _new_result_id() -> str:
    return f"res_{uuid.uuid4().hex}"


class RawResult(BaseModel):
    """A single reference as reported by one provider."""

    model_config = ConfigDict(frozen=True)

    result_id: str = Field(default_factory=_new_result_id)
    provider: str
    title: str = ""
    authors: List[str] = Field(default_factory=list)
    journal: Optional[str] = None
    year: Optional[int] = None
    citations: Optional[int] = Field(default=None, ge=0)
    doi: Optional[str] = None
    url: Optional[str] = None
    abstract: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)

    @property
    def is_valid(self) -> bool:
        """Title and at least one author are required."""
        return bool(self.title.strip()) and any(a.strip() for a in self.authors)


class DuplicateGroup(BaseModel):
    """Records judged to describe the same paper."""

    primary: RawResult
    duplicates: List[RawResult] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    strategy: MatchStrategy

    @property
    def members(self) -> List[RawResult]:
        return [self.primary, *self.duplicates]


class ConflictValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any
    source: str = Field(description="result_id of the record holding this value")
    confidence: float = Field(ge=0.0, le=1.0)


class FieldConflict(BaseModel):
    """Disagreeing candidate values for one field of a merged record."""

    model_config = ConfigDict(frozen=True)

    field: str
    values: List[ConflictValue]
    suggested_resolution: Any = None


class MergedResult(RawResult):
    """One distinct paper after deduplication.

    `merged_from` lists the result ids folded into this record, in input
    order. `field_sources` maps each resolved field to the result id that
    supplied its value; fields built from several records (authors,
    keywords, averaged scores) are omitted.
    """

    providers: List[str] = Field(default_factory=list)
    merged_from: List[str] = Field(default_factory=list)
    merge_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    conflicting_fields: List[str] = Field(default_factory=list)
    conflicts: List[FieldConflict] = Field(default_factory=list)
    field_sources: Dict[str, str] = Field(default_factory=dict)
