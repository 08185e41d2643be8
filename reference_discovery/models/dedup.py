"""Data models for duplicate detection and merging."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MergeStrategy = Literal["keep_highest_quality", "keep_most_complete", "manual_review"]


class DedupConfig(BaseModel):
    """Deduplication configuration"""

    model_config = ConfigDict(protected_namespaces=())

    title_similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    author_similarity_threshold: float = Field(0.80, ge=0.0, le=1.0)
    enable_fuzzy_matching: bool = True
    fuzzy_threshold: float = Field(0.8, ge=0.0, le=1.0)
    year_tolerance: int = Field(5, ge=0, le=50)
    strict_doi_matching: bool = Field(
        False, description="Two different DOIs never match on other rules"
    )
    merge_strategy: MergeStrategy = "keep_highest_quality"


class DedupStats(BaseModel):
    """Deduplication statistics"""

    model_config = ConfigDict(protected_namespaces=())

    total_results_checked: int = 0
    groups_found: int = 0
    duplicates_merged: int = 0
    duplicates_by_doi: int = 0
    duplicates_by_url: int = 0
    duplicates_by_title_author: int = 0
    duplicates_by_fuzzy: int = 0
    conflicts_recorded: int = 0

    @property
    def dedup_rate(self) -> float:
        """Share of input records folded into another record"""
        if self.total_results_checked == 0:
            return 0.0
        return self.duplicates_merged / self.total_results_checked
