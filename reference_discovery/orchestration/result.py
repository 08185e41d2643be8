"""Pipeline result data structure."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from reference_discovery.models.query import SearchQuery
from reference_discovery.models.scoring import RankedResult


@dataclass
class PipelineResult:
    """Result of a pipeline run.

    Aggregates the output and statistics of all four stages.
    """

    queries: List[SearchQuery] = field(default_factory=list)
    results: List[RankedResult] = field(default_factory=list)
    providers_used: List[str] = field(default_factory=list)
    provider_errors: Dict[str, str] = field(default_factory=dict)
    degraded: bool = False
    success: bool = False
    raw_result_count: int = 0
    merged_result_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "queries": [q.query for q in self.queries],
            "providers_used": self.providers_used,
            "provider_errors": self.provider_errors,
            "degraded": self.degraded,
            "success": self.success,
            "raw_result_count": self.raw_result_count,
            "merged_result_count": self.merged_result_count,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
