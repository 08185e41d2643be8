from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reference_discovery.models.dedup import DedupConfig
from reference_discovery.models.query import QueryGenerationOptions
from reference_discovery.models.resilience import ProviderSettings, RateLimitConfig
from reference_discovery.models.scoring import ScoringWeights
from reference_discovery.models.search import SearchOptions


class ProviderType(str, Enum):
    SCHOLAR = "scholar"
    SEMANTIC_SCHOLAR = "semantic_scholar"
    CROSSREF = "crossref"
    ARXIV = "arxiv"


def _default_providers() -> Dict[ProviderType, ProviderSettings]:
    # Public limits of each service, kept conservative for unauthenticated use
    return {
        ProviderType.SCHOLAR: ProviderSettings(
            rate_limit=RateLimitConfig(requests_per_minute=10, requests_per_hour=100)
        ),
        ProviderType.SEMANTIC_SCHOLAR: ProviderSettings(
            rate_limit=RateLimitConfig(requests_per_minute=20, requests_per_hour=1000)
        ),
        ProviderType.CROSSREF: ProviderSettings(
            rate_limit=RateLimitConfig(requests_per_minute=50, requests_per_hour=3000)
        ),
        ProviderType.ARXIV: ProviderSettings(
            rate_limit=RateLimitConfig(requests_per_minute=20, requests_per_hour=1000)
        ),
    }


class SearchClientConfig(BaseModel):
    """Multi-provider search client configuration"""

    overall_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Cap on one search including retries and backoff",
    )
    enable_degraded_mode: bool = Field(
        default=True,
        description="Return a guidance placeholder instead of failing",
    )
    mailto: Optional[str] = Field(
        default=None, description="Contact address sent to CrossRef"
    )
    providers: Dict[ProviderType, ProviderSettings] = Field(
        default_factory=_default_providers
    )

    @field_validator("providers")
    @classmethod
    def fill_missing_providers(
        cls, v: Dict[ProviderType, ProviderSettings]
    ) -> Dict[ProviderType, ProviderSettings]:
        """Providers left out of the config keep their defaults."""
        merged = _default_providers()
        merged.update(v)
        return merged

    @field_validator("mailto")
    @classmethod
    def validate_mailto(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip() or v.startswith("${"):
            return None
        if "@" not in v:
            raise ValueError(f"mailto must be an email address, got: {v}")
        return v.strip()


class ScoringConfig(BaseModel):
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    top_journals_path: Optional[Path] = Field(
        default=None, description="YAML allow-list of top-tier journals"
    )


class PipelineConfig(BaseModel):
    """Root configuration for the reference discovery pipeline"""

    model_config = ConfigDict(extra="forbid")

    query: QueryGenerationOptions = Field(default_factory=QueryGenerationOptions)
    search: SearchClientConfig = Field(default_factory=SearchClientConfig)
    search_options: SearchOptions = Field(default_factory=SearchOptions)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    log_level: str = "INFO"
    json_logs: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
