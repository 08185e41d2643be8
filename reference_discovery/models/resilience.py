"""Per-provider call policies used by the search client.

A provider call passes, in order, through its circuit breaker, its
sliding-window rate limiter and its retry loop. Each policy is configured
independently under ``search.providers.<name>`` in the pipeline config.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class RateLimitConfig(BaseModel):
    """Request budget for one provider, enforced over trailing windows."""

    requests_per_minute: int = Field(
        default=10, ge=1, le=10000, description="Requests allowed per trailing minute"
    )
    requests_per_hour: int = Field(
        default=100, ge=1, le=100000, description="Requests allowed per trailing hour"
    )


class RetryConfig(BaseModel):
    """Backoff schedule for transient provider errors.

    The wait before retry n (counting from 1) is
    ``base_delay_seconds * multiplier ** (n - 1)``, optionally stretched by a
    random fraction up to ``jitter_factor``, then clipped to
    ``max_delay_seconds``.
    """

    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Total tries, the first one included"
    )
    base_delay_seconds: float = Field(
        default=1.0, ge=0.0, le=60.0, description="Wait before the first retry"
    )
    multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    max_delay_seconds: float = Field(
        default=30.0, ge=0.0, le=300.0, description="Longest single wait"
    )
    jitter: bool = True
    jitter_factor: float = Field(default=0.3, ge=0.0, le=1.0)


class CircuitBreakerConfig(BaseModel):
    """Thresholds for the closed/open/half-open breaker of one provider."""

    enabled: bool = True
    failure_threshold: int = Field(
        default=5, ge=1, le=50, description="Failures in a row that open the breaker"
    )
    success_threshold: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Half-open successes in a row that close the breaker",
    )
    cooldown_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Time spent open before a trial request is let through",
    )


class ProviderSettings(BaseModel):
    """Everything the search client needs to call one provider."""

    enabled: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)
    api_key: Optional[str] = None
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(
        default_factory=CircuitBreakerConfig
    )

    @field_validator("api_key")
    @classmethod
    def normalize_api_key(cls, value: Optional[str]) -> Optional[str]:
        """Blank keys and unresolved ``${VAR}`` placeholders mean no key."""
        if value is None:
            return None
        value = value.strip()
        if not value or value.startswith("${") or value in ("None", "PLACEHOLDER"):
            return None
        return value
