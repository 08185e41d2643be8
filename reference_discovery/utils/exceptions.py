"""Exception hierarchy for the reference discovery pipeline.

This module defines the errors raised by each pipeline stage:
- Caller errors (invalid summaries, empty queries)
- Provider search errors, split into retryable and non-retryable classes
- Aggregate failure when every provider is exhausted
- Configuration loading errors

All exceptions inherit from ReferenceDiscoveryError so callers can catch
any pipeline failure in a single except block when needed.
"""

from typing import Dict, Optional


class ReferenceDiscoveryError(Exception):
    """Base exception for all pipeline errors

    Use this to catch any error raised by the pipeline:
    ```python
    try:
        result = await pipeline.run(summaries)
    except ReferenceDiscoveryError as e:
        logger.error("pipeline_failed", error=str(e))
    ```
    """

    pass


class InvalidInputError(ReferenceDiscoveryError, ValueError):
    """Caller supplied unusable input - never retried.

    Raised when:
    - No content summaries are given to query generation
    - No keyword or topic survives stop-word filtering
    - A search is started with an empty query string
    """

    pass


class ConfigValidationError(ReferenceDiscoveryError):
    """Configuration validation failed"""

    pass


class SearchError(ReferenceDiscoveryError):
    """Base for errors raised by a single provider attempt.

    `retryable` tells the retry handler whether another attempt may
    succeed. Subclasses fix it to the value that fits their failure class.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def error_type(self) -> str:
        """Short snake_case name used in logs and metrics."""
        return _ERROR_TYPES.get(type(self), "unknown")


class RateLimitedError(SearchError):
    """Provider rate limit reached, locally or remotely.

    Raised when:
    - The local sliding window is full (before any network call)
    - The provider answers with HTTP 429

    Carries a retry-after hint in seconds.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = 60.0,
    ) -> None:
        super().__init__(message, provider, status_code, retry_after)


class NetworkError(SearchError):
    """Transport-level failure.

    Raised when:
    - The connection fails or is reset
    - The provider returns an unexpected client status (non-retryable)
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, provider, status_code)
        self.retryable = retryable


class SearchTimeoutError(SearchError):
    """Provider did not answer within its per-attempt timeout."""

    pass


class ServiceUnavailableError(SearchError):
    """Provider reported a server-side outage (5xx)."""

    pass


class BlockedError(SearchError):
    """Provider denied access - no retry.

    Raised when:
    - HTTP 403 is returned
    - The page reports automated traffic or a CAPTCHA challenge
    """

    retryable = False


class ParsingError(SearchError):
    """Provider response could not be interpreted - no retry.

    Raised when:
    - The response body is empty or truncated
    - JSON or markup cannot be decoded
    - Most result blocks fail to parse even after the fallback pass
    """

    retryable = False


class QuotaExceededError(SearchError):
    """Provider quota exhausted - no retry."""

    retryable = False


class CircuitOpenError(SearchError):
    """Circuit breaker OPEN - provider short-circuited without I/O.

    Raised when:
    - The provider exceeded its consecutive failure threshold
    - The cool-down window has not yet elapsed
    """

    retryable = False


class AllProvidersFailedError(ReferenceDiscoveryError):
    """Every provider failed and degraded mode is disabled."""

    def __init__(
        self, message: str, provider_errors: Optional[Dict[str, str]] = None
    ) -> None:
        if provider_errors:
            error_details = ", ".join(f"{p}: {e}" for p, e in provider_errors.items())
            message = f"{message} | Provider errors: {error_details}"
        super().__init__(message)
        self.provider_errors = provider_errors or {}


_ERROR_TYPES = {
    SearchError: "search",
    RateLimitedError: "rate_limit",
    NetworkError: "network",
    SearchTimeoutError: "timeout",
    ServiceUnavailableError: "service_unavailable",
    BlockedError: "blocked",
    ParsingError: "parsing",
    QuotaExceededError: "quota_exceeded",
    CircuitOpenError: "circuit_open",
}
