import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
import structlog

from reference_discovery.models.reference import RawResult
from reference_discovery.models.search import SearchOptions
from reference_discovery.utils.exceptions import (
    BlockedError,
    NetworkError,
    ParsingError,
    QuotaExceededError,
    RateLimitedError,
    SearchError,
    SearchTimeoutError,
    ServiceUnavailableError,
)

logger = structlog.get_logger()

DEFAULT_RETRY_AFTER = 60.0
HEALTH_CHECK_QUERY = "machine learning"

# Optional fields whose presence raises a result's confidence
_OPTIONAL_FIELDS = ("journal", "year", "doi", "abstract")


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class ReferenceProvider(ABC):
    """Abstract base class for academic reference providers

    All providers must implement this interface so the search client can
    fan out to any mix of sources (Google Scholar, Semantic Scholar,
    CrossRef, arXiv) and treat their failures the same way.
    """

    # Confidence given to a result with no optional metadata
    base_confidence: float = 0.5

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self.timeout_seconds = timeout_seconds

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging and identification"""
        pass

    @abstractmethod
    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        """Run one search attempt against the provider

        Args:
            query: Rendered boolean query string
            options: Provider-agnostic search options

        Returns:
            At most options.max_results valid results

        Raises:
            SearchError: Classified failure of this attempt
        """
        pass

    async def health_check(self) -> bool:
        """Check the provider with a small fixed query."""
        try:
            await self.execute(HEALTH_CHECK_QUERY, SearchOptions(max_results=1))
        except SearchError as e:
            logger.warning(
                "health_check_failed",
                provider=self.name,
                error_type=e.error_type,
                error=str(e),
            )
            return False
        return True

    async def _fetch(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """GET a provider endpoint and return the body text.

        HTTP and transport failures are mapped onto the SearchError
        hierarchy so the retry handler can classify them.
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status != 200:
                        self._raise_for_status(
                            response.status, response.headers.get("Retry-After")
                        )
                    return await response.text()

        except SearchError:
            raise
        except asyncio.TimeoutError:
            logger.warning("provider_timeout", provider=self.name, url=url)
            raise SearchTimeoutError(
                f"Request timed out after {self.timeout_seconds}s",
                provider=self.name,
            )
        except aiohttp.ClientError as e:
            logger.warning("provider_network_error", provider=self.name, error=str(e))
            raise NetworkError(f"Network error: {e}", provider=self.name)

    async def _fetch_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        text = await self._fetch(url, params=params, headers=headers)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParsingError(
                f"Invalid JSON response: {e}", provider=self.name
            ) from e

    def _raise_for_status(self, status: int, retry_after: Optional[str]) -> None:
        hint = _parse_retry_after(retry_after)

        if status == 429:
            raise RateLimitedError(
                "Rate limit exceeded",
                provider=self.name,
                status_code=status,
                retry_after=hint or DEFAULT_RETRY_AFTER,
            )
        if status == 403:
            raise BlockedError(
                "Access blocked", provider=self.name, status_code=status
            )
        if status == 402:
            raise QuotaExceededError(
                "Quota exceeded", provider=self.name, status_code=status
            )
        if status in (500, 502, 503, 504):
            raise ServiceUnavailableError(
                f"Service unavailable ({status})",
                provider=self.name,
                status_code=status,
                retry_after=hint,
            )
        if status == 404:
            raise NetworkError(
                "Endpoint not found",
                provider=self.name,
                status_code=status,
                retryable=False,
            )

        raise NetworkError(
            f"HTTP {status}",
            provider=self.name,
            status_code=status,
            retryable=status >= 500,
        )

    def _confidence(self, **fields: Any) -> float:
        """Base confidence plus the share of optional fields present."""
        present = sum(1 for name in _OPTIONAL_FIELDS if fields.get(name))
        return min(1.0, self.base_confidence + 0.4 * present / len(_OPTIONAL_FIELDS))

    def _build_result(self, **fields: Any) -> Optional[RawResult]:
        """Build a RawResult, or None when it lacks a title or authors."""
        fields.setdefault("confidence", self._confidence(**fields))
        result = RawResult(provider=self.name, **fields)
        if not result.is_valid:
            return None
        return result
