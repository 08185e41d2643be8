"""Resilient multi-provider search client.

Fans a query out to every enabled provider concurrently. Each provider is
guarded by its own rate limiter, circuit breaker and retry policy, all
owned by the client instance. When every provider fails the client answers
with a degraded-mode placeholder instead of raising, unless degraded mode
is disabled.
"""

import asyncio
import random
import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote_plus

import structlog

from reference_discovery.models.config import ProviderType, SearchClientConfig
from reference_discovery.models.reference import RawResult
from reference_discovery.models.resilience import ProviderSettings
from reference_discovery.models.search import (
    SearchContext,
    SearchOptions,
    SearchOutcome,
)
from reference_discovery.observability.metrics import (
    DEGRADED_SEARCHES,
    PROVIDER_ERRORS,
    PROVIDER_REQUEST_DURATION,
    PROVIDER_REQUESTS,
    RESULTS_DISCOVERED,
)
from reference_discovery.services.providers.arxiv import ArxivProvider
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.services.providers.crossref import CrossRefProvider
from reference_discovery.services.providers.scholar_scrape import ScholarScrapeProvider
from reference_discovery.services.providers.semantic_scholar import (
    SemanticScholarProvider,
)
from reference_discovery.utils.circuit_breaker import CircuitBreaker
from reference_discovery.utils.exceptions import (
    AllProvidersFailedError,
    CircuitOpenError,
    InvalidInputError,
    RateLimitedError,
    SearchError,
    SearchTimeoutError,
)
from reference_discovery.utils.rate_limiter import RateLimiter
from reference_discovery.utils.retry import RetryHandler

logger = structlog.get_logger()

DEGRADED_PROVIDER = "degraded_mode"


def create_providers(config: SearchClientConfig) -> List[ReferenceProvider]:
    """Instantiate the enabled built-in providers in a fixed order."""
    providers: List[ReferenceProvider] = []
    for provider_type, settings in config.providers.items():
        if not settings.enabled:
            continue
        if provider_type == ProviderType.SCHOLAR:
            providers.append(ScholarScrapeProvider(settings.timeout_seconds))
        elif provider_type == ProviderType.SEMANTIC_SCHOLAR:
            providers.append(
                SemanticScholarProvider(settings.api_key, settings.timeout_seconds)
            )
        elif provider_type == ProviderType.CROSSREF:
            providers.append(CrossRefProvider(config.mailto, settings.timeout_seconds))
        elif provider_type == ProviderType.ARXIV:
            providers.append(ArxivProvider(settings.timeout_seconds))
    return providers


def degraded_result(query: str, current_year: Optional[int] = None) -> RawResult:
    """Placeholder returned when no provider could answer."""
    return RawResult(
        provider=DEGRADED_PROVIDER,
        title=f'Search temporarily unavailable: "{query}"',
        authors=["System Message"],
        journal="Reference Discovery",
        year=current_year or datetime.now().year,
        citations=0,
        url=f"https://scholar.google.com/scholar?q={quote_plus(query)}",
        abstract=(
            "Academic search providers are temporarily unavailable. "
            "Try again in a few minutes, search Google Scholar directly "
            "using the link provided, or rephrase the query with more "
            "specific keywords."
        ),
        confidence=0.1,
        relevance=0.1,
    )


class ProviderState:
    """Resilience state of one provider, owned by a single SearchClient."""

    def __init__(
        self,
        provider: ReferenceProvider,
        settings: ProviderSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.rate_limiter = RateLimiter(settings.rate_limit, provider.name, clock)
        self.circuit_breaker = CircuitBreaker(
            provider.name, settings.circuit_breaker, clock
        )
        self.retry_handler = RetryHandler(settings.retry, sleep=sleep, rng=rng)

    @property
    def name(self) -> str:
        return self.provider.name

    def get_stats(self) -> Dict:
        return {
            "rate_limit": self.rate_limiter.get_status(),
            "circuit_breaker": self.circuit_breaker.get_stats(),
        }


class SearchClient:
    """Concurrent search across providers with graceful degradation

    Example:
        client = SearchClient(config)
        outcome = await client.search('"machine learning" AND (healthcare)')
        for result in outcome.results:
            print(result.provider, result.title)
    """

    def __init__(
        self,
        config: Optional[SearchClientConfig] = None,
        providers: Optional[List[ReferenceProvider]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.config = config or SearchClientConfig()
        if providers is None:
            providers = create_providers(self.config)

        self._states: Dict[str, ProviderState] = {}
        for provider in providers:
            settings = self._settings_for(provider.name)
            if not settings.enabled:
                continue
            self._states[provider.name] = ProviderState(
                provider, settings, clock=clock, sleep=sleep, rng=rng
            )

        logger.info("search_client_initialized", providers=list(self._states))

    def _settings_for(self, name: str) -> ProviderSettings:
        for provider_type, settings in self.config.providers.items():
            if provider_type.value == name:
                return settings
        return ProviderSettings()

    @property
    def provider_names(self) -> List[str]:
        return list(self._states)

    def get_state(self, name: str) -> ProviderState:
        return self._states[name]

    async def search(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        context: Optional[SearchContext] = None,
    ) -> SearchOutcome:
        """Search every enabled provider concurrently.

        Args:
            query: Rendered boolean query string
            options: Search options shared by all providers
            context: Identifiers bound to every log entry of this search

        Returns:
            SearchOutcome with concatenated results in provider order

        Raises:
            InvalidInputError: Query is empty
            AllProvidersFailedError: Every provider failed and degraded
                mode is disabled
        """
        if not query or not query.strip():
            raise InvalidInputError("Search query cannot be empty")

        options = options or SearchOptions()
        log = logger.bind(query=query)
        if context:
            log = log.bind(**context.model_dump(exclude_none=True))

        start = time.perf_counter()
        log.info("search_started", providers=list(self._states))

        outcomes = await self._run_providers(query, options)

        results: List[RawResult] = []
        providers_used: List[str] = []
        provider_errors: Dict[str, str] = {}
        for name in self._states:
            provider_results, error = outcomes[name]
            if error is not None:
                provider_errors[name] = error
                continue
            if provider_results:
                providers_used.append(name)
                results.extend(provider_results)

        degraded = False
        if len(provider_errors) == len(self._states):
            if not self.config.enable_degraded_mode:
                log.error("all_providers_failed", provider_errors=provider_errors)
                raise AllProvidersFailedError(
                    "All search providers failed", provider_errors
                )
            log.warning("search_degraded", provider_errors=provider_errors)
            DEGRADED_SEARCHES.inc()
            results = [degraded_result(query)]
            degraded = True

        elapsed = time.perf_counter() - start
        log.info(
            "search_completed",
            result_count=len(results),
            providers_used=providers_used,
            failed_providers=list(provider_errors),
            degraded=degraded,
            duration_seconds=round(elapsed, 3),
        )

        return SearchOutcome(
            results=results,
            providers_used=providers_used,
            degraded=degraded,
            provider_errors=provider_errors,
            processing_time_seconds=elapsed,
        )

    async def _run_providers(
        self, query: str, options: SearchOptions
    ) -> Dict[str, Tuple[List[RawResult], Optional[str]]]:
        """Run one task per provider under the overall timeout."""
        tasks = {
            name: asyncio.create_task(self._search_provider(state, query, options))
            for name, state in self._states.items()
        }
        if not tasks:
            return {}

        try:
            done, pending = await asyncio.wait(
                tasks.values(), timeout=self.config.overall_timeout_seconds
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: Dict[str, Tuple[List[RawResult], Optional[str]]] = {}
        for name, task in tasks.items():
            if task in pending:
                logger.warning(
                    "provider_search_cancelled",
                    provider=name,
                    timeout_seconds=self.config.overall_timeout_seconds,
                )
                PROVIDER_ERRORS.labels(provider=name, error_type="timeout").inc()
                outcomes[name] = (
                    [],
                    f"Search exceeded overall timeout of "
                    f"{self.config.overall_timeout_seconds}s",
                )
            else:
                outcomes[name] = task.result()
        return outcomes

    async def _search_provider(
        self, state: ProviderState, query: str, options: SearchOptions
    ) -> Tuple[List[RawResult], Optional[str]]:
        """Search one provider with retries; failures become an error message."""

        async def attempt() -> List[RawResult]:
            return await self._attempt(state, query, options)

        try:
            results = await state.retry_handler.execute(attempt)
        except SearchError as e:
            logger.warning(
                "provider_search_failed",
                provider=state.name,
                error_type=e.error_type,
                error=str(e),
            )
            return [], str(e)
        except Exception as e:
            logger.exception("provider_unexpected_error", provider=state.name)
            PROVIDER_ERRORS.labels(provider=state.name, error_type="unexpected").inc()
            return [], f"Unexpected error: {e}"
        else:
            RESULTS_DISCOVERED.labels(provider=state.name).inc(len(results))
            return results, None

    async def _attempt(
        self, state: ProviderState, query: str, options: SearchOptions
    ) -> List[RawResult]:
        """One provider attempt: breaker check, rate limit, then I/O."""
        name = state.name
        try:
            state.circuit_breaker.check_or_raise()
            state.rate_limiter.acquire()
        except (CircuitOpenError, RateLimitedError) as e:
            PROVIDER_REQUESTS.labels(provider=name, status="short_circuited").inc()
            PROVIDER_ERRORS.labels(provider=name, error_type=e.error_type).inc()
            raise

        start = time.perf_counter()
        try:
            results = await asyncio.wait_for(
                state.provider.execute(query, options),
                timeout=state.settings.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._record_failure(state, "timeout")
            raise SearchTimeoutError(
                f"Provider did not answer within {state.settings.timeout_seconds}s",
                provider=name,
            )
        except SearchError as e:
            self._record_failure(state, e.error_type)
            raise
        finally:
            PROVIDER_REQUEST_DURATION.labels(provider=name).observe(
                time.perf_counter() - start
            )

        state.circuit_breaker.record_success()
        PROVIDER_REQUESTS.labels(provider=name, status="success").inc()
        return results

    def _record_failure(self, state: ProviderState, error_type: str) -> None:
        state.circuit_breaker.record_failure()
        PROVIDER_REQUESTS.labels(provider=state.name, status="failed").inc()
        PROVIDER_ERRORS.labels(provider=state.name, error_type=error_type).inc()

    async def health_check(self) -> Dict[str, bool]:
        """Health-check every enabled provider concurrently."""
        names = list(self._states)
        checks = await asyncio.gather(
            *(self._states[name].provider.health_check() for name in names)
        )
        health = dict(zip(names, checks))
        logger.info("health_check_completed", health=health)
        return health

    def get_provider_stats(self) -> Dict[str, Dict]:
        return {name: state.get_stats() for name, state in self._states.items()}
