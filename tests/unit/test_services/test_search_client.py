"""Unit tests for the resilient multi-provider search client"""

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from reference_discovery.models.config import ProviderType, SearchClientConfig
from reference_discovery.models.reference import RawResult
from reference_discovery.models.resilience import (
    CircuitBreakerConfig,
    ProviderSettings,
    RateLimitConfig,
    RetryConfig,
)
from reference_discovery.models.search import SearchContext, SearchOptions
from reference_discovery.services.providers.base import ReferenceProvider
from reference_discovery.services.search_client import (
    DEGRADED_PROVIDER,
    SearchClient,
    create_providers,
    degraded_result,
)
from reference_discovery.utils.circuit_breaker import CircuitState
from reference_discovery.utils.exceptions import (
    AllProvidersFailedError,
    BlockedError,
    InvalidInputError,
    NetworkError,
    ParsingError,
    ServiceUnavailableError,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeProvider(ReferenceProvider):
    """Provider returning canned results or raising queued errors."""

    def __init__(
        self,
        name: str,
        results: Optional[List[RawResult]] = None,
        errors: Optional[List[Exception]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__()
        self._name = name
        self.results = results or []
        self.errors = list(errors or [])
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, query: str, options: SearchOptions) -> List[RawResult]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        if self.error:
            raise self.error
        return self.results


def _result(provider: str, title: str) -> RawResult:
    return RawResult(provider=provider, title=title, authors=["A. Author"])


def _settings(**overrides) -> ProviderSettings:
    values = {
        "retry": RetryConfig(max_attempts=1),
        "circuit_breaker": CircuitBreakerConfig(failure_threshold=5),
    }
    values.update(overrides)
    return ProviderSettings(**values)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def clock():
    return FakeClock()


def _client(provider_list, sleep, clock, **config) -> SearchClient:
    return SearchClient(
        SearchClientConfig(**config),
        providers=provider_list,
        clock=clock,
        sleep=sleep,
        rng=lambda: 0.0,
    )


class TestSearch:
    """Tests for fan-out and result aggregation."""

    @pytest.mark.asyncio
    async def test_results_concatenated_in_provider_order(self, sleep, clock):
        first = FakeProvider("alpha", results=[_result("alpha", "Paper A")])
        second = FakeProvider(
            "beta",
            results=[_result("beta", "Paper B"), _result("beta", "Paper C")],
        )
        client = _client([first, second], sleep, clock)

        outcome = await client.search('"graph theory"')

        assert [r.title for r in outcome.results] == ["Paper A", "Paper B", "Paper C"]
        assert outcome.providers_used == ["alpha", "beta"]
        assert outcome.degraded is False
        assert outcome.provider_errors == {}

    @pytest.mark.asyncio
    async def test_empty_provider_not_listed_as_used(self, sleep, clock):
        empty = FakeProvider("alpha")
        full = FakeProvider("beta", results=[_result("beta", "Paper B")])
        client = _client([empty, full], sleep, clock)

        outcome = await client.search("query")

        assert outcome.providers_used == ["beta"]
        assert outcome.provider_errors == {}

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, sleep, clock):
        client = _client([FakeProvider("alpha")], sleep, clock)
        with pytest.raises(InvalidInputError):
            await client.search("   ")

    @pytest.mark.asyncio
    async def test_partial_failure(self, sleep, clock):
        broken = FakeProvider("alpha", error=ParsingError("bad markup"))
        healthy = FakeProvider("beta", results=[_result("beta", "Paper B")])
        client = _client([broken, healthy], sleep, clock)

        outcome = await client.search("query")

        assert outcome.degraded is False
        assert outcome.provider_errors == {"alpha": "bad markup"}
        assert [r.provider for r in outcome.results] == ["beta"]
        assert broken.calls == 1

    @pytest.mark.asyncio
    async def test_context_accepted(self, sleep, clock):
        provider = FakeProvider("alpha", results=[_result("alpha", "Paper A")])
        client = _client([provider], sleep, clock)

        outcome = await client.search(
            "query", SearchOptions(max_results=5), SearchContext(request_id="req-1")
        )
        assert len(outcome.results) == 1


class TestRetries:
    """Tests for retry behaviour inside one search."""

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, sleep, clock):
        provider = FakeProvider(
            "alpha",
            results=[_result("alpha", "Paper A")],
            errors=[NetworkError("reset")],
        )
        client = SearchClient(
            SearchClientConfig(),
            providers=[provider],
            clock=clock,
            sleep=sleep,
            rng=lambda: 0.0,
        )

        outcome = await client.search("query")

        assert provider.calls == 2
        assert outcome.providers_used == ["alpha"]
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_reported_not_retried(self, sleep, clock):
        provider = FakeProvider("alpha", error=KeyError("missing"))
        client = _client([provider], sleep, clock)

        outcome = await client.search("query")

        assert provider.calls == 1
        assert outcome.provider_errors["alpha"].startswith("Unexpected error:")
        assert outcome.degraded is True

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, sleep, clock):
        provider = FakeProvider("crossref", delay=1.0)
        client = _client(
            [provider],
            sleep,
            clock,
            providers={ProviderType.CROSSREF: _settings(timeout_seconds=0.01)},
        )

        outcome = await client.search("query")

        assert "did not answer" in outcome.provider_errors["crossref"]
        assert client.get_state("crossref").circuit_breaker.consecutive_failures == 1


class TestDegradedMode:
    """Tests for behaviour when every provider fails."""

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, sleep, clock):
        providers = [
            FakeProvider("alpha", error=BlockedError("captcha")),
            FakeProvider("beta", error=ParsingError("bad json")),
        ]
        client = _client(providers, sleep, clock)

        outcome = await client.search("quantum error correction")

        assert outcome.degraded is True
        assert len(outcome.results) == 1
        placeholder = outcome.results[0]
        assert "quantum error correction" in placeholder.title
        assert placeholder.provider == DEGRADED_PROVIDER
        assert placeholder.confidence == 0.1
        assert outcome.providers_used == []
        assert set(outcome.provider_errors) == {"alpha", "beta"}

    @pytest.mark.asyncio
    async def test_degraded_mode_disabled(self, sleep, clock):
        providers = [FakeProvider("alpha", error=BlockedError("captcha"))]
        client = _client(providers, sleep, clock, enable_degraded_mode=False)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await client.search("query")

        assert exc_info.value.provider_errors == {"alpha": "captcha"}

    @pytest.mark.asyncio
    async def test_no_providers_is_degraded(self, sleep, clock):
        client = _client([], sleep, clock)
        outcome = await client.search("query")
        assert outcome.degraded is True

    def test_degraded_result_links_to_scholar(self):
        result = degraded_result('"deep learning" AND (vision)', current_year=2024)

        assert result.year == 2024
        assert result.authors == ["System Message"]
        assert result.url == (
            "https://scholar.google.com/scholar?q=%22deep+learning%22+AND+%28vision%29"
        )


class TestResilienceState:
    """Tests for per-provider rate limiting and circuit breaking."""

    @pytest.mark.asyncio
    async def test_circuit_opens_and_short_circuits(self, sleep, clock):
        provider = FakeProvider("crossref", error=ServiceUnavailableError("503"))
        client = _client(
            [provider],
            sleep,
            clock,
            providers={
                ProviderType.CROSSREF: _settings(
                    circuit_breaker=CircuitBreakerConfig(failure_threshold=2)
                )
            },
        )

        await client.search("query")
        await client.search("query")
        breaker = client.get_state("crossref").circuit_breaker
        assert breaker.state == CircuitState.OPEN

        outcome = await client.search("query")

        assert provider.calls == 2
        assert "OPEN" in outcome.provider_errors["crossref"]
        assert outcome.degraded is True

    @pytest.mark.asyncio
    async def test_circuit_recovers_after_cooldown(self, sleep, clock):
        provider = FakeProvider(
            "crossref",
            results=[_result("crossref", "Paper")],
            errors=[ServiceUnavailableError("503")],
        )
        client = _client(
            [provider],
            sleep,
            clock,
            providers={
                ProviderType.CROSSREF: _settings(
                    circuit_breaker=CircuitBreakerConfig(
                        failure_threshold=1, cooldown_seconds=30
                    )
                )
            },
        )

        await client.search("query")
        clock.now += 31
        outcome = await client.search("query")

        assert outcome.providers_used == ["crossref"]
        assert client.get_state("crossref").circuit_breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_local_rate_limit_does_not_trip_breaker(self, sleep, clock):
        provider = FakeProvider("crossref", results=[_result("crossref", "Paper")])
        client = _client(
            [provider],
            sleep,
            clock,
            providers={
                ProviderType.CROSSREF: _settings(
                    rate_limit=RateLimitConfig(requests_per_minute=1)
                )
            },
        )

        await client.search("query")
        outcome = await client.search("query")

        assert provider.calls == 1
        assert "last minute" in outcome.provider_errors["crossref"]
        assert client.get_state("crossref").circuit_breaker.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_clients_do_not_share_state(self, sleep, clock):
        settings = {
            ProviderType.CROSSREF: _settings(
                rate_limit=RateLimitConfig(requests_per_minute=1)
            )
        }
        first = _client([FakeProvider("crossref")], sleep, clock, providers=settings)
        second = _client([FakeProvider("crossref")], sleep, clock, providers=settings)

        await first.search("query")
        outcome = await second.search("query")

        assert outcome.provider_errors == {}

    def test_disabled_provider_skipped(self, sleep, clock):
        client = _client(
            [FakeProvider("crossref"), FakeProvider("alpha")],
            sleep,
            clock,
            providers={ProviderType.CROSSREF: ProviderSettings(enabled=False)},
        )
        assert client.provider_names == ["alpha"]


class TestOverallTimeout:
    """Tests for the overall search deadline."""

    @pytest.mark.asyncio
    async def test_slow_provider_cancelled(self, sleep, clock):
        slow = FakeProvider("alpha", results=[_result("alpha", "Late")], delay=5.0)
        fast = FakeProvider("beta", results=[_result("beta", "Early")])
        client = _client([slow, fast], sleep, clock, overall_timeout_seconds=0.05)

        outcome = await client.search("query")

        assert [r.title for r in outcome.results] == ["Early"]
        assert "overall timeout" in outcome.provider_errors["alpha"]
        assert outcome.degraded is False


class TestHealthAndStats:
    @pytest.mark.asyncio
    async def test_health_check(self, sleep, clock):
        client = _client(
            [FakeProvider("alpha"), FakeProvider("beta", error=BlockedError("no"))],
            sleep,
            clock,
        )
        assert await client.health_check() == {"alpha": True, "beta": False}

    @pytest.mark.asyncio
    async def test_provider_stats(self, sleep, clock):
        provider = FakeProvider("alpha", results=[_result("alpha", "Paper")])
        client = _client([provider], sleep, clock)
        await client.search("query")

        stats = client.get_provider_stats()["alpha"]
        assert stats["rate_limit"]["requests_last_minute"] == 1
        assert stats["circuit_breaker"]["state"] == "closed"
        assert stats["circuit_breaker"]["total_successes"] == 1


def test_create_providers_default_order():
    providers = create_providers(SearchClientConfig())
    assert [p.name for p in providers] == [
        "scholar",
        "semantic_scholar",
        "crossref",
        "arxiv",
    ]


def test_create_providers_skips_disabled():
    config = SearchClientConfig(
        providers={ProviderType.SCHOLAR: ProviderSettings(enabled=False)}
    )
    assert "scholar" not in [p.name for p in create_providers(config)]


class TestDefaultRetryPath:
    """Searches through the real retry handler with default settings."""

    @pytest.mark.asyncio
    async def test_healthy_provider_with_default_client(self):
        provider = FakeProvider("alpha", results=[_result("alpha", "Paper A")])
        client = SearchClient(providers=[provider])

        outcome = await client.search("deep learning")

        assert [r.title for r in outcome.results] == ["Paper A"]
        assert outcome.providers_used == ["alpha"]
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_transient_failures_retried_and_counted(self, sleep, clock):
        provider = FakeProvider(
            "crossref",
            errors=[NetworkError("reset"), NetworkError("reset")],
            results=[_result("crossref", "Paper A")],
        )
        client = _client(
            [provider],
            sleep,
            clock,
            providers={
                ProviderType.CROSSREF: _settings(
                    retry=RetryConfig(max_attempts=3, jitter=False)
                )
            },
        )

        outcome = await client.search("query")

        assert provider.calls == 3
        assert sleep.await_count == 2
        assert [r.title for r in outcome.results] == ["Paper A"]
        stats = client.get_provider_stats()["crossref"]["circuit_breaker"]
        assert stats["total_failures"] == 2
        assert stats["total_successes"] == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_search_cancels_provider_tasks(self, sleep, clock):
        started = asyncio.Event()
        cancelled = []

        class HangingProvider(FakeProvider):
            async def execute(self, query, options):
                started.set()
                try:
                    await asyncio.sleep(60)
                except asyncio.CancelledError:
                    cancelled.append(self.name)
                    raise
                return []

        client = _client([HangingProvider("alpha")], sleep, clock)
        search = asyncio.create_task(client.search("query"))
        await started.wait()

        search.cancel()
        with pytest.raises(asyncio.CancelledError):
            await search

        assert cancelled == ["alpha"]
