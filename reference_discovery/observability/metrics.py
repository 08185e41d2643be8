"""Prometheus metrics for the reference discovery pipeline.

Tracks provider traffic and failures, circuit breaker state, degraded
searches, and deduplication/ranking throughput.

Usage:
    PROVIDER_REQUESTS.labels(provider="crossref", status="success").inc()

    with STAGE_DURATION.labels(stage="search").time():
        await client.search(query)
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry so several pipelines and test runs do not collide with the
# process-wide default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

QUERIES_GENERATED = Counter(
    name="refdisc_queries_generated_total",
    documentation="Total search queries generated",
    labelnames=["query_type"],  # basic, combined
    registry=REGISTRY,
)

PROVIDER_REQUESTS = Counter(
    name="refdisc_provider_requests_total",
    documentation="Provider attempts by outcome",
    labelnames=["provider", "status"],  # success, failed, short_circuited
    registry=REGISTRY,
)

PROVIDER_ERRORS = Counter(
    name="refdisc_provider_errors_total",
    documentation="Provider errors by error class",
    labelnames=["provider", "error_type"],  # rate_limit, network, parsing, ...
    registry=REGISTRY,
)

RESULTS_DISCOVERED = Counter(
    name="refdisc_results_discovered_total",
    documentation="Raw results returned by providers",
    labelnames=["provider"],
    registry=REGISTRY,
)

DEGRADED_SEARCHES = Counter(
    name="refdisc_degraded_searches_total",
    documentation="Searches answered with the degraded-mode placeholder",
    registry=REGISTRY,
)

DUPLICATES_MERGED = Counter(
    name="refdisc_duplicates_merged_total",
    documentation="Raw results folded into another record",
    labelnames=["strategy"],  # doi, url, title_author, fuzzy
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

CIRCUIT_STATE = Gauge(
    name="refdisc_circuit_state",
    documentation="Circuit breaker state (0=closed, 1=half_open, 2=open)",
    labelnames=["provider"],
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

PROVIDER_REQUEST_DURATION = Histogram(
    name="refdisc_provider_request_duration_seconds",
    documentation="Duration of a single provider attempt",
    labelnames=["provider"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, float("inf")),
    registry=REGISTRY,
)

STAGE_DURATION = Histogram(
    name="refdisc_stage_duration_seconds",
    documentation="Pipeline stage duration in seconds",
    labelnames=["stage"],  # generate, search, deduplicate, score
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 120, float("inf")),
    registry=REGISTRY,
)

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text exposition format."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
