"""Observability for the reference discovery pipeline.

Provides:
- Correlation ID context management for request tracing
- Structured logging with context propagation
- Prometheus metrics for provider health and pipeline throughput
"""

from reference_discovery.observability.context import (
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    correlation_id_context,
)
from reference_discovery.observability.logging import (
    get_logger,
    configure_logging,
    add_correlation_id_processor,
    bind_context,
    clear_context,
)
from reference_discovery.observability.metrics import (
    QUERIES_GENERATED,
    PROVIDER_REQUESTS,
    PROVIDER_ERRORS,
    RESULTS_DISCOVERED,
    DEGRADED_SEARCHES,
    DUPLICATES_MERGED,
    CIRCUIT_STATE,
    PROVIDER_REQUEST_DURATION,
    STAGE_DURATION,
    get_metrics_text,
)

__all__ = [
    # Context
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Logging
    "get_logger",
    "configure_logging",
    "add_correlation_id_processor",
    "bind_context",
    "clear_context",
    # Metrics
    "QUERIES_GENERATED",
    "PROVIDER_REQUESTS",
    "PROVIDER_ERRORS",
    "RESULTS_DISCOVERED",
    "DEGRADED_SEARCHES",
    "DUPLICATES_MERGED",
    "CIRCUIT_STATE",
    "PROVIDER_REQUEST_DURATION",
    "STAGE_DURATION",
    "get_metrics_text",
]
