"""Tests for Prometheus metrics definitions."""

from reference_discovery.observability.metrics import (
    CIRCUIT_STATE,
    CIRCUIT_STATE_VALUES,
    DEGRADED_SEARCHES,
    PROVIDER_REQUEST_DURATION,
    PROVIDER_REQUESTS,
    REGISTRY,
    STAGE_DURATION,
    get_metrics_content_type,
    get_metrics_text,
)


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCounters:
    def test_provider_requests_counter(self):
        labels = {"provider": "crossref", "status": "success"}
        initial = _sample("refdisc_provider_requests_total", **labels)

        PROVIDER_REQUESTS.labels(**labels).inc()

        assert _sample("refdisc_provider_requests_total", **labels) == initial + 1

    def test_degraded_searches_counter(self):
        initial = _sample("refdisc_degraded_searches_total")

        DEGRADED_SEARCHES.inc()

        assert _sample("refdisc_degraded_searches_total") == initial + 1


class TestGauges:
    def test_circuit_state_gauge(self):
        CIRCUIT_STATE.labels(provider="arxiv").set(CIRCUIT_STATE_VALUES["open"])

        assert _sample("refdisc_circuit_state", provider="arxiv") == 2

        CIRCUIT_STATE.labels(provider="arxiv").set(CIRCUIT_STATE_VALUES["closed"])
        assert _sample("refdisc_circuit_state", provider="arxiv") == 0


class TestHistograms:
    def test_stage_duration_timer(self):
        initial = _sample("refdisc_stage_duration_seconds_count", stage="score")

        with STAGE_DURATION.labels(stage="score").time():
            pass

        assert (
            _sample("refdisc_stage_duration_seconds_count", stage="score")
            == initial + 1
        )

    def test_provider_duration_observe(self):
        PROVIDER_REQUEST_DURATION.labels(provider="scholar").observe(0.3)

        assert _sample(
            "refdisc_provider_request_duration_seconds_sum", provider="scholar"
        ) >= 0.3


class TestExposition:
    def test_metrics_text(self):
        PROVIDER_REQUESTS.labels(provider="arxiv", status="failed").inc()

        text = get_metrics_text()

        assert isinstance(text, bytes)
        assert b"refdisc_provider_requests_total" in text
        assert b"refdisc_stage_duration_seconds" in text

    def test_content_type(self):
        assert get_metrics_content_type().startswith("text/plain")
