"""Prometheus metric helpers."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "kb_requests_total",
    "HTTP requests processed by the API",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "kb_request_latency_seconds",
    "Latency of HTTP requests processed by the API",
    ("method", "path"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

INGESTION_RESULTS = Counter(
    "kb_ingestion_results_total",
    "Outcomes of ingestion requests by pipeline stage",
    ("stage", "status"),
)

EXTRACTION_METHODS = Counter(
    "kb_extraction_methods_total",
    "Completed extractions grouped by the strategy that produced the text",
    ("method",),
)

INDEXING_RESULTS = Counter(
    "kb_indexing_results_total",
    "Indexing trigger outcomes",
    ("status",),
)

BEST_EFFORT_FAILURES = Counter(
    "kb_best_effort_failures_total",
    "Failures absorbed without surfacing to the caller",
    ("operation",),
)


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record counters and histograms for a processed HTTP request."""

    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)


def record_ingestion(stage: str, status: str) -> None:
    INGESTION_RESULTS.labels(stage, status).inc()


def record_extraction(method: str) -> None:
    EXTRACTION_METHODS.labels(method).inc()


def record_indexing_result(status: str) -> None:
    """Increment the indexing outcome counter for the provided status."""

    INDEXING_RESULTS.labels(status).inc()


def record_best_effort_failure(operation: str) -> None:
    BEST_EFFORT_FAILURES.labels(operation).inc()
