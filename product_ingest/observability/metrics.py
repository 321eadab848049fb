"""
Prometheus metrics collection for product-ingest

This module provides metrics instrumentation for monitoring ingestion
volume, validation outcomes, reconciliation changes and chunk timings.
"""
import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry so tests and embedding callers do not collide with
# the process-wide default registry
REGISTRY = CollectorRegistry()


# =======================
# INGEST METRICS
# =======================

records_parsed_total = Counter(
    name="ingest_records_parsed_total",
    documentation="Total number of product records parsed from uploaded files",
    labelnames=["catalog"],
    registry=REGISTRY,
)

parse_failures_total = Counter(
    name="ingest_parse_failures_total",
    documentation="Total number of uploads rejected by the record parser",
    labelnames=["catalog", "reason"],  # reason: empty_sheet, empty_file, row_errors, unreadable
    registry=REGISTRY,
)

records_staged_total = Counter(
    name="ingest_records_staged_total",
    documentation="Total number of staging rows written",
    registry=REGISTRY,
)

batch_size = Histogram(
    name="ingest_batch_size_records",
    documentation="Number of records in each uploaded batch",
    buckets=[10, 50, 100, 500, 1000, 5000, 10000, 50000],
    registry=REGISTRY,
)

# =======================
# VALIDATION METRICS
# =======================

rows_validated_total = Counter(
    name="ingest_rows_validated_total",
    documentation="Total number of staging rows scored by the validation engine",
    labelnames=["state"],  # state: VALID, INVALID
    registry=REGISTRY,
)

validation_failures_total = Counter(
    name="ingest_validation_failures_total",
    documentation="Total number of rows failed per rule",
    labelnames=["rule_name"],
    registry=REGISTRY,
)

# =======================
# RECONCILIATION METRICS
# =======================

chunks_processed_total = Counter(
    name="ingest_chunks_processed_total",
    documentation="Total number of reconciliation chunks attempted",
    labelnames=["status"],  # status: committed, failed
    registry=REGISTRY,
)

chunk_duration_seconds = Histogram(
    name="ingest_chunk_duration_seconds",
    documentation="Time spent reconciling one chunk in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

products_changed_total = Counter(
    name="ingest_products_changed_total",
    documentation="Total number of canonical product inserts, updates and skips",
    labelnames=["change_type"],  # change_type: insert, update, skip
    registry=REGISTRY,
)

# =======================
# BATCH METRICS
# =======================

batches_finished_total = Counter(
    name="ingest_batches_finished_total",
    documentation="Total number of batches reaching a terminal or failed status",
    labelnames=["status"],  # status: COMPLETED, FAILED
    registry=REGISTRY,
)

batches_in_flight = Gauge(
    name="ingest_batches_in_flight",
    documentation="Batches currently being validated or processed in the background",
    registry=REGISTRY,
)

errors_total = Counter(
    name="ingest_errors_total",
    documentation="Total number of errors",
    labelnames=["error_type", "component"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: int | None = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Imported lazily so importing metrics never binds a port
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if value <= 0:
        return
    metric = counter.labels(**labels) if labels else counter
    metric.inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    metric = histogram.labels(**labels) if labels else histogram
    metric.observe(value)


# =======================
# PIPELINE HELPERS
# =======================

def record_chunk(created: int, updated: int, skipped: int, duration_seconds: float) -> None:
    """
    Record one committed reconciliation chunk.

    Args:
        created: Products inserted by the chunk
        updated: Products updated by the chunk
        skipped: Rows that matched the canonical product
        duration_seconds: Time taken to commit the chunk
    """
    increment_counter(chunks_processed_total, 1, status="committed")
    increment_counter(products_changed_total, created, change_type="insert")
    increment_counter(products_changed_total, updated, change_type="update")
    increment_counter(products_changed_total, skipped, change_type="skip")
    observe_histogram(chunk_duration_seconds, duration_seconds)


def record_validation(valid: int, invalid: int, failed_rules: dict[str, int] | None = None) -> None:
    increment_counter(rows_validated_total, valid, state="VALID")
    increment_counter(rows_validated_total, invalid, state="INVALID")
    for rule_name, count in (failed_rules or {}).items():
        increment_counter(validation_failures_total, count, rule_name=rule_name)


def record_error(error_type: str, component: str) -> None:
    increment_counter(errors_total, 1, error_type=error_type, component=component)
