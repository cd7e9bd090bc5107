"""Prometheus metrics for transaction outcomes, snapshots, report caching and audit delivery"""

from prometheus_client import Counter, Histogram

# Transaction metrics
transaction_counter = Counter(
    "koperasi_transactions_processed_total",
    "Transactions driven to a terminal status",
    ["kind", "status"],  # DEPOSIT | WITHDRAWAL | DISBURSEMENT | INSTALLMENT x APPROVED | REJECTED
)

transaction_latency_histogram = Histogram(
    "koperasi_transaction_processing_seconds",
    "Time spent in the atomic process step",
    ["kind"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

storage_failure_counter = Counter(
    "koperasi_storage_failures_total",
    "Atomic units aborted by the store",
)

# Reporting metrics
snapshot_counter = Counter(
    "koperasi_snapshot_operations_total",
    "Financial snapshot operations",
    ["action"],  # generate | finalize | rejected
)

report_cache_counter = Counter(
    "koperasi_report_cache_total",
    "Report cache lookups",
    ["kind", "result"],  # hit | miss
)

# Audit webhook metrics
audit_latency_histogram = Histogram(
    "audit_webhook_latency_seconds",
    "Audit webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

audit_failure_counter = Counter(
    "audit_delivery_failures_total",
    "Failed audit event deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transaction(kind: str, status: str, duration_seconds: float) -> None:
    """Record outcome and latency of one processed transaction"""
    transaction_counter.labels(kind=kind, status=status).inc()
    transaction_latency_histogram.labels(kind=kind).observe(duration_seconds)


def record_report_cache(kind: str, hit: bool) -> None:
    report_cache_counter.labels(kind=kind, result="hit" if hit else "miss").inc()
