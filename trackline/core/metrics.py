"""Prometheus metrics for the ingestion API and the worker."""

from shared.metrics import get_counter, get_gauge, get_histogram

SERVICE = "trackline"

# Ingestion
INGEST_REQUESTS = get_counter("ingest_requests_total", "Track requests", SERVICE)
INGEST_EVENTS = get_counter(
    "ingest_events_total", "Raw events received (after truncation)", SERVICE
)
INGEST_TRUNCATED = get_counter(
    "ingest_truncated_total", "Raw events dropped by the batch cap", SERVICE
)
EVENTS_SKIPPED = get_counter(
    "events_skipped_total", "Events dropped before dispatch", SERVICE, ["reason"]
)
INGEST_LATENCY = get_histogram(
    "ingest_request_latency_seconds", "Track request latency", SERVICE
)
RATE_LIMITED = get_counter(
    "ingest_rate_limited_total", "Track requests refused by the rate limit", SERVICE
)

# Enrichment
LOOKUP_FAILURES = get_counter(
    "lookup_failures_total", "Soft failures of external lookups", SERVICE, ["lookup"]
)

# Dispatch
DISPATCHED = get_counter(
    "dispatched_total", "Events handed off, by path", SERVICE, ["path"]
)
FALLBACK_DEPTH = get_gauge(
    "fallback_buffer_depth", "Events waiting in the in-process fallback", SERVICE
)
FALLBACK_DROPPED = get_counter(
    "fallback_dropped_total", "Events refused because the fallback was full", SERVICE
)
FALLBACK_PROCESSED = get_counter(
    "fallback_processed_total", "Events persisted from the fallback", SERVICE
)

# Worker
JOBS = get_counter("jobs_total", "Jobs finished, by outcome", SERVICE, ["status"])
JOB_LATENCY = get_histogram(
    "job_latency_seconds", "Time to persist and aggregate one event", SERVICE
)
JOBS_IN_FLIGHT = get_gauge("jobs_in_flight", "Jobs currently processing", SERVICE)
RATE_LIMIT_WAIT = get_histogram(
    "worker_rate_limit_wait_seconds", "Time workers waited on the limiter", SERVICE
)

# Aggregation
SESSION_UPDATES = get_counter(
    "session_updates_total", "Session upserts, by result", SERVICE, ["result"]
)
