from shared.config import BaseServiceConfig
from shared.constants import Queues


class Settings(BaseServiceConfig):
    service_name: str = "trackline"

    # Durable queue
    queue_name: str = Queues.TRACKING
    queue_job_attempts: int = 3
    queue_backoff_delay_ms: int = 2000
    queue_remove_on_complete: int = 100
    queue_remove_on_fail: int = 500
    queue_lease_seconds: int = 60

    # Dispatcher
    dispatch_retries: int = 3
    dispatch_retry_base_delay_seconds: float = 0.05
    dispatch_retry_max_delay_seconds: float = 0.5
    dispatch_unavailable_cooldown_seconds: float = 5.0

    # Fallback buffer (in-process, lost on restart)
    fallback_capacity: int = 10_000
    fallback_drain_batch_size: int = 10
    fallback_drain_interval_seconds: float = 1.0

    # Worker pool
    worker_concurrency: int = 5
    worker_rate_limit_max_jobs: int = 50
    worker_rate_limit_window_seconds: float = 1.0
    worker_poll_interval_seconds: float = 0.5
    worker_promote_interval_seconds: float = 1.0
    worker_metrics_port: int = 8001

    # Ingestion endpoint
    ingest_max_batch_size: int = 100
    ingest_max_body_bytes: int = 1_048_576
    ingest_rate_limit_requests: int = 1000
    ingest_rate_limit_window_seconds: int = 60
    ingest_trust_forwarded_for: bool = True

    # External lookups
    geo_api_url: str = "https://ipwho.is/"
    geo_timeout_seconds: float = 2.0

    # Aggregation
    aggregator_dedupe_enabled: bool = True

    # Clickhouse
    clickhouse_host: str = "clickhouse"
    clickhouse_port: int = 9000
    clickhouse_db: str = "analytics"
    clickhouse_user: str = "admin"
    clickhouse_password: str = "admin"
    clickhouse_events_table: str = "events"

    # Retention
    retention_event_days: int = 30
    retention_session_days: int = 90


settings = Settings()
