from shared.constants import Environment, Queues
from trackline.core.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.queue_name == Queues.TRACKING
    assert settings.queue_job_attempts == 3
    assert settings.queue_backoff_delay_ms == 2000
    assert (settings.queue_remove_on_complete, settings.queue_remove_on_fail) == (100, 500)
    assert settings.worker_concurrency == 5
    assert settings.worker_rate_limit_max_jobs == 50
    assert settings.worker_rate_limit_window_seconds == 1.0
    assert settings.fallback_drain_batch_size == 10
    assert settings.fallback_drain_interval_seconds == 1.0
    assert settings.ingest_max_batch_size == 100
    assert settings.geo_timeout_seconds == 2.0
    assert (settings.retention_event_days, settings.retention_session_days) == (30, 90)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WORKER_CONCURRENCY", "12")
    monkeypatch.setenv("REDIS_QUEUE_URL", "redis://queue:6379/3")
    monkeypatch.setenv("AGGREGATOR_DEDUPE_ENABLED", "false")

    settings = Settings()

    assert settings.worker_concurrency == 12
    assert settings.redis_queue_url == "redis://queue:6379/3"
    assert settings.aggregator_dedupe_enabled is False


def test_environment_parsing():
    assert Environment.parse(" Testing ") is Environment.TESTING
    assert Environment.parse("qa") is Environment.PRODUCTION
    assert Environment.is_testing("testing")
    assert not Environment.is_testing("staging")
