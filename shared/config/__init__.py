"""Shared configuration base classes.

Both processes (ingestion API and worker) read the same environment, so the
connection and logging settings live here and each process adds its own.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseLoggingConfig(BaseSettings):
    """Common logging configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_log_level: str = "INFO"
    app_log_redaction_patterns: list[str] = [
        "password",
        "token",
        "secret",
        "authorization",
        "cookie",
    ]
    app_environment: str = "production"


class BaseRedisConfig(BaseSettings):
    """Redis connections: the durable queue, session rollups and tenant records.

    They default to separate logical databases on one server so the queue can
    be unavailable independently of the session store.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    redis_queue_url: str = "redis://redis:6379/0"
    redis_sessions_url: str = "redis://redis:6379/1"
    redis_tenants_url: str = "redis://redis:6379/2"
    redis_socket_timeout_seconds: float = 2.0


class BaseServiceConfig(BaseLoggingConfig, BaseRedisConfig):
    """Base configuration combining logging and Redis settings.

    Each process overrides service_name; it becomes the "service" log key.
    """

    service_name: str = "unknown"


__all__ = ["BaseLoggingConfig", "BaseRedisConfig", "BaseServiceConfig"]
