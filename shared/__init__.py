"""Shared utilities and components for the ingestion API and the worker."""

from .config import BaseLoggingConfig, BaseRedisConfig, BaseServiceConfig
from .constants import Environment, Queues, RedisKeys

__all__ = [
    "Environment",
    "Queues",
    "RedisKeys",
    "BaseServiceConfig",
    "BaseLoggingConfig",
    "BaseRedisConfig",
]
