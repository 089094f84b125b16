from __future__ import annotations

import logging

from shared.constants import Environment
from shared.logging.json import configure_logging as shared_configure_logging
from shared.logging.logger import get_logger as shared_get_logger

from .config import settings


def configure_logging(service: str | None = None) -> logging.Logger:
    """Install the shared JSON handler using this process's settings."""
    return shared_configure_logging(
        service=service or settings.service_name,
        level=settings.app_log_level,
        environment=Environment.parse(settings.app_environment).value,
        redaction_patterns=settings.app_log_redaction_patterns,
    )


def get_logger(name: str) -> logging.Logger:
    return shared_get_logger(f"trackline.{name}")
