"""Logger lookup shared by the API and the worker.

Each process calls ``shared.logging.json.configure_logging`` at startup. Code
that logs before that (tests, import-time helpers) gets a plain text
``basicConfig`` so records are never silently dropped.
"""

from __future__ import annotations

import logging

_FALLBACK_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_state = {"configured": False}


def get_logger(name: str, auto_configure: bool = True) -> logging.Logger:
    """Return the named logger, installing the text fallback if needed.

    Args:
        name: Dotted component name, e.g. ``trackline.worker.pool``
        auto_configure: Install the fallback when no JSON handler exists yet
    """
    if auto_configure and not _state["configured"]:
        logging.basicConfig(level=logging.INFO, format=_FALLBACK_FORMAT)
        _state["configured"] = True
    return logging.getLogger(name)


def mark_configured() -> None:
    _state["configured"] = True
