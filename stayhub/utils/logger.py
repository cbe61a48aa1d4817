"""Process-wide logging setup for the booking service."""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

from stayhub.utils.config import get_settings


_LOGGER_INITIALIZED = False
_QUIET_LIBRARIES = ("httpx", "urllib3", "watchfiles")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; later calls are no-ops."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for library in _QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def format_fields(**fields: Any) -> str:
    """Render `key=value` pairs in the pipe-separated style used across services."""
    return " | ".join(f"{key}={value}" for key, value in fields.items())
