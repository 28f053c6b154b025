"""Structlog-based logging configuration."""

from __future__ import annotations

import logging
from typing import Final, Optional

import structlog

from .config import Settings, get_settings

_CONFIGURED: Final[dict[str, bool]] = {"value": False}


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog once, JSON output unless ``log_json`` is off."""
    if _CONFIGURED["value"]:
        return

    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s",
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    _CONFIGURED["value"] = True


__all__ = ["configure_logging"]
