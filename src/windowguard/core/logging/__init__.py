"""Structured logging setup with structlog."""

import hashlib
import logging

import structlog

from windowguard.config import Settings, settings
from windowguard.core.constants import KEY_HASH_LENGTH


def configure_logging(app_settings: Settings | None = None) -> None:
    """Configure structlog processors and log level.

    Production renders JSON; every other environment uses the console renderer.

    Args:
        app_settings: Optional settings; defaults to the global settings
    """
    cfg = app_settings or settings
    level = getattr(logging, cfg.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if cfg.is_production
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def hash_key(key: str) -> str:
    """Hash a caller key for logging without exposing identities."""
    return hashlib.sha256(key.encode()).hexdigest()[:KEY_HASH_LENGTH]


__all__ = [
    "configure_logging",
    "hash_key",
]
