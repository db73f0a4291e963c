"""
Structured Logging

Configures structlog so every module logs snake_case event names with
keyword context:

    logger = get_logger(__name__)
    logger.info("reuse_lookup_completed", company="Google", found=3)

Output format follows settings.LOG_FORMAT:
- json: one JSON object per line (production, log shipping)
- text: colourless key=value console output (local development)
"""

import logging
import sys
from typing import Any

import structlog

from research_cache.core.config import settings

_configured = False


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure stdlib logging and structlog once per process.

    Args:
        level: Override for settings.LOG_LEVEL
        log_format: Override for settings.LOG_FORMAT ("json" or "text")
    """
    global _configured

    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    fmt = log_format or settings.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    # Quiet down chatty third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DB_ECHO else logging.WARNING
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, configuring logging on first use."""
    if not _configured:
        setup_logging()
    return structlog.get_logger(name)
