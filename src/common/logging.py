"""
Logging configuration helpers.
Every module logs through `logging.getLogger(__name__)`; this sets the process-wide format and level once.
"""

from __future__ import annotations

import logging

from src.common.settings import get_settings

_LOGGING_CONFIGURED = False

# Statements executed by the persistence context are logged here at DEBUG.
SQL_LOGGER_NAME = "src.data"


def configure_logging() -> None:
    """Configure process-wide logging from environment settings."""

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    settings = get_settings()
    level_name = settings.LOG_LEVEL.upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if settings.DB_ECHO:
        logging.getLogger(SQL_LOGGER_NAME).setLevel(logging.DEBUG)
    _LOGGING_CONFIGURED = True
