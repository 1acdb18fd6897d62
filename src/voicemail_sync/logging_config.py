"""Structured logging setup."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog to drop events below ``level``.

    Args:
        level: Standard logging level name (DEBUG, INFO, ...).
    """

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )
