"""
Quill - Logging
================
Pre-configured logger factory for consistent log output across all
Quill modules.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (per-chunk detail)
  • ``"prod"`` → WARNING level (errors & warnings only)

Usage:
    from quill.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[STORE] Indexed %d chunks.", n)
"""

import logging
import sys

from quill.config.settings import Settings, settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers whose level follows ENV (no explicit override at creation)
_ENV_DRIVEN: set[str] = set()


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger with a standardised formatter.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.
               If *None*, the level is derived from ``settings.ENV``.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    # One handler per logger, even when get_logger is called repeatedly
    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)
        console_handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(console_handler)

        logger.propagate = False
        if level is None:
            _ENV_DRIVEN.add(name)

    return logger


def configure_logging(config: Settings) -> int:
    """
    Re-derive the level from ``config.ENV`` for every ENV-driven logger.

    Module loggers are created at import time from the global ``settings``;
    call this once a run-specific ``Settings`` instance exists.

    Returns:
        The level now in effect.
    """
    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(config.ENV, logging.INFO)
    for name in _ENV_DRIVEN:
        logger = logging.getLogger(name)
        logger.setLevel(_DEFAULT_LEVEL)
        for handler in logger.handlers:
            handler.setLevel(_DEFAULT_LEVEL)
    return _DEFAULT_LEVEL
