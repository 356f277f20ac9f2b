"""
Loguru setup shared by the CLI runner and the pytest session.

Settings come from the ``logging`` section of the configuration:
``logging.level``, ``logging.format`` and an optional ``logging.file``
(rotated and compressed).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config_loader import ConfigLoader

DEFAULT_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
)

_logger_initialized: bool = False


def init_logger(
    level: Optional[str] = None,
    config: Optional[ConfigLoader] = None,
    force: bool = False,
) -> None:
    """
    Initialize the global Loguru logger with the project configuration.

    Safe to call more than once; only the first call (or a forced one)
    replaces the sinks.

    Args:
        level: Log level override (DEBUG, INFO, WARNING, ERROR)
        config: Configuration loader, a default one is created if omitted
        force: Re-initialize even if already initialized
    """
    global _logger_initialized

    if _logger_initialized and not force:
        return

    config = config or ConfigLoader()
    log_level = (level or config.get("logging.level", "INFO")).upper()
    log_format = config.get("logging.format", DEFAULT_LOG_FORMAT)

    logger.remove()
    logger.add(sys.stdout, level=log_level, format=log_format, colorize=True)

    log_file = config.get("logging.file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            format=log_format.replace("{level: <8}", "{level}"),
            rotation=config.get("logging.rotation", "10 MB"),
            retention=config.get("logging.retention", "7 days"),
            compression="zip",
        )

    _logger_initialized = True
    logger.debug(f"Logger initialized with level: {log_level}")


__all__ = ["init_logger", "DEFAULT_LOG_FORMAT"]
