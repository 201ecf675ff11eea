"""Logging configuration for Egile Plugins."""

import logging
import sys
from typing import Literal

from egile_plugins.config import get_config

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def setup_logging(
    level: LogLevel | None = None,
    format_string: str | None = None,
    stream: bool = True,
) -> None:
    """
    Set up logging for Egile Plugins.

    Args:
        level: Logging level. Defaults to the configured `log_level`.
        format_string: Custom format string. Uses default if None.
        stream: If True, log to stdout.
    """
    if level is None:
        level = get_config().log_level

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logger = logging.getLogger("egile_plugins")
    logger.setLevel(getattr(logging, level))

    # Clear existing handlers
    logger.handlers.clear()

    if stream:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the egile_plugins prefix.

    Args:
        name: Logger name suffix.

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(f"egile_plugins.{name}")
