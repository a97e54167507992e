"""
Logging Configuration Module

Usage:
    from pager_gateway.logging_config import configure_logging
    configure_logging()  # Call once at startup

Environment Variables:
    LOG_LEVEL: Console log verbosity (DEBUG, INFO, WARNING, ERROR; default INFO)

Note:
    File logging is added by the server entry point and always runs at DEBUG.
"""

import os
import sys

from loguru import logger


VALID_LOG_LEVELS: set[str] = {"DEBUG", "INFO", "WARNING", "ERROR"}

DEFAULT_LOG_LEVEL = "INFO"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - {message}"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def get_log_level() -> str:
    """
    Get the configured log level from the LOG_LEVEL environment variable.

    Returns:
        str: DEBUG, INFO, WARNING or ERROR. Falls back to INFO if unset or invalid.
    """
    level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()

    if level not in VALID_LOG_LEVELS:
        return DEFAULT_LOG_LEVEL

    return level


def configure_logging() -> None:
    """Replace loguru's default stderr sink with one honouring LOG_LEVEL."""
    level = get_log_level()

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    logger.debug(f"Logging configured: console level={level}")


def add_file_sink(log_file: str) -> int:
    """
    Add a rotating DEBUG file sink.

    Returns:
        The loguru handler id (pass to ``logger.remove`` to detach it)
    """
    return logger.add(
        log_file,
        rotation="100 MB",
        retention="7 days",
        level="DEBUG",
        format=FILE_FORMAT,
    )
