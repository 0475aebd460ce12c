"""Logging utilities for datasheet.

Engine operations log warnings instead of raising exceptions for
degraded input (short rows, unknown column ids, unfinished filters).
"""

from __future__ import annotations

import logging
import sys


class _LoggerHolder:
    """Holder for the global logger instance."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the datasheet logger instance.

    Returns
    -------
    logging.Logger
        The datasheet logger configured with a stream handler.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger("datasheet")
        logger.setLevel(logging.WARNING)

        # Only add handler if none exists
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def debug(msg: str) -> None:
    """Log a debug message.

    Parameters
    ----------
    msg : str
        The message to log.
    """
    get_logger().debug(msg)


def info(msg: str) -> None:
    """Log an info message.

    Parameters
    ----------
    msg : str
        The message to log.
    """
    get_logger().info(msg)


def warn(msg: str) -> None:
    """Log a warning message. Never raises exceptions.

    Parameters
    ----------
    msg : str
        The warning message to log.
    """
    get_logger().warning(msg)


def error(msg: str) -> None:
    """Log an error message. Never raises exceptions.

    Parameters
    ----------
    msg : str
        The error message to log.
    """
    get_logger().error(msg)


def exception(msg: str) -> None:
    """Log an exception with full traceback.

    Call this from within an except block.
    """
    get_logger().exception(msg)


def set_level(level: int | str) -> None:
    """Set the logging level.

    Parameters
    ----------
    level : int or str
        The logging level (e.g., logging.DEBUG, "DEBUG").
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Enable debug mode for verbose pipeline logging.

    This will show all debug messages including:
    - store commits and their reasons
    - selector recomputations
    - ignored filter/sort/aggregation references
    """
    set_level(logging.DEBUG)


def apply_log_settings(level: str, fmt: str | None = None) -> None:
    """Apply a configured level and format to the datasheet logger.

    Parameters
    ----------
    level : str
        Level name such as "DEBUG" or "WARNING".
    fmt : str, optional
        Replacement format string for the logger's handlers.
    """
    set_level(level)
    if fmt:
        for handler in get_logger().handlers:
            handler.setFormatter(logging.Formatter(fmt))
