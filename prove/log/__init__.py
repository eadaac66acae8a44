# AGPL-3.0 License

import logging
import os
import sys
from enum import Enum

from loguru import logger


class LoggingFormat(str, Enum):
    CONSOLE = "CONSOLE"
    JSON = "JSON"


def setup_logger(level: str = "INFO", fmt: LoggingFormat = LoggingFormat.CONSOLE):
    """
    Configure the shared loguru logger.

    Logs always go to stderr so that machine-readable output on stdout
    stays parseable.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        fmt: CONSOLE for colorized text, JSON for serialized records
    """
    level: int = logging.getLevelName(level.upper())
    if type(level) is not int:
        level = logging.INFO

    logger.remove(None)
    if fmt == LoggingFormat.JSON:
        logger.add(
            sys.stderr,
            level=level,
            format="{message}",
            colorize=False,
            serialize=True,
        )
    else:
        logger.add(sys.stderr, level=level, colorize=True)

    return logger


def setup_logger_from_env(verbose: bool = False):
    """Configure logging from PROVE_LOG_LEVEL / PROVE_LOG_FORMAT."""
    default_level = "DEBUG" if verbose else "WARNING"
    level = os.getenv("PROVE_LOG_LEVEL", default_level)
    try:
        fmt = LoggingFormat(os.getenv("PROVE_LOG_FORMAT", "CONSOLE").upper())
    except ValueError:
        fmt = LoggingFormat.CONSOLE
    return setup_logger(level, fmt)


def get_logger(*args, **kwargs):
    return logger
