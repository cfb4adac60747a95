"""Centralized logging configuration for tabsplit.

Usage:
    from tabsplit.runtime import get_logger
    logger = get_logger(__name__)

    logger.info("Extraction finished in %.2f seconds", elapsed)

Environment variables:
    TABSPLIT_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
"""

import logging
import os
import sys

ROOT_LOGGER_NAME = "tabsplit"

DEFAULT_LOG_LEVEL = logging.INFO

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_logging_configured = False


def configure_logging(level: int | None = None) -> None:
    """Attach a stderr handler to the ``tabsplit`` logger namespace.

    Args:
        level: Log level to use. If None, reads TABSPLIT_LOG_LEVEL or uses
               DEFAULT_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        env_level = os.environ.get("TABSPLIT_LOG_LEVEL", "").upper()
        level = _LEVELS.get(env_level, DEFAULT_LOG_LEVEL)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT))

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``tabsplit`` namespace.

    Args:
        name: Module name, typically __name__
    """
    configure_logging()

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: int) -> None:
    """Change the log level at runtime (e.g. from the CLI ``--verbose`` flag)."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    log_format = LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(log_format))
