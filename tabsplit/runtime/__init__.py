"""Runtime infrastructure for tabsplit.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Configuration via get_settings(), Settings
- Local fallback storage paths via get_paths(), DataPaths

Usage:
    from tabsplit.runtime import get_logger, get_settings

    logger = get_logger(__name__)
    settings = get_settings()
"""

from tabsplit.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from tabsplit.runtime.paths import DataPaths, get_paths, set_data_dir
from tabsplit.runtime.settings import Settings, get_settings, reset_settings

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Settings
    "Settings",
    "get_settings",
    "reset_settings",
    # Paths
    "DataPaths",
    "get_paths",
    "set_data_dir",
]
