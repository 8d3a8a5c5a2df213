"""Logging configuration for gql-cms.

All components log under the `gql_cms` namespace. Output goes to stderr
because the stdio MCP transport owns stdout; an optional rotating log file
can be added.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per file
DEFAULT_BACKUP_COUNT = 5

ROOT_LOGGER_NAME = "gql_cms"


def configure_logging(
    log_level: int | str = DEFAULT_LOG_LEVEL,
    log_file: str | None = None,
    log_format: str = DEFAULT_LOG_FORMAT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> logging.Logger:
    """Configure the gql_cms logger.

    Args:
        log_level: Logging level (e.g. logging.DEBUG or "debug")
        log_file: Optional path of a rotating log file
        log_format: Log message format
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The root gql_cms logger.
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = DEFAULT_LOG_LEVEL

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates on reconfiguration
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(os.path.expanduser(log_file))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a gql_cms component.

    Example:
        logger = get_logger("introspector")
        logger.info("Schema loaded")
        # Logs as: gql_cms.introspector - INFO - Schema loaded
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
