"""
Logging for the backup engine, the CLI and the scheduler.

    from newsdesk_db.logger import create_logger

    logger = create_logger("newsdesk-backup")
    logger.info("Backup started", backup_id="full_20240101")

Anything not passed to :func:`create_logger` comes from the environment,
using the logger name upper-cased with dashes turned into underscores as
the prefix ("newsdesk-backup-store" reads NEWSDESK_BACKUP_STORE_*):

    {PREFIX}_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR or CRITICAL (default INFO)
    {PREFIX}_LOG_FILE    also append records to this file
    {PREFIX}_LOG_JSON    "true" for one JSON object per line
"""

import logging
import os
from typing import Optional

from .interface import Logger
from .structured_logger import JsonFormatter, StructuredLogger, TextFormatter


def _get_env_prefix(name: str) -> str:
    return name.upper().replace("-", "_")


def create_logger(
    name: str = "newsdesk",
    level: Optional[int] = None,
    log_file: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> Logger:
    """Build a :class:`StructuredLogger`, filling unset options from the environment."""
    env_prefix = _get_env_prefix(name)

    if level is None:
        level_name = os.environ.get(f"{env_prefix}_LOG_LEVEL", "INFO").upper()
        level = getattr(logging, level_name, logging.INFO)

    if log_file is None:
        log_file = os.environ.get(f"{env_prefix}_LOG_FILE")

    if json_format is None:
        json_format = os.environ.get(f"{env_prefix}_LOG_JSON", "false").lower() == "true"

    return StructuredLogger(
        name=name,
        level=level,
        log_file=log_file,
        json_format=json_format,
    )


def get_logger(name: str = "newsdesk") -> Logger:
    return create_logger(name=name)


__all__ = [
    "Logger",
    "StructuredLogger",
    "JsonFormatter",
    "TextFormatter",
    "create_logger",
    "get_logger",
]
