# ecg_stream/utils/logging_utils.py
"""
Central logging utilities for the project.

Purpose:
    - Consistent log format for every module.
    - Log files go to settings.paths.log_dir ("logs" under the project root
      unless ECG_LOG_DIR says otherwise).
    - Level can be raised or lowered globally with ECG_LOG_LEVEL.

Usage:
    from ecg_stream.utils.logging_utils import get_logger

    logger = get_logger(module_name="ecg_api", logfile_name="api.log")
    logger.info("API started.")
    logger.error("Unexpected error", exc_info=True)
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from ecg_stream.config.settings import settings

LOG_DIR = settings.paths.log_dir
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[int]) -> int:
    """ECG_LOG_LEVEL wins over the caller's default."""
    env_level = os.getenv("ECG_LOG_LEVEL")
    if env_level:
        resolved = logging.getLevelName(env_level.strip().upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO if level is None else level


def get_logger(
    module_name: str,
    logfile_name: str,
    level: Optional[int] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Return a file-backed logger for one component.

    Args:
        module_name:
            Logger name (e.g. "ecg_api", "ecg_ingest", "ecg_consumer").
        logfile_name:
            Log file name (e.g. "api.log"), created inside LOG_DIR.
        level:
            Default level when ECG_LOG_LEVEL is not set (INFO if None).
        max_bytes:
            Rotation size of the log file (default: 5 MB).
        backup_count:
            Number of rotated files to keep (api.log.1, api.log.2, ...).

    Returns:
        logging.Logger
    """
    logger = logging.getLogger(module_name)

    # Already configured: do not stack handlers
    if logger.handlers:
        return logger

    logger.setLevel(_resolve_level(level))

    file_handler = RotatingFileHandler(
        filename=LOG_DIR / logfile_name,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    # No double logging through the root logger
    logger.propagate = False

    return logger
