from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "blocktranscoding"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logger(
    level: str = "INFO",
    log_file: Optional[str] = None,
    to_stderr: bool = True,
    max_bytes: int = 2_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the package logger: rotating file (when log_file is set) plus stderr.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers if called twice (tests, reloads).
    if logger.handlers:
        return logger

    fmt = logging.Formatter(LOG_FORMAT)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    if to_stderr:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
