"""
Loguru sink configuration shared by the CLI and embedding applications.
"""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace the default sink with a stderr sink and an optional rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention=5)
