"""
Logging infrastructure: package logger setup, child loggers, timed steps.
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "genre_organizer"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_dir: Optional[Path] = None, log_level: str = "INFO") -> logging.Logger:
    """
    Set up logging for the application.

    Args:
        log_dir: Directory for log files (console only when None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"genre_organizer_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get the package logger, or a child of it for a module name."""
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        # Default console handler if not configured
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if not name or name == LOGGER_NAME:
        return root
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)


@contextmanager
def timed_step(step_name: str, logger: Optional[logging.Logger] = None):
    """Context manager to time and log execution of a step."""
    logger = logger or get_logger()
    start_time = time.time()
    logger.info("[START] %s", step_name)
    try:
        yield
    finally:
        elapsed = time.time() - start_time
        logger.info("[END] %s (took %.2fs)", step_name, elapsed)
