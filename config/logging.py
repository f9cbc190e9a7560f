"""
Logging configuration for the career import pipeline.

One shared ``logger`` writes to stdout and, unless disabled, to
``LOG_DIR/career_import.log``. Messages about a single import session go
through ``session_logger(session_id)`` so every line carries the session id.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "multipart", "httpx")


class SessionLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the import session it concerns."""

    def process(self, msg, kwargs):
        return f"[session {self.extra['session_id']}] {msg}", kwargs


def setup_logging(
    name: str = "career_import",
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        name: Logger name
        level: Level name, defaults to settings.LOG_LEVEL
        log_dir: Directory for the log file, defaults to settings.LOG_DIR

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper()))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        log_dir = log_dir or settings.LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{name}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not settings.DEBUG:
        for noisy in QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def session_logger(session_id: str) -> SessionLogAdapter:
    """Logger for messages about one import session."""
    return SessionLogAdapter(logger, {"session_id": session_id})


# Default logger
logger = setup_logging()
