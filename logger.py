"""Logging configuration for Postura."""

import logging
import sys
from datetime import datetime, timedelta

from config import LOG_DIR, LOG_LEVEL, LOG_RETENTION_DAYS

# Library loggers that would otherwise log every tick job run at INFO
NOISY_LOGGERS = ("apscheduler", "discord.gateway", "httpx")


def _prune_old_logs(retention_days: int) -> None:
    """Delete dated log files older than the retention period."""
    cutoff = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")
    for log_file in LOG_DIR.glob("????-??-??.log"):
        if log_file.stem < cutoff:
            try:
                log_file.unlink()
            except OSError:
                pass  # Still open by another process


def setup_logging() -> logging.Logger:
    """Set up logging to a dated file and, on a terminal, the console."""
    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)

    logger = logging.getLogger("postura")
    logger.setLevel(level)
    logger.handlers.clear()

    if LOG_RETENTION_DAYS > 0:
        _prune_old_logs(LOG_RETENTION_DAYS)

    log_file = LOG_DIR / f"{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


# Global logger instance
logger = setup_logging()
