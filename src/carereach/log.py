"""
Logging configuration for CareReach.

Ingestion runs unattended (daemon, cron, CLI) while the API serves requests, so we
keep one named logger with the same format everywhere. When a category silently
falls back to seed data, the log is the only place that tells an operator why.
"""

from __future__ import annotations

# Python's built-in logging covers everything we need (stream + rotating file).
import logging
import os
from logging.handlers import RotatingFileHandler
# `Path` keeps log file locations portable.
from pathlib import Path

LOGGER_NAME = "carereach"
LOG_FILE_NAME = "carereach.log"
# Rotation limits for the file handler.
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def get_logger() -> logging.Logger:
    # Every module logs through the same named logger so handlers are configured once.
    return logging.getLogger(LOGGER_NAME)


def _owned(handler: logging.Handler) -> bool:
    return getattr(handler, "_carereach", False)


def configure_logging(log_dir: Path, level: str = "INFO") -> logging.Logger:
    """
    Attach a stream handler and a rotating file handler under `log_dir`.

    Calling this again (a second `load_settings`, a uvicorn reload) replaces the
    handlers it installed earlier instead of stacking duplicates, so the file handler
    always follows the most recent `log_dir`. `CAREREACH_LOG_LEVEL` overrides `level`.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = os.getenv("CAREREACH_LOG_LEVEL", level).upper()

    logger = get_logger()
    logger.setLevel(level)
    # Do not propagate to the root logger (uvicorn installs its own root handlers).
    logger.propagate = False

    for old in [h for h in logger.handlers if _owned(h)]:
        logger.removeHandler(old)
        old.close()

    fmt = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = [
        logging.StreamHandler(),
        RotatingFileHandler(
            log_dir / LOG_FILE_NAME, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        ),
    ]
    for handler in handlers:
        handler.setFormatter(fmt)
        handler.setLevel(level)
        handler._carereach = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger
