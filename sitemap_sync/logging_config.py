"""Logging configuration helpers for the sitemap sync pipeline."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_DIR = os.getenv("SITEMAP_SYNC_LOG_DIR", "logs")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Set SITEMAP_SYNC_FILE_LOGS=0 on ephemeral CI runners to log to the console only.
FILE_LOGS = os.getenv("SITEMAP_SYNC_FILE_LOGS", "1") not in {"0", "false", "False"}

_LOGGERS: dict[str, logging.Logger] = {}


def _build_handlers(level: str) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if FILE_LOGS:
        os.makedirs(LOG_DIR, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(LOG_DIR, "sitemap_sync.log"),
                maxBytes=1_000_000,
                backupCount=3,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    return handlers


def get_logger(name: str) -> logging.Logger:
    """Return a logger with console and (optionally) rotating file handlers."""

    logger = logging.getLogger(name)
    if name in _LOGGERS:
        return logger

    logger.setLevel(DEFAULT_LEVEL)
    logger.propagate = False
    if not logger.handlers:
        for handler in _build_handlers(DEFAULT_LEVEL):
            logger.addHandler(handler)
    _LOGGERS[name] = logger
    return logger


def set_level(level: str) -> None:
    """Change the level of every logger handed out by get_logger."""

    resolved = level.upper()
    for logger in _LOGGERS.values():
        logger.setLevel(resolved)
        for handler in logger.handlers:
            handler.setLevel(resolved)
