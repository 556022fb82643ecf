"""
Koa - Logging
==============
``get_logger(name)`` hands every Koa module a logger that writes one
line per record to stdout::

    2026-01-31 09:14:02 | INFO     | koa.src.core.rag_engine | [REPLY] ...

Level resolution (``level_for``):
  • ``settings.LOG_LEVEL`` when set
  • otherwise ``settings.ENV``: ``"dev"`` → DEBUG, ``"prod"`` → WARNING

Koa loggers do not propagate, so uvicorn's root handlers never print the
same reply-pipeline line twice.
"""

import logging
import sys

from koa.config.settings import Settings, settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ENV_LEVELS = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}


def level_for(config: Settings) -> int:
    """Resolve the logging level for *config*."""
    if config.LOG_LEVEL is not None:
        return getattr(logging, config.LOG_LEVEL)
    return _ENV_LEVELS[config.ENV]


def _stdout_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger for *name*, attaching Koa's stdout handler once.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit override; defaults to ``level_for(settings)``.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = level if level is not None else level_for(settings)
    logger.setLevel(resolved)
    logger.addHandler(_stdout_handler(resolved))
    logger.propagate = False
    return logger
