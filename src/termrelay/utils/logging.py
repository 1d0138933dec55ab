"""Logging setup for termrelay.

Only the ``termrelay`` package logger is configured; uvicorn keeps its own
handlers. ``setup_logging`` may be called again (CLI re-entry, tests) and
replaces the handlers it installed earlier instead of stacking new ones.
"""

from __future__ import annotations

import logging
import sys

from termrelay.config.settings import LoggingConfig

PACKAGE_LOGGER = "termrelay"

# Set on every handler installed here so a later call can find them.
_OWNED_ATTR = "_termrelay_owned"


def _owned(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _OWNED_ATTR, True)
    return handler


def _remove_owned_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _OWNED_ATTR, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure the ``termrelay`` logger and return it.

    Installs a stderr handler and, when ``config.file`` is set, a file
    handler, both using ``config.format``. Handlers added by an earlier
    call are closed and replaced; handlers added by anyone else are left
    alone.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    _remove_owned_handlers(logger)

    formatter = logging.Formatter(config.format)

    console_handler = _owned(logging.StreamHandler(sys.stderr))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.file:
        file_handler = _owned(logging.FileHandler(config.file, encoding="utf-8"))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized at %s level", config.level.upper())
    return logger
