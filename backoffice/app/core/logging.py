"""
Logging configuration.

All application modules log through ``logging.getLogger(__name__)``, which
places them under the ``backoffice`` logger configured here.
"""
from __future__ import annotations

import logging
import logging.handlers
import sys

from backoffice.app.core.config import settings

ROOT_LOGGER = "backoffice"


def setup_logging(log_level: str | None = None) -> logging.Logger:
    """
    Configure the ``backoffice`` logger.

    Console output is always enabled. When ``LOG_DIR`` is set, a rotating
    application log and a rotating error-only log are written there as well.
    Calling it again replaces the handlers instead of stacking them.
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.log_dir is not None:
        log_dir = settings.log_dir
        log_dir.mkdir(exist_ok=True, parents=True)

        app_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(detailed_formatter)
        logger.addHandler(app_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / settings.error_log_file,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        logger.addHandler(error_handler)

    return logger
