"""
Logging setup for the API process.

Console output always; in production, errors are additionally written to
``error.log`` and everything to ``combined.log`` under ``settings.log_dir``.
"""

from __future__ import annotations

import logging
import os
import sys

from bugtracker.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_MARKER = "_bugtracker_handler"


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_MARKER, True)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(settings: Settings) -> None:
    """Configure the root logger. Safe to call more than once."""
    root_logger = logging.getLogger()

    # Drop handlers installed by a previous call so logs are not duplicated.
    for handler in root_logger.handlers[:]:
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)
            handler.close()

    level = logging.getLevelName(settings.effective_log_level)
    if not isinstance(level, int):
        level = logging.INFO
    root_logger.setLevel(level)

    root_logger.addHandler(_mark(logging.StreamHandler(sys.stderr)))

    if settings.is_production:
        os.makedirs(settings.log_dir, exist_ok=True)
        error_handler = _mark(
            logging.FileHandler(os.path.join(settings.log_dir, "error.log"))
        )
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)
        root_logger.addHandler(
            _mark(logging.FileHandler(os.path.join(settings.log_dir, "combined.log")))
        )

    for logger_name in ["bugtracker", "uvicorn", "uvicorn.error"]:
        logging.getLogger(logger_name).setLevel(level)

    root_logger.debug("Logging initialized (environment=%s)", settings.environment)
