"""Logging helpers shared across the package."""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER_NAME = "attendee_crm"
LEVEL_ENV_VAR = "ATTENDEE_CRM_LOG_LEVEL"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Attach a single stream handler to the package root logger.

    Args:
        level: Level name (DEBUG, INFO, ...). Falls back to the
            ATTENDEE_CRM_LOG_LEVEL environment variable, then WARNING.
    """
    global _configured

    level_name = (level or os.getenv(LEVEL_ENV_VAR) or "WARNING").upper()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level_name, logging.WARNING))

    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace (configured lazily)."""
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
