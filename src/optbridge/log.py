"""Package-wide logger construction."""

import logging
import os

# Level override via environment, handlers are left to the application
_LEVEL_NAME = os.getenv("OPTBRIDGE_LOG_LEVEL", "WARNING").upper()
_PACKAGE_LOGGER_LEVEL = getattr(logging, _LEVEL_NAME, logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module-level logger without touching global handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(_PACKAGE_LOGGER_LEVEL)
    return logger
