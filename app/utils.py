"""
Shared utilities for the claims exposure service.
"""

import logging
import os
import sys

LOGGER_NAME = "claims_exposure"
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Return the application logger, configuring it on first use.

    Args:
        level: Optional log level name. Defaults to the LOG_LEVEL
            environment variable, then INFO.

    Returns:
        The configured application logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
