import logging
import os
from typing import Optional

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Logger factory; level falls back to LOG_LEVEL, then DEBUG."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel((level or os.getenv("LOG_LEVEL", "DEBUG")).upper())
        logger.propagate = False
    return logger


# Example: logger = get_logger(__name__)
