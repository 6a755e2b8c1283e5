"""Simple logging utility.

Provides a lightweight wrapper around Python's standard logging
module to produce consistent log messages across the engine.  The
level defaults to INFO and can be changed with the
``LIDAR_TPU_LOG_LEVEL`` environment variable or per call.
"""

import logging
import os
from typing import Optional

LEVEL_ENV = "LIDAR_TPU_LOG_LEVEL"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a configured logger with a preset format.

    Parameters
    ----------
    name : str
        Logger name, usually ``__name__`` of the calling module.
    level : str, optional
        Level name such as ``"DEBUG"``.  Overrides the environment.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='[%(asctime)s] [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(os.environ.get(LEVEL_ENV, "INFO").upper())
    if level is not None:
        logger.setLevel(level.upper())
    return logger
