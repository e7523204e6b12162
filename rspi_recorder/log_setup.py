"""log_setup.py
Build the recorder's logger: every line goes to stdout and to the log file.

The logger is created once at startup and handed to the controller and
workers; the root logger is left alone.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Union

__all__ = ["LOGGER_NAME", "close_logging", "setup_logging"]

LOGGER_NAME = "rspi_recorder"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_path: Union[str, Path], debug: bool = False) -> logging.Logger:
    """Return the configured ``rspi_recorder`` logger.

    The file is opened in append mode and created if absent.  Raises
    ``OSError`` when it cannot be opened.
    """
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)

    # open the file first so a bad path leaves no half-configured logger
    fileh = logging.FileHandler(str(log_path), mode="a", encoding="utf-8")
    fileh.setLevel(level)
    fileh.setFormatter(formatter)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)

    logger = logging.getLogger(LOGGER_NAME)
    close_logging(logger)
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(console)
    logger.addHandler(fileh)
    return logger


def close_logging(logger: logging.Logger) -> None:
    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.flush()
        if isinstance(h, logging.FileHandler):
            h.close()
