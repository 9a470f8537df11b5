"""
Logger setup for the engine.

Every module asks for its logger through get_logger() so that the handler is
installed once, on the shared "minesweeper" logger.
"""

from __future__ import annotations

import logging
from typing import Optional

from config import LOG_LEVEL

LOGGER_NAME = "minesweeper"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the package logger, or one of its children when name is given.

    The first call attaches a StreamHandler to the package logger; later calls
    reuse it.
    """
    root = logging.getLogger(LOGGER_NAME)

    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(LOG_LEVEL.upper())

    if name is None:
        return root
    return root.getChild(name)
