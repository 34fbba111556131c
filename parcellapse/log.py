"""Loguru sink configuration shared by the CLI and ``main.py``."""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> int:
    """Replace the default loguru sink with the application stderr sink.

    Parameters
    ----------
    level : str
        Minimum level name, e.g. ``"DEBUG"`` or ``"INFO"``.

    Returns
    -------
    int
        Identifier of the added sink, usable with ``logger.remove``.
    """
    logger.remove()
    return logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
