"""Console logging for the collection engine."""

from __future__ import annotations

import logging
import sys

_LOGGER_NAME = "pulsewatch"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Calling it twice keeps the first handler; only the level changes.
    """

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger
