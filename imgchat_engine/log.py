"""Logging setup for the imgchat engine."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_ROOT_LOGGER = "imgchat_engine"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool = False, *, stream: TextIO | None = None) -> logging.Logger:
    """Install a single stream handler on the package logger.

    Calling it again replaces the handler, so the CLI can reconfigure after
    command-line overrides are applied.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    return logger
