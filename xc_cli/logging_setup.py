"""Logging configuration for the xc CLI."""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Send xc_cli logs to stderr through Rich.

    Level comes from the argument, then XC_LOG_LEVEL, then WARNING.
    """
    level_name = (level or os.getenv("XC_LOG_LEVEL") or "WARNING").upper()
    logger = logging.getLogger("xc_cli")
    logger.setLevel(getattr(logging, level_name, logging.WARNING))

    # Clear any existing handlers
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=level_name == "DEBUG",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
