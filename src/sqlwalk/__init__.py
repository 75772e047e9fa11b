"""sqlwalk - SQL transformation orchestrator for DuckDB."""

from __future__ import annotations

import logging
import sys

__version__ = "0.1.0"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure the ``sqlwalk`` logger hierarchy and return its root.

    Log records go to stderr so they never mix with command output such as
    ``sqlwalk deps --json``. Calling again only changes the level.
    """
    root_logger = logging.getLogger("sqlwalk")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(handler)
    return root_logger
