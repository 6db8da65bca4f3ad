"""Centralized logging configuration for shopcrawl.

Usage in any module:
    from shopcrawl.utils.logging import get_logger
    logger = get_logger(__name__)
    logger.info("Something happened")

The console gets INFO and up on stderr, so that stdout stays free for
status lines and CLI summaries. The log file gets everything, including
the per-card debug dumps of the extraction layer.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .console import write_safely

_CONFIGURED = False

ROOT_LOGGER = "shopcrawl"
LOG_DIR = Path(__file__).resolve().parents[3] / "logs"
LOG_FILE = LOG_DIR / "shopcrawl.log"
LOG_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 3


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that escapes what the console encoding cannot show."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            write_safely(self.stream, self.format(record) + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the root ``shopcrawl`` logger (console + rotating file).

    Calling this multiple times is safe; only the first call takes effect.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = SafeStreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    # a read-only checkout still crawls, just without the file
    target = log_file or LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            target, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8", delay=True
        )
    except OSError:
        return
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)


def set_console_level(level: int) -> None:
    """Change the console verbosity after setup (``--verbose`` in the CLI)."""
    setup_logging()
    for handler in logging.getLogger(ROOT_LOGGER).handlers:
        if isinstance(handler, SafeStreamHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``shopcrawl`` namespace.

    Automatically calls :func:`setup_logging` on first use so callers
    never need to worry about initialization order.
    """
    setup_logging()
    return logging.getLogger(name)
