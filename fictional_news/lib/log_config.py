"""Logging configuration.

Usage:
    from fictional_news.lib.log_config import setup_logging
    setup_logging("INFO")   # once, at startup
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers that are chatty at DEBUG.
_QUIET_LOGGERS = ("asyncpg", "redis", "asyncio")


def parse_level(raw: str) -> int:
    """Convert a level name to a logging constant, defaulting to INFO."""
    numeric = getattr(logging, str(raw).upper(), None)
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger; safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(parse_level(level))

    for handler in list(root.handlers):
        if getattr(handler, "_fictional_news", False):
            root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler._fictional_news = True
    root.addHandler(stream_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler._fictional_news = True
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(parse_level(level), logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured at {level}")
