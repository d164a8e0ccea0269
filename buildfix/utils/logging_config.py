"""
Logging setup for repair runs.

Console output goes to stderr so a JSON run log on stdout stays parseable.
Colour is only used when stderr is a terminal; every run also appends to
a daily ``repair_YYYYMMDD.log`` under LOG_DIR.
"""
import logging
import os
import sys
from datetime import datetime

from buildfix.core.config import LOG_DIR

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_RESET = "\x1b[0m"

_LEVEL_COLOURS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31;1m",
}

# Loggers whose level follows the configured one
_MANAGED_LOGGERS = ("buildfix", "uvicorn", "uvicorn.error", "uvicorn.access", "main")


class ColoredFormatter(logging.Formatter):
    """Wrap each record in its level's ANSI colour."""

    def __init__(self):
        super().__init__(_FORMAT, datefmt=_DATEFMT)
        self._by_level = {
            level: logging.Formatter(colour + _FORMAT + _RESET, datefmt=_DATEFMT)
            for level, colour in _LEVEL_COLOURS.items()
        }

    def format(self, record):
        formatter = self._by_level.get(record.levelno)
        if formatter is None:
            return super().format(record)
        return formatter.format(record)


def _console_formatter(stream) -> logging.Formatter:
    if os.environ.get("NO_COLOR") or not getattr(stream, "isatty", lambda: False)():
        return logging.Formatter(_FORMAT, datefmt=_DATEFMT)
    return ColoredFormatter()


def log_file_path(log_dir: str = LOG_DIR) -> str:
    return os.path.join(log_dir, f"repair_{datetime.now().strftime('%Y%m%d')}.log")


def setup_logging(level=logging.INFO, log_dir=LOG_DIR, to_file=True):
    """Console (stderr) plus the daily repair log file."""
    root_logger = logging.getLogger()

    # Replace existing handlers so repeated setup does not duplicate lines
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_console_formatter(sys.stderr))
    root_logger.addHandler(console_handler)

    if to_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path(log_dir), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        root_logger.addHandler(file_handler)

    for logger_name in _MANAGED_LOGGERS:
        named = logging.getLogger(logger_name)
        named.setLevel(level)
        named.propagate = True

    root_logger.info("Logging initialized (console%s).", " + file" if to_file else "")
