"""Logging for zkport.

All loggers live under the `zkport` namespace. The CLI installs a colored
console handler on that namespace; library callers keep their own logging
configuration untouched.
"""

import functools
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from colorama import Fore, Style, init as colorama_init

colorama_init()

ROOT_LOGGER = "zkport"

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d: %(message)s"


class ColoredFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.MAGENTA + Style.BRIGHT,
    }

    def __init__(self, fmt: str, stream=None):
        super().__init__(fmt)
        self.stream = stream or sys.stderr

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if not color or not self.stream.isatty():
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """Install console (and optional file) handlers on the zkport logger.

    Args:
        level: Console level name.
        log_file: File that additionally receives every record at DEBUG.
        verbose: Log DEBUG to the console with timestamps and line numbers.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ColoredFormatter(DETAILED_FORMAT if verbose else CONSOLE_FORMAT, sys.stderr))
    root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggerMixin:
    """Gives a class a `logger` named after its module and class."""

    @property
    def logger(self) -> logging.Logger:
        return get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")


def log_execution_time(func):
    """Log at DEBUG how long a pipeline stage took, and failures at ERROR."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__qualname__} failed after {time.perf_counter() - start:.3f}s: {e}")
            raise
        logger.debug(f"{func.__qualname__} took {time.perf_counter() - start:.3f}s")
        return result

    return wrapper
