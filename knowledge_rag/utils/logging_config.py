"""
Logging configuration for console and file output.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import colorama
from colorama import Fore, Style

colorama.init(autoreset=True)

ROOT_LOGGER_NAME = "knowledge_rag"


class LogLevel(str, Enum):
    """Log level enumeration."""

    MINIMAL = "minimal"  # Only warnings and errors
    NORMAL = "normal"  # INFO, WARNING, ERROR
    DETAILED = "detailed"  # DEBUG and up
    FULL = "full"  # DEBUG with function/line context


class ColoredFormatter(logging.Formatter):
    """Colored log formatter."""

    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        """Format log record with colors, leaving the record untouched for other handlers."""
        original = record.levelname
        log_color = self.COLORS.get(original, "")
        record.levelname = f"{log_color}{original}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _resolve_level(level: LogLevel, verbose: bool, debug: bool) -> int:
    if debug or verbose or level in (LogLevel.DETAILED, LogLevel.FULL):
        return logging.DEBUG
    if level == LogLevel.NORMAL:
        return logging.INFO
    return logging.WARNING


def setup_logging(
    level: LogLevel = LogLevel.NORMAL,
    log_to_file: bool = False,
    log_file: Optional[str] = None,
    verbose: bool = False,
    debug: bool = False,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level
        log_to_file: Whether to log to file
        log_file: Log file path
        verbose: Verbose mode flag
        debug: Debug mode flag

    Returns:
        Configured logger
    """
    log_level = _resolve_level(LogLevel(level), verbose, debug)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if log_level == logging.DEBUG:
        console_format = ColoredFormatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%H:%M:%S"
        )
    else:
        console_format = ColoredFormatter("%(levelname)-8s | %(message)s")
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    if log_to_file:
        if log_file is None:
            log_file = "logs/knowledge_rag.log"

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger

