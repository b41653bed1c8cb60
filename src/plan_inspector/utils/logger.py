"""Centralized logging configuration."""

import logging
import sys
from pathlib import Path
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console


LOGGER_NAME = "plan-inspector"

# Archive members may be parsed on worker threads
FILE_FORMAT = "%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    rich_console: bool = True
) -> logging.Logger:
    """
    Configure the application logger.

    Console output always goes to stderr so JSON written to stdout stays
    parseable. Calling this again replaces the previous handlers.

    Args:
        name: Logger name; component loggers are its children
        level: Level name such as ``DEBUG`` or ``WARNING``
        log_file: Optional file that receives every record at ``level``
        rich_console: Use a Rich handler instead of a plain stream handler

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    logger.handlers.clear()

    if rich_console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=False
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    return logger


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """
    Return the application logger or one of its component children.

    The parent logger is configured with defaults on first use.
    """
    parent = logging.getLogger(LOGGER_NAME)
    if not parent.handlers:
        setup_logger()
    if component:
        return parent.getChild(component)
    return parent


class LoggerMixin:
    """Mixin class to add logging capabilities to any class."""

    @property
    def logger(self) -> logging.Logger:
        """Get logger instance for this class."""
        return get_logger(self.__class__.__name__)
