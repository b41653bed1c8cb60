"""Shared utilities: configuration, logging, exceptions and validators."""

from .config import ConfigManager, config
from .exceptions import (
    InspectorError,
    ConfigurationError,
    LogFileError,
    YamlParseError,
    ArchiveError,
    ParseCancelledError,
)
from .logger import setup_logger, get_logger, LoggerMixin

__all__ = [
    "ConfigManager",
    "config",
    "InspectorError",
    "ConfigurationError",
    "LogFileError",
    "YamlParseError",
    "ArchiveError",
    "ParseCancelledError",
    "setup_logger",
    "get_logger",
    "LoggerMixin",
]
