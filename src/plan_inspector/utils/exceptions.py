"""Custom exceptions for plan inspector."""


class InspectorError(Exception):
    """Base exception for plan inspector."""
    pass


class ConfigurationError(InspectorError):
    """Raised when configuration is invalid or missing."""
    pass


class LogFileError(InspectorError):
    """Raised when an input file cannot be read."""
    pass


class YamlParseError(InspectorError):
    """Raised when a YAML document cannot be loaded."""
    pass


class ArchiveError(InspectorError):
    """Raised when archive entries cannot be classified or dispatched."""
    pass


class ParseCancelledError(InspectorError):
    """Raised when a parse is cancelled through its cancellation token."""
    pass
