"""Core modules for CalCommand.

Configuration, logging and the error hierarchy shared by every resolver.
"""

from .config_manager import (
    ConfigManager,
    DefaultsConfig,
    EngineConfig,
    LoggingConfig,
    RecurrenceConfig,
    TimeParsingConfig,
    TimezoneConfig,
)
from .error_handler import (
    AmbiguousTimeError,
    CalCommandError,
    ConfigurationError,
    EndBeforeStartError,
    ErrorHandler,
    ErrorSeverity,
    InvalidDateError,
    InvalidRecurrenceError,
    InvalidTimeError,
    RecurrenceConflictError,
    ResolutionError,
    ResolutionIssue,
)
from .logging_manager import LoggingManager

__all__ = [
    "ConfigManager",
    "DefaultsConfig",
    "EngineConfig",
    "LoggingConfig",
    "RecurrenceConfig",
    "TimeParsingConfig",
    "TimezoneConfig",
    "AmbiguousTimeError",
    "CalCommandError",
    "ConfigurationError",
    "EndBeforeStartError",
    "ErrorHandler",
    "ErrorSeverity",
    "InvalidDateError",
    "InvalidRecurrenceError",
    "InvalidTimeError",
    "RecurrenceConflictError",
    "ResolutionError",
    "ResolutionIssue",
    "LoggingManager",
]
